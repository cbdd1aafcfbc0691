"""Core mathematical components of the fuzzy Markov model.

- Log-domain probability math (log-softmax, log-domain addition)
- Differentiable vector results with reverse-mode and R-operator propagation
- The fuzzy Markov transition block
- Sequence runner for backpropagation through time
"""

from .log_domain import (
    log_softmax,
    softmax,
    log_add,
    log_softmax_jacobian,
    log_softmax_hessian,
    validate_log_distribution
)
from .autodiff import Gradient, Result, RVariable, RVector, Variable
from .block import Block, BatchResult, StateEntry, StepResult, select_symbol
from .sequence import SequenceRunner, SequenceTrace

__all__ = [
    # Log-domain math
    'log_softmax',
    'softmax',
    'log_add',
    'log_softmax_jacobian',
    'log_softmax_hessian',
    'validate_log_distribution',

    # Differentiable results
    'Gradient',
    'Result',
    'RVariable',
    'RVector',
    'Variable',

    # Transition block
    'Block',
    'BatchResult',
    'StateEntry',
    'StepResult',
    'select_symbol',

    # Sequences
    'SequenceRunner',
    'SequenceTrace'
]
