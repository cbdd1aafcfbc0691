"""
Fuzzy Markov - a differentiable soft Markov chain over discrete symbols.

Latent states, their output distributions and their transition distributions
are all learned parameters. Each step mixes every state's behaviour by the
current state distribution, entirely in log space, with exact gradients.
"""

__version__ = "0.1.0"

from .core import Block, Gradient, SequenceRunner, StepResult, Variable
from .exceptions import (
    FuzzyMarkovError,
    DeserializationError,
    ContractViolationError,
    GraphConsumedError
)

__all__ = [
    'Block',
    'Gradient',
    'SequenceRunner',
    'StepResult',
    'Variable',
    'FuzzyMarkovError',
    'DeserializationError',
    'ContractViolationError',
    'GraphConsumedError'
]
