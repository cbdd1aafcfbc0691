"""Sequence runner for the fuzzy Markov block.

Chains transition steps over a symbol sequence, scores the predicted output
distributions against target symbols and backpropagates through time. Each
step returns the gradient with respect to its incoming state; the runner feeds
that gradient into the previous step, and the one produced by the first step
into the initial distribution.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np

from .autodiff import Gradient, Result
from .block import Block, StepResult, SymbolInput

logger = logging.getLogger(__name__)


@dataclass
class SequenceTrace:
    """Forward pass over one sequence.

    Attributes
    ----------
    initial_state : Result
        Initial state distribution the first step consumed
    steps : List[StepResult]
        One step result per input symbol, in time order
    """
    initial_state: Result
    steps: List[StepResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def output_log_probs(self) -> np.ndarray:
        """Output log-distributions stacked into shape (length, alphabet_size)."""
        return np.array([s.output_log_probs for s in self.steps])

    @property
    def final_state(self) -> Result:
        if not self.steps:
            return self.initial_state
        return self.steps[-1].next_state


class SequenceRunner:
    """Drive a :class:`Block` across whole sequences.

    Parameters
    ----------
    block : Block
        Block whose parameters are evaluated and differentiated

    Examples
    --------
    >>> block = Block.create(alphabet_size=4, state_count=3)
    >>> runner = SequenceRunner(block)
    >>> loss, grad = runner.loss_and_gradient([0, 1, 2], [1, 2, 3])
    >>> len(grad) == len(block.parameters())
    True
    """

    def __init__(self, block: Block):
        self.block = block

    def run(self, inputs: Sequence[SymbolInput]) -> SequenceTrace:
        """Forward pass starting from the block's initial distribution."""
        trace = SequenceTrace(initial_state=self.block.initial_state())
        state = trace.initial_state
        for symbol in inputs:
            step = self.block.step(symbol, state)
            trace.steps.append(step)
            state = step.next_state
        return trace

    def _check_targets(self, trace: SequenceTrace, targets: Sequence[int]) -> List[int]:
        if len(targets) != len(trace):
            raise ValueError(f"Got {len(targets)} targets for a sequence of length {len(trace)}")
        targets = [int(t) for t in targets]
        for t in targets:
            if not 0 <= t < self.block.alphabet_size:
                raise ValueError(f"Target symbol {t} outside alphabet [0, {self.block.alphabet_size})")
        return targets

    def negative_log_likelihood(self, trace: SequenceTrace, targets: Sequence[int]) -> float:
        """Sum over time of ``-log P(target_t)`` under the predicted outputs."""
        targets = self._check_targets(trace, targets)
        return float(-sum(step.output_log_probs[t] for step, t in zip(trace.steps, targets)))

    def backpropagate(self, trace: SequenceTrace, targets: Sequence[int], grad: Gradient) -> None:
        """Accumulate the gradient of :meth:`negative_log_likelihood` into ``grad``.

        Consumes every step of ``trace``.
        """
        targets = self._check_targets(trace, targets)

        state_grad: Optional[np.ndarray] = None
        for step, target in zip(reversed(trace.steps), reversed(targets)):
            output_grad = np.zeros(self.block.alphabet_size)
            output_grad[target] = -1.0
            state_grad = step.propagate_gradient(output_grad, state_grad, grad)

        if state_grad is not None:
            self.block.propagate_start(trace.initial_state, state_grad, grad)

    def loss_and_gradient(self, inputs: Sequence[SymbolInput],
                          targets: Sequence[int]) -> Tuple[float, Gradient]:
        """Negative log-likelihood of ``targets`` and its gradient for every parameter."""
        trace = self.run(inputs)
        loss = self.negative_log_likelihood(trace, targets)
        grad = Gradient.zeros(self.block.parameters())
        self.backpropagate(trace, targets, grad)
        logger.debug("Sequence of length %d: loss=%.6f", len(trace), loss)
        return loss, grad

    def sample(self, length: int, first_symbol: int = 0,
               rng: Optional[np.random.Generator] = None,
               end_symbol: Optional[int] = None) -> List[int]:
        """Generate symbols by feeding each sampled output back as the next input.

        Parameters
        ----------
        length : int
            Maximum number of symbols to generate
        first_symbol : int, default=0
            Input symbol of the first step (not part of the result)
        rng : Optional[np.random.Generator]
            Source of randomness; the global NumPy state when None
        end_symbol : Optional[int]
            Generation stops after this symbol is emitted

        Returns
        -------
        List[int]
            Generated symbols
        """
        if length < 0:
            raise ValueError("Sequence length must be non-negative")
        if rng is None:
            rng = np.random

        symbols: List[int] = []
        state = self.block.initial_state()
        symbol = first_symbol
        for _ in range(length):
            step = self.block.step(symbol, state)
            probs = np.exp(step.output_log_probs)
            symbol = int(rng.choice(len(probs), p=probs / probs.sum()))
            symbols.append(symbol)
            state = step.next_state
            if end_symbol is not None and symbol == end_symbol:
                break
        return symbols
