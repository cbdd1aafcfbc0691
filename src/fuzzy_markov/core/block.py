"""Fuzzy Markov transition block.

The block owns every learned tensor of a soft Markov chain and implements a
single time step as a one-step forward-algorithm mixture carried out entirely
in log space:

    output     = logsumexp_s( log_softmax(output_logits[s])        + log p(s) )
    next_state = logsumexp_s( log_softmax(transition_logits[s][c]) + log p(s) )

where ``c`` is the observed input symbol and ``log p(s)`` is the incoming state
log-distribution. Both results are convex combinations of valid distributions,
so they stay normalized. The incoming state enters the graph as an explicit
leaf whose gradient is returned by the propagation call, which lets a sequence
runner chain steps backward in time.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np

from .autodiff import (
    Gradient,
    RVariable,
    RVector,
    Result,
    Variable,
    add_first,
    add_log_domain,
    log_softmax,
    slice_vector,
)
from ..exceptions import ContractViolationError, GraphConsumedError

logger = logging.getLogger(__name__)

SymbolInput = Union[int, np.integer, np.ndarray, Sequence[float], Result]
StateInput = Union[Result, np.ndarray, Sequence[float]]


def select_symbol(symbol_scores: SymbolInput, alphabet_size: Optional[int] = None) -> int:
    """Pick the discrete input symbol from a score vector.

    Parameters
    ----------
    symbol_scores : int, array-like or Result
        Either a symbol index or a vector of scores over the alphabet. Softmax
        is monotonic, so the arg-max of the raw scores equals the arg-max of
        the normalized input.
    alphabet_size : Optional[int]
        When given, the score vector length and resulting index are checked

    Returns
    -------
    int
        Index of the first maximal score; ties resolve to the lowest index

    Examples
    --------
    >>> select_symbol(np.array([0.1, 0.7, 0.7, 0.2]))
    1
    """
    if isinstance(symbol_scores, (int, np.integer)) and not isinstance(symbol_scores, bool):
        symbol = int(symbol_scores)
    else:
        if isinstance(symbol_scores, Result):
            scores = symbol_scores.value
        else:
            scores = np.asarray(symbol_scores, dtype=float)
        if scores.ndim != 1 or scores.shape[0] == 0:
            raise ValueError(f"Symbol scores must be a non-empty vector, got shape {scores.shape}")
        if alphabet_size is not None and scores.shape[0] != alphabet_size:
            raise ValueError(f"Symbol scores have length {scores.shape[0]}, "
                             f"expected alphabet size {alphabet_size}")
        symbol = int(np.argmax(scores))

    if alphabet_size is not None and not 0 <= symbol < alphabet_size:
        raise ValueError(f"Symbol {symbol} outside alphabet [0, {alphabet_size})")
    return symbol


@dataclass
class StateEntry:
    """Learned parameters of one fuzzy state.

    Attributes
    ----------
    output : Variable, shape (alphabet_size,)
        Output logits emitted while fully in this state
    transitions : List[Variable]
        One next-state logit vector of length ``state_count`` per input symbol
    """
    output: Variable
    transitions: List[Variable]


class StepResult:
    """Outputs of one transition step plus the graph that produced them.

    The graph may be propagated through exactly once. Gradients collect in
    maps local to the call and reach the caller's maps only once the whole
    propagation has succeeded.
    """

    def __init__(self, symbol: int, state_leaf: Variable, output: Result,
                 next_state: Result, r_mode: bool = False,
                 variables: Sequence[Variable] = ()):
        self.symbol = symbol
        self.state_leaf = state_leaf
        self.output = output
        self.next_state = next_state
        self.r_mode = r_mode
        self.variables = list(variables)
        self._consumed = False

    @property
    def output_log_probs(self) -> np.ndarray:
        return self.output.value

    @property
    def next_state_log_probs(self) -> np.ndarray:
        return self.next_state.value

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _check_unconsumed(self) -> None:
        if self._consumed:
            raise GraphConsumedError("Gradients were already propagated through this step")

    @staticmethod
    def _check_upstream(vector, expected: int, name: str) -> Optional[np.ndarray]:
        if vector is None:
            return None
        vector = np.array(vector, dtype=float)
        if vector.shape != (expected,):
            raise ValueError(f"{name} must have shape ({expected},), got {vector.shape}")
        return vector

    def _local_map(self, target: Optional[Gradient]) -> Gradient:
        """Zeroed map over the tracked parameters this step reads, plus the state leaf."""
        local = Gradient()
        if target is not None:
            for variable in self.variables:
                if variable in target:
                    local[variable] = np.zeros_like(variable.vector)
        local[self.state_leaf] = np.zeros_like(self.state_leaf.vector)
        return local

    def _finish(self, local: Gradient, target: Optional[Gradient]) -> np.ndarray:
        incoming = local.pop(self.state_leaf)
        if target is not None:
            target.merge(local)
        return incoming

    def propagate_gradient(self, output_grad: Optional[np.ndarray],
                           state_grad: Optional[np.ndarray],
                           grad: Optional[Gradient]) -> np.ndarray:
        """Backpropagate upstream gradients through the step.

        Parameters
        ----------
        output_grad : Optional[np.ndarray], shape (alphabet_size,)
            Loss gradient with respect to the output log-distribution, or None
        state_grad : Optional[np.ndarray], shape (state_count,)
            Loss gradient with respect to the next-state log-distribution, or None
        grad : Optional[Gradient]
            Parameter gradients accumulate into the variables tracked here

        Returns
        -------
        np.ndarray, shape (state_count,)
            Gradient with respect to the incoming state log-distribution
        """
        self._check_unconsumed()
        output_grad = self._check_upstream(output_grad, len(self.output), "output_grad")
        state_grad = self._check_upstream(state_grad, len(self.next_state), "state_grad")

        local = self._local_map(grad)
        if output_grad is not None:
            self.output.propagate_gradient(output_grad, local)
        if state_grad is not None:
            self.next_state.propagate_gradient(state_grad, local)

        self._consumed = True
        return self._finish(local, grad)

    def propagate_r_gradient(self, output_grad: Optional[np.ndarray],
                             output_grad_r: Optional[np.ndarray],
                             state_grad: Optional[np.ndarray],
                             state_grad_r: Optional[np.ndarray],
                             rgrad: Optional[Gradient],
                             grad: Optional[Gradient]) -> Tuple[np.ndarray, np.ndarray]:
        """R-operator counterpart of :meth:`propagate_gradient`.

        A missing R-upstream next to a present upstream is taken as zeros.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            Gradient with respect to the incoming state and its directional
            derivative along the R-vector
        """
        if not self.r_mode:
            raise ContractViolationError("Step was computed without an R-vector")
        self._check_unconsumed()
        n_out, n_state = len(self.output), len(self.next_state)
        output_grad = self._check_upstream(output_grad, n_out, "output_grad")
        output_grad_r = self._check_upstream(output_grad_r, n_out, "output_grad_r")
        state_grad = self._check_upstream(state_grad, n_state, "state_grad")
        state_grad_r = self._check_upstream(state_grad_r, n_state, "state_grad_r")

        local = self._local_map(grad)
        local_r = self._local_map(rgrad)
        if output_grad is not None:
            if output_grad_r is None:
                output_grad_r = np.zeros(n_out)
            self.output.propagate_r_gradient(output_grad, output_grad_r, local_r, local)
        if state_grad is not None:
            if state_grad_r is None:
                state_grad_r = np.zeros(n_state)
            self.next_state.propagate_r_gradient(state_grad, state_grad_r, local_r, local)

        self._consumed = True
        return self._finish(local, grad), self._finish(local_r, rgrad)


def _pick(vectors: Optional[Sequence], index: int):
    if vectors is None:
        return None
    return vectors[index]


def _map_items(count: int, n_workers: int, maps: Tuple[Optional[Gradient], ...],
               fn: Callable[[int, Tuple[Optional[Gradient], ...]], object]) -> list:
    """Run ``fn`` for every batch index, accumulating into ``maps``.

    With several workers each one writes to zeroed copies of ``maps``; the
    copies are summed into the caller's maps once all workers finish.
    """
    if n_workers <= 1 or count <= 1:
        return [fn(i, maps) for i in range(count)]

    def work(indices):
        partials = tuple(m.zeros_like() if m is not None else None for m in maps)
        return partials, [(int(i), fn(int(i), partials)) for i in indices]

    chunks = np.array_split(np.arange(count), min(n_workers, count))
    with ThreadPoolExecutor(max_workers=n_workers) as pool:
        finished = list(pool.map(work, chunks))

    results = [None] * count
    for partials, items in finished:
        for target, partial in zip(maps, partials):
            if target is not None:
                target.merge(partial)
        for index, value in items:
            results[index] = value
    return results


class BatchResult:
    """Independent step results for a batch of (input, state) pairs.

    ``n_workers`` is the thread count used when a propagation call does not
    pass its own.
    """

    def __init__(self, steps: List[StepResult], n_workers: int = 1):
        self.steps = steps
        self.n_workers = n_workers

    def __len__(self) -> int:
        return len(self.steps)

    def outputs(self) -> List[np.ndarray]:
        return [s.output_log_probs for s in self.steps]

    def states(self) -> List[Result]:
        return [s.next_state for s in self.steps]

    def propagate_gradient(self, output_grads: Optional[Sequence[Optional[np.ndarray]]],
                           state_grads: Optional[Sequence[Optional[np.ndarray]]],
                           grad: Optional[Gradient],
                           n_workers: Optional[int] = None) -> List[np.ndarray]:
        """Backpropagate every item; returns per-item incoming-state gradients."""
        if n_workers is None:
            n_workers = self.n_workers

        def item(i, maps):
            return self.steps[i].propagate_gradient(_pick(output_grads, i),
                                                    _pick(state_grads, i), maps[0])
        return _map_items(len(self.steps), n_workers, (grad,), item)

    def propagate_r_gradient(self, output_grads, output_grads_r, state_grads, state_grads_r,
                             rgrad: Optional[Gradient], grad: Optional[Gradient],
                             n_workers: Optional[int] = None) -> List[Tuple[np.ndarray, np.ndarray]]:
        if n_workers is None:
            n_workers = self.n_workers

        def item(i, maps):
            return self.steps[i].propagate_r_gradient(
                _pick(output_grads, i), _pick(output_grads_r, i),
                _pick(state_grads, i), _pick(state_grads_r, i),
                maps[0], maps[1])
        return _map_items(len(self.steps), n_workers, (rgrad, grad), item)


class Block:
    """Parameters and transition function of a fuzzy Markov chain.

    Parameters
    ----------
    start : Variable, shape (state_count,)
        Logits of the initial state distribution
    entries : List[StateEntry]
        One entry per latent state

    Examples
    --------
    >>> block = Block.create(alphabet_size=4, state_count=3)
    >>> step = block.step(2, block.initial_state())
    >>> round(float(np.exp(step.output_log_probs).sum()), 6)
    1.0
    """

    SERIALIZER_TYPE = "fuzzy_markov.Block"

    def __init__(self, start: Variable, entries: List[StateEntry]):
        if not entries:
            raise ValueError("State count must be positive")
        state_count = len(entries)
        alphabet_size = len(entries[0].output.vector)
        if alphabet_size == 0:
            raise ValueError("Alphabet size must be positive")
        if start.vector.shape != (state_count,):
            raise ValueError(f"Start logits must have shape ({state_count},), got {start.vector.shape}")

        for idx, entry in enumerate(entries):
            if entry.output.vector.shape != (alphabet_size,):
                raise ValueError(f"State {idx} output logits must have length {alphabet_size}, "
                                 f"got {entry.output.vector.shape}")
            if len(entry.transitions) != alphabet_size:
                raise ValueError(f"State {idx} must have {alphabet_size} transition rows, "
                                 f"got {len(entry.transitions)}")
            for symbol, row in enumerate(entry.transitions):
                if row.vector.shape != (state_count,):
                    raise ValueError(f"Transition row ({idx}, {symbol}) must have length "
                                     f"{state_count}, got {row.vector.shape}")

        self.start = start
        self.entries = entries
        # Default thread count for batch calls
        self.n_workers = 1

    @classmethod
    def create(cls, alphabet_size: int, state_count: int,
               rng: Optional[np.random.Generator] = None,
               start_logit: float = 100.0,
               output_std: float = 1.0,
               transition_std: float = 2.0) -> 'Block':
        """Randomly initialize a block.

        Parameters
        ----------
        alphabet_size : int
            Number of input/output symbols
        state_count : int
            Number of latent states
        rng : Optional[np.random.Generator]
            Source of randomness; the global NumPy state when None
        start_logit : float, default=100.0
            Logit given to state 0 (all others are 0). Large but finite so the
            initial distribution is near-certain without any log-probability
            becoming -inf.
        output_std : float, default=1.0
            Standard deviation of the output logits
        transition_std : float, default=2.0
            Standard deviation of the transition logits

        Returns
        -------
        Block
            Freshly initialized block
        """
        if alphabet_size <= 0:
            raise ValueError(f"Alphabet size must be positive, got {alphabet_size}")
        if state_count <= 0:
            raise ValueError(f"State count must be positive, got {state_count}")
        if rng is None:
            rng = np.random

        start = np.zeros(state_count)
        start[0] = start_logit

        entries = []
        for _ in range(state_count):
            output = Variable(rng.normal(0.0, output_std, size=alphabet_size))
            transitions = [Variable(rng.normal(0.0, transition_std, size=state_count))
                           for _ in range(alphabet_size)]
            entries.append(StateEntry(output=output, transitions=transitions))

        logger.debug("Created block with alphabet_size=%d state_count=%d", alphabet_size, state_count)
        return cls(Variable(start), entries)

    @classmethod
    def from_settings(cls, settings, rng: Optional[np.random.Generator] = None) -> 'Block':
        """Create a block from a :class:`fuzzy_markov.config.Settings`.

        ``settings.n_parallel`` becomes the default batch thread count.
        """
        block = cls.create(alphabet_size=settings.alphabet_size,
                           state_count=settings.state_count,
                           rng=rng,
                           start_logit=settings.start_logit,
                           output_std=settings.output_init_std,
                           transition_std=settings.transition_init_std)
        block.n_workers = max(1, settings.n_parallel)
        return block

    @property
    def alphabet_size(self) -> int:
        return len(self.entries[0].output.vector)

    @property
    def state_count(self) -> int:
        return len(self.entries)

    def parameters(self) -> List[Variable]:
        """Every learnable tensor in a stable order.

        Start logits first, then for each state its output logits followed by
        its transition rows in symbol order.
        """
        params = [self.start]
        for entry in self.entries:
            params.append(entry.output)
            params.extend(entry.transitions)
        return params

    def initial_state(self) -> Result:
        """Log-softmax of the start logits, differentiable into them."""
        return log_softmax(self.start)

    def initial_r_state(self, rvector: RVector) -> Result:
        return log_softmax(RVariable(self.start, rvector))

    def propagate_start(self, state: Result, upstream: np.ndarray, grad: Gradient) -> None:
        """Push a state gradient returned by the first step into the start logits."""
        state.propagate_gradient(np.asarray(upstream, dtype=float), grad)

    def propagate_start_r(self, state: Result, upstream: np.ndarray, upstream_r: np.ndarray,
                          rgrad: Optional[Gradient], grad: Optional[Gradient]) -> None:
        state.propagate_r_gradient(np.asarray(upstream, dtype=float),
                                   np.asarray(upstream_r, dtype=float), rgrad, grad)

    def step(self, symbol_scores: SymbolInput, state: StateInput,
             rvector: Optional[RVector] = None) -> StepResult:
        """Run one transition of the chain.

        Parameters
        ----------
        symbol_scores : int, array-like or Result
            Input symbol, or scores whose first arg-max is the symbol
        state : Result or array-like, shape (state_count,)
            Incoming state log-distribution. Its value (and tangent in R mode)
            becomes a fresh graph leaf; normalization is the caller's contract.
        rvector : Optional[RVector]
            Tangent directions for the parameters; enables R-operator results

        Returns
        -------
        StepResult
            Output and next-state log-distributions with their graph
        """
        symbol = select_symbol(symbol_scores, self.alphabet_size)

        if isinstance(state, Result):
            incoming, incoming_r = state.value, state.tangent
        else:
            incoming, incoming_r = np.asarray(state, dtype=float), None
        if incoming.shape != (self.state_count,):
            raise ValueError(f"Incoming state must have shape ({self.state_count},), "
                             f"got {incoming.shape}")

        leaf = Variable(incoming)
        if rvector is not None:
            if incoming_r is None:
                incoming_r = np.zeros(self.state_count)
            state_node = RVariable(leaf, {leaf: incoming_r})

            def param(v):
                return RVariable(v, rvector)
        else:
            state_node = leaf

            def param(v):
                return v

        output = None
        next_state = None
        for state_idx, entry in enumerate(self.entries):
            outputs = log_softmax(param(entry.output))
            transitions = log_softmax(param(entry.transitions[symbol]))

            prob_log = slice_vector(state_node, state_idx, state_idx + 1)
            scaled_out = add_first(outputs, prob_log)
            scaled_states = add_first(transitions, prob_log)

            if output is None:
                output = scaled_out
                next_state = scaled_states
            else:
                output = add_log_domain(output, scaled_out)
                next_state = add_log_domain(next_state, scaled_states)

        variables = [v for entry in self.entries for v in (entry.output, entry.transitions[symbol])]
        return StepResult(symbol, leaf, output, next_state, r_mode=rvector is not None,
                          variables=variables)

    def apply_batch(self, inputs: Sequence[SymbolInput], states: Sequence[StateInput],
                    rvector: Optional[RVector] = None,
                    n_workers: Optional[int] = None) -> BatchResult:
        """Run :meth:`step` over independent (input, state) pairs.

        Parameters
        ----------
        inputs : Sequence
            One symbol (or score vector) per batch item
        states : Sequence
            One incoming state per batch item
        rvector : Optional[RVector]
            Shared R-vector for every item
        n_workers : Optional[int]
            Number of threads used to compute items concurrently; the block's
            ``n_workers`` when None. The result keeps it for propagation.

        Returns
        -------
        BatchResult
            Per-item step results
        """
        if len(inputs) != len(states):
            raise ValueError(f"Got {len(inputs)} inputs but {len(states)} states")
        if n_workers is None:
            n_workers = self.n_workers

        if n_workers <= 1 or len(inputs) <= 1:
            steps = [self.step(x, s, rvector) for x, s in zip(inputs, states)]
        else:
            with ThreadPoolExecutor(max_workers=n_workers) as pool:
                steps = list(pool.map(lambda pair: self.step(pair[0], pair[1], rvector),
                                      zip(inputs, states)))
        return BatchResult(steps, n_workers=n_workers)
