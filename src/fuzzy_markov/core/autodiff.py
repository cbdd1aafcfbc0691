"""Reverse-mode differentiable vector results.

A small computation-graph layer over numpy. Every node holds its forward value
and, when an R-vector was threaded through the leaves, a tangent (the
directional derivative of the value along that R-vector). The same node types
therefore serve plain backpropagation and the R-operator (Hessian-vector
products); there is no separate "R" graph.

Gradients accumulate into a :class:`Gradient`, a mapping keyed by
:class:`Variable` identity. Only variables present as keys receive
contributions; any other variable reached during propagation is a constant.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from . import log_domain


class Gradient(dict):
    """Accumulated gradient vectors keyed by parameter identity.

    Examples
    --------
    >>> w = Variable([1.0, 2.0])
    >>> grad = Gradient.zeros([w])
    >>> log_softmax(w).propagate_gradient(np.array([1.0, 0.0]), grad)
    >>> grad[w].shape
    (2,)
    """

    @classmethod
    def zeros(cls, variables: Iterable['Variable']) -> 'Gradient':
        """Create a map with a zero vector for each variable."""
        return cls((v, np.zeros_like(v.vector)) for v in variables)

    def zeros_like(self) -> 'Gradient':
        """Create a map with the same keys and zeroed vectors."""
        return Gradient((v, np.zeros_like(g)) for v, g in self.items())

    def accumulate(self, variable: 'Variable', vector: np.ndarray) -> None:
        """Add ``vector`` into the entry for ``variable`` if it is tracked."""
        if variable in self:
            self[variable] += vector

    def merge(self, other: 'Gradient') -> None:
        """Sum ``other`` into this map, adding keys that are missing."""
        for variable, vector in other.items():
            if variable in self:
                self[variable] += vector
            else:
                self[variable] = np.array(vector, dtype=float, copy=True)

    def scale(self, factor: float) -> None:
        for vector in self.values():
            vector *= factor


# Tangent direction for each variable in an R-operator pass
RVector = Dict['Variable', np.ndarray]


class Result(ABC):
    """A differentiable vector produced by the graph."""

    @property
    @abstractmethod
    def value(self) -> np.ndarray:
        """Forward value."""

    @property
    def tangent(self) -> Optional[np.ndarray]:
        """Directional derivative along the R-vector, or None outside R mode."""
        return None

    @abstractmethod
    def propagate_gradient(self, upstream: np.ndarray, grad: Optional[Gradient]) -> None:
        """Accumulate ``Jᵀ upstream`` into every tracked variable."""

    @abstractmethod
    def propagate_r_gradient(self, upstream: np.ndarray, upstream_r: np.ndarray,
                             rgrad: Optional[Gradient], grad: Optional[Gradient]) -> None:
        """Accumulate the gradient into ``grad`` and its R-derivative into ``rgrad``.

        Parameters
        ----------
        upstream : np.ndarray
            Gradient of the loss with respect to this result
        upstream_r : np.ndarray
            Directional derivative of ``upstream`` along the R-vector
        rgrad : Optional[Gradient]
            Receives directional derivatives of the parameter gradients
        grad : Optional[Gradient]
            Receives the ordinary gradients; may be None
        """

    def __len__(self) -> int:
        return len(self.value)


class Variable(Result):
    """A parameter vector that gradients can be accumulated into.

    Hashing and equality are by identity, which is what keys a
    :class:`Gradient`.
    """

    def __init__(self, vector: Sequence[float]):
        self.vector = np.array(vector, dtype=float)

    @property
    def value(self) -> np.ndarray:
        return self.vector

    def propagate_gradient(self, upstream, grad):
        if grad is not None:
            grad.accumulate(self, upstream)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        if grad is not None:
            grad.accumulate(self, upstream)
        if rgrad is not None:
            rgrad.accumulate(self, upstream_r)

    def __repr__(self) -> str:
        return f"Variable(size={len(self.vector)})"


class RVariable(Result):
    """A :class:`Variable` seen through an R-vector.

    The tangent is ``rvector[variable]``, or zeros when the R-vector has no
    direction for this variable.
    """

    def __init__(self, variable: Variable, rvector: RVector):
        self.variable = variable
        direction = rvector.get(variable)
        if direction is None:
            self._tangent = np.zeros_like(variable.vector)
        else:
            self._tangent = np.asarray(direction, dtype=float)
            if self._tangent.shape != variable.vector.shape:
                raise ValueError(f"R-vector entry has shape {self._tangent.shape}, "
                                 f"variable has shape {variable.vector.shape}")

    @property
    def value(self) -> np.ndarray:
        return self.variable.vector

    @property
    def tangent(self) -> np.ndarray:
        return self._tangent

    def propagate_gradient(self, upstream, grad):
        self.variable.propagate_gradient(upstream, grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        self.variable.propagate_r_gradient(upstream, upstream_r, rgrad, grad)


def _tangent_or_zeros(result: Result) -> np.ndarray:
    tangent = result.tangent
    if tangent is None:
        return np.zeros_like(result.value)
    return tangent


def _any_tangent(results: Iterable[Result]) -> bool:
    return any(r.tangent is not None for r in results)


class _Operation(Result):
    """Interior node; subclasses fill ``_value`` and ``_tangent`` on construction."""

    _value: np.ndarray
    _tangent: Optional[np.ndarray] = None

    @property
    def value(self) -> np.ndarray:
        return self._value

    @property
    def tangent(self) -> Optional[np.ndarray]:
        return self._tangent


class LogSoftmaxResult(_Operation):
    def __init__(self, inp: Result):
        self.input = inp
        self._value = log_domain.log_softmax(inp.value)
        self._probs = np.exp(self._value)
        if inp.tangent is not None:
            self._tangent = log_domain.log_softmax_jvp(self._probs, inp.tangent)

    def propagate_gradient(self, upstream, grad):
        self.input.propagate_gradient(log_domain.log_softmax_vjp(self._probs, upstream), grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        probs_r = self._probs * _tangent_or_zeros(self)
        down = log_domain.log_softmax_vjp(self._probs, upstream)
        down_r = log_domain.log_softmax_vjp(self._probs, upstream_r) - probs_r * np.sum(upstream)
        self.input.propagate_r_gradient(down, down_r, rgrad, grad)


class SoftmaxResult(_Operation):
    def __init__(self, inp: Result):
        self.input = inp
        self._value = log_domain.softmax(inp.value)
        if inp.tangent is not None:
            self._tangent = log_domain.softmax_jvp(self._value, inp.tangent)

    def propagate_gradient(self, upstream, grad):
        self.input.propagate_gradient(log_domain.softmax_vjp(self._value, upstream), grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        probs = self._value
        probs_r = _tangent_or_zeros(self)
        centered = upstream - np.dot(probs, upstream)
        down = probs * centered
        down_r = (probs_r * centered
                  + probs * (upstream_r - np.dot(probs_r, upstream) - np.dot(probs, upstream_r)))
        self.input.propagate_r_gradient(down, down_r, rgrad, grad)


class LogAddResult(_Operation):
    """Element-wise ``log(exp(a) + exp(b))``."""

    def __init__(self, a: Result, b: Result):
        if a.value.shape != b.value.shape:
            raise ValueError(f"Cannot add {a.value.shape} and {b.value.shape} in the log domain")
        self.a = a
        self.b = b
        self._value = log_domain.log_add(a.value, b.value)
        self._weight_a, self._weight_b = log_domain.log_add_weights(a.value, b.value, self._value)
        if _any_tangent((a, b)):
            self._tangent = (self._weight_a * _tangent_or_zeros(a)
                             + self._weight_b * _tangent_or_zeros(b))

    def propagate_gradient(self, upstream, grad):
        # Steps fold their states into a chain through ``a``, walked iteratively
        node = self
        while isinstance(node, LogAddResult):
            node.b.propagate_gradient(node._weight_b * upstream, grad)
            upstream = node._weight_a * upstream
            node = node.a
        node.propagate_gradient(upstream, grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        node = self
        while isinstance(node, LogAddResult):
            out_r = _tangent_or_zeros(node)
            weight_r_a = node._weight_a * (_tangent_or_zeros(node.a) - out_r)
            weight_r_b = node._weight_b * (_tangent_or_zeros(node.b) - out_r)
            node.b.propagate_r_gradient(node._weight_b * upstream,
                                        node._weight_b * upstream_r + weight_r_b * upstream,
                                        rgrad, grad)
            upstream, upstream_r = (node._weight_a * upstream,
                                    node._weight_a * upstream_r + weight_r_a * upstream)
            node = node.a
        node.propagate_r_gradient(upstream, upstream_r, rgrad, grad)


class SliceResult(_Operation):
    def __init__(self, inp: Result, start: int, end: int):
        size = len(inp.value)
        if not 0 <= start <= end <= size:
            raise ValueError(f"Invalid slice [{start}, {end}) of vector with length {size}")
        self.input = inp
        self.start = start
        self.end = end
        self._value = inp.value[start:end].copy()
        if inp.tangent is not None:
            self._tangent = inp.tangent[start:end].copy()

    def _expand(self, vector: np.ndarray) -> np.ndarray:
        full = np.zeros_like(self.input.value)
        full[self.start:self.end] = vector
        return full

    def propagate_gradient(self, upstream, grad):
        self.input.propagate_gradient(self._expand(upstream), grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        self.input.propagate_r_gradient(self._expand(upstream), self._expand(upstream_r), rgrad, grad)


class AddFirstResult(_Operation):
    """A vector plus a length-1 vector broadcast over every entry."""

    def __init__(self, vector: Result, scalar: Result):
        if len(scalar.value) != 1:
            raise ValueError(f"Broadcast operand must have length 1, got {len(scalar.value)}")
        self.vector = vector
        self.scalar = scalar
        self._value = vector.value + scalar.value[0]
        if _any_tangent((vector, scalar)):
            self._tangent = _tangent_or_zeros(vector) + _tangent_or_zeros(scalar)[0]

    def propagate_gradient(self, upstream, grad):
        self.vector.propagate_gradient(upstream, grad)
        self.scalar.propagate_gradient(np.array([np.sum(upstream)]), grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        self.vector.propagate_r_gradient(upstream, upstream_r, rgrad, grad)
        self.scalar.propagate_r_gradient(np.array([np.sum(upstream)]),
                                         np.array([np.sum(upstream_r)]), rgrad, grad)


class ConcatResult(_Operation):
    def __init__(self, inputs: Sequence[Result]):
        if not inputs:
            raise ValueError("Cannot concatenate zero results")
        self.inputs = list(inputs)
        self._offsets = np.cumsum([0] + [len(r.value) for r in self.inputs])
        self._value = np.concatenate([r.value for r in self.inputs])
        if _any_tangent(self.inputs):
            self._tangent = np.concatenate([_tangent_or_zeros(r) for r in self.inputs])

    def _parts(self, vector: np.ndarray) -> List[np.ndarray]:
        return [vector[self._offsets[i]:self._offsets[i + 1]] for i in range(len(self.inputs))]

    def propagate_gradient(self, upstream, grad):
        for inp, part in zip(self.inputs, self._parts(upstream)):
            inp.propagate_gradient(part, grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        for inp, part, part_r in zip(self.inputs, self._parts(upstream), self._parts(upstream_r)):
            inp.propagate_r_gradient(part, part_r, rgrad, grad)


class AddResult(_Operation):
    def __init__(self, a: Result, b: Result):
        if a.value.shape != b.value.shape:
            raise ValueError(f"Cannot add {a.value.shape} and {b.value.shape}")
        self.a = a
        self.b = b
        self._value = a.value + b.value
        if _any_tangent((a, b)):
            self._tangent = _tangent_or_zeros(a) + _tangent_or_zeros(b)

    def propagate_gradient(self, upstream, grad):
        self.a.propagate_gradient(upstream, grad)
        self.b.propagate_gradient(upstream, grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        self.a.propagate_r_gradient(upstream, upstream_r, rgrad, grad)
        self.b.propagate_r_gradient(upstream, upstream_r, rgrad, grad)


class ScaleResult(_Operation):
    def __init__(self, inp: Result, factor: float):
        self.input = inp
        self.factor = float(factor)
        self._value = self.factor * inp.value
        if inp.tangent is not None:
            self._tangent = self.factor * inp.tangent

    def propagate_gradient(self, upstream, grad):
        self.input.propagate_gradient(self.factor * upstream, grad)

    def propagate_r_gradient(self, upstream, upstream_r, rgrad, grad):
        self.input.propagate_r_gradient(self.factor * upstream, self.factor * upstream_r, rgrad, grad)


def log_softmax(x: Result) -> Result:
    return LogSoftmaxResult(x)


def softmax(x: Result) -> Result:
    return SoftmaxResult(x)


def add_log_domain(a: Result, b: Result) -> Result:
    return LogAddResult(a, b)


def slice_vector(x: Result, start: int, end: int) -> Result:
    return SliceResult(x, start, end)


def add_first(vector: Result, scalar: Result) -> Result:
    """Add the single entry of ``scalar`` to every entry of ``vector``."""
    return AddFirstResult(vector, scalar)


def concat(*results: Result) -> Result:
    return ConcatResult(results)


def add(a: Result, b: Result) -> Result:
    return AddResult(a, b)


def scale(x: Result, factor: float) -> Result:
    return ScaleResult(x, factor)
