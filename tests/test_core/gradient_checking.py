"""Finite-difference helpers shared by the gradient tests."""

from typing import Callable, Dict, Iterable

import numpy as np

from fuzzy_markov.core.autodiff import Variable

EPSILON = 1e-6


def numerical_gradient(loss: Callable[[], float], variable: Variable,
                       epsilon: float = EPSILON) -> np.ndarray:
    """Central-difference gradient of ``loss()`` with respect to ``variable``."""
    grad = np.zeros_like(variable.vector)
    for i in range(len(variable.vector)):
        original = variable.vector[i]
        variable.vector[i] = original + epsilon
        plus = loss()
        variable.vector[i] = original - epsilon
        minus = loss()
        variable.vector[i] = original
        grad[i] = (plus - minus) / (2 * epsilon)
    return grad


def numerical_vector_gradient(loss: Callable[[np.ndarray], float], point: np.ndarray,
                              epsilon: float = EPSILON) -> np.ndarray:
    """Central-difference gradient of ``loss(x)`` at ``point``."""
    grad = np.zeros_like(point)
    for i in range(len(point)):
        step = np.zeros_like(point)
        step[i] = epsilon
        grad[i] = (loss(point + step) - loss(point - step)) / (2 * epsilon)
    return grad


def perturbed(variables: Iterable[Variable], direction: Dict[Variable, np.ndarray],
              amount: float, fn: Callable[[], object]):
    """Evaluate ``fn`` with every variable moved by ``amount * direction``."""
    originals = {v: v.vector.copy() for v in variables if v in direction}
    for v in originals:
        v.vector += amount * direction[v]
    try:
        return fn()
    finally:
        for v, original in originals.items():
            v.vector[:] = original


def assert_gradients_close(actual: np.ndarray, expected: np.ndarray,
                           rtol: float = 1e-4, atol: float = 1e-6) -> None:
    np.testing.assert_allclose(actual, expected, rtol=rtol, atol=atol)
