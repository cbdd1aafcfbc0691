"""Log-domain probability math shared by the differentiable graph.

Every quantity handled by the fuzzy Markov block is a log-probability. This
module holds the numerically stable primitives (log-softmax, softmax and
log-domain addition) together with the vector-Jacobian and Jacobian-vector
products that the autodiff nodes use for reverse-mode and R-operator passes.
"""

import numpy as np
from scipy import special
from typing import Tuple
import warnings


def log_softmax(x: np.ndarray) -> np.ndarray:
    """Normalize logits into a log-probability vector.

    Parameters
    ----------
    x : np.ndarray, shape (n,)
        Unnormalized logits

    Returns
    -------
    np.ndarray, shape (n,)
        ``x - log(Σ exp(x))``; exponentiates to a distribution summing to 1

    Examples
    --------
    >>> np.exp(log_softmax(np.array([1.0, 2.0, 3.0]))).sum()
    1.0
    """
    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.shape[0] == 0:
        raise ValueError(f"log_softmax expects a non-empty vector, got shape {x.shape}")

    result = special.log_softmax(x)
    if not np.all(np.isfinite(result)) and np.all(np.isfinite(x)):
        warnings.warn("Non-finite log-probabilities produced by log_softmax")
    return result


def softmax(x: np.ndarray) -> np.ndarray:
    """Normalize logits into a probability vector (max-shifted for stability)."""
    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.shape[0] == 0:
        raise ValueError(f"softmax expects a non-empty vector, got shape {x.shape}")
    return special.softmax(x)


def log_add(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise ``log(exp(a) + exp(b))``.

    Computed as ``max(a, b) + log1p(exp(min(a, b) - max(a, b)))`` so large
    magnitudes neither overflow nor lose the smaller term entirely.
    """
    return np.logaddexp(a, b)


def log_add_weights(a: np.ndarray, b: np.ndarray, total: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Partial derivatives of ``log_add(a, b)`` with respect to each argument.

    Parameters
    ----------
    a, b : np.ndarray
        Arguments of the log-domain sum
    total : np.ndarray
        ``log_add(a, b)``, already computed by the caller

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(exp(a - total), exp(b - total))``. Both lie in [0, 1] and sum to 1.
    """
    return np.exp(a - total), np.exp(b - total)


def log_softmax_vjp(probs: np.ndarray, upstream: np.ndarray) -> np.ndarray:
    """Backpropagate ``upstream`` through log-softmax.

    With ``J[i,j] = δ_ij - p_j`` the product ``Jᵀu`` is ``u - p Σu``.
    """
    return upstream - probs * np.sum(upstream)


def log_softmax_jvp(probs: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Directional derivative of log-softmax: ``J dx = dx - (p · dx)``."""
    return direction - np.dot(probs, direction)


def softmax_vjp(probs: np.ndarray, upstream: np.ndarray) -> np.ndarray:
    """Backpropagate ``upstream`` through softmax: ``p * (u - p · u)``."""
    return probs * (upstream - np.dot(probs, upstream))


def softmax_jvp(probs: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Directional derivative of softmax: ``p * (dx - p · dx)``."""
    return probs * (direction - np.dot(probs, direction))


def log_softmax_jacobian(x: np.ndarray) -> np.ndarray:
    """Jacobian of log-softmax.

    Parameters
    ----------
    x : np.ndarray, shape (n,)
        Logit values

    Returns
    -------
    np.ndarray, shape (n, n)
        ``J[i,j] = ∂ log f_i / ∂ x_j = δ_ij - f_j`` with ``f`` the softmax of ``x``
    """
    probs = softmax(x)
    return np.eye(len(probs)) - probs[np.newaxis, :]


def log_softmax_hessian(x: np.ndarray) -> np.ndarray:
    """Hessian of each log-softmax component.

    ``H[i,j] = ∂² log f_k / ∂x_i ∂x_j = f_i f_j - δ_ij f_i`` (identical for every k).

    Parameters
    ----------
    x : np.ndarray, shape (n,)
        Logit values

    Returns
    -------
    np.ndarray, shape (n, n)
        Symmetric negative semi-definite matrix
    """
    probs = softmax(x)
    return np.outer(probs, probs) - np.diag(probs)


def validate_log_distribution(log_probs: np.ndarray, atol: float = 1e-6) -> bool:
    """Check that a log-probability vector exponentiates to a distribution.

    Parameters
    ----------
    log_probs : np.ndarray
        Log-probabilities to check
    atol : float, default=1e-6
        Absolute tolerance for the sum-to-one check

    Returns
    -------
    bool
        True if the vector is a valid distribution

    Raises
    ------
    AssertionError
        If the probabilities do not sum to 1 within tolerance
    """
    total = np.sum(np.exp(log_probs))
    if not np.isclose(total, 1.0, atol=atol):
        raise AssertionError(
            f"Log-distribution exponentiates to {total:.8f}, expected 1.0 ± {atol}"
        )
    return True
