"""Human-readable summaries of a block's learned distributions.

For the initial distribution and each state's output distribution, the
summary lists the smallest set of symbols (most probable first) whose
cumulative probability exceeds a coverage threshold.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from ..core.block import Block
from ..core.log_domain import softmax


@dataclass
class BlockSummary:
    """Coverage sets of a block.

    Attributes
    ----------
    start : List[Tuple[int, float]]
        (state index, probability) pairs of the initial distribution
    outputs : List[List[Tuple[int, float]]]
        (symbol index, probability) pairs per latent state
    threshold : float
        Coverage threshold the sets were computed for
    """
    start: List[Tuple[int, float]]
    outputs: List[List[Tuple[int, float]]]
    threshold: float


def coverage_indices(logits: np.ndarray, threshold: float = 0.95) -> List[Tuple[int, float]]:
    """Most probable indices until their cumulative probability exceeds ``threshold``.

    Parameters
    ----------
    logits : np.ndarray
        Pre-softmax scores
    threshold : float, default=0.95
        Coverage to exceed; the index that crosses it is included

    Returns
    -------
    List[Tuple[int, float]]
        (index, probability) in descending probability; equal probabilities
        keep ascending index order

    Examples
    --------
    >>> [i for i, _ in coverage_indices(np.log([0.1, 0.6, 0.3]))]
    [1, 2, 0]
    """
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"Threshold must be in (0, 1], got {threshold}")
    probs = softmax(logits)
    order = np.argsort(-probs, kind='stable')

    selected = []
    total = 0.0
    for index in order:
        prob = float(probs[index])
        total += prob
        selected.append((int(index), prob))
        if total > threshold:
            break
    return selected


def summarize_block(block: Block, threshold: float = 0.95) -> BlockSummary:
    return BlockSummary(
        start=coverage_indices(block.start.vector, threshold),
        outputs=[coverage_indices(entry.output.vector, threshold) for entry in block.entries],
        threshold=threshold
    )


def _format_indices(pairs: List[Tuple[int, float]]) -> str:
    return "".join(f" {idx} (0x{idx:x}) (p={prob:.4f})" for idx, prob in pairs)


def format_summary(summary: BlockSummary) -> str:
    """Render a summary as one line for the start and one line per state."""
    lines = [f"Start states:{_format_indices(summary.start)}"]
    for state_idx, pairs in enumerate(summary.outputs):
        lines.append(f"State {state_idx} outputs:{_format_indices(pairs)}")
    return "\n".join(lines)
