"""
Parameter Distribution Visualization.

Figures of the distributions a block has learned: the initial state
distribution, each state's output distribution and, for a chosen input
symbol, the state-to-state transition matrix.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, Tuple, Union
from pathlib import Path
from dataclasses import dataclass

from ..core.block import Block
from ..core.log_domain import softmax


@dataclass
class ParameterPlotConfig:
    """Configuration for parameter distribution figures."""
    figure_size: Tuple[float, float] = (15, 4.5)
    dpi: int = 150
    font_size: int = 10
    colormap: str = 'viridis'
    bar_color: str = 'tab:blue'


def output_probability_matrix(block: Block) -> np.ndarray:
    """Output probabilities, shape (state_count, alphabet_size)."""
    return np.array([softmax(entry.output.vector) for entry in block.entries])


def transition_probability_matrix(block: Block, symbol: int) -> np.ndarray:
    """Next-state probabilities given ``symbol``, shape (state_count, state_count).

    Row ``s`` is the distribution over next states when currently in ``s``.
    """
    if not 0 <= symbol < block.alphabet_size:
        raise ValueError(f"Symbol {symbol} outside alphabet [0, {block.alphabet_size})")
    return np.array([softmax(entry.transitions[symbol].vector) for entry in block.entries])


def plot_start_distribution(block: Block, ax: Optional[plt.Axes] = None,
                            config: Optional[ParameterPlotConfig] = None) -> plt.Axes:
    if config is None:
        config = ParameterPlotConfig()
    if ax is None:
        _, ax = plt.subplots(figsize=(5, 4))

    probs = softmax(block.start.vector)
    ax.bar(np.arange(block.state_count), probs, color=config.bar_color)
    ax.set_xlabel('State', fontsize=config.font_size)
    ax.set_ylabel('Probability', fontsize=config.font_size)
    ax.set_title('Initial state distribution', fontsize=config.font_size + 1)
    ax.set_ylim(0, 1)
    return ax


def _heatmap(ax: plt.Axes, matrix: np.ndarray, xlabel: str, ylabel: str, title: str,
             config: ParameterPlotConfig) -> None:
    image = ax.imshow(matrix, aspect='auto', cmap=config.colormap, vmin=0.0, vmax=1.0)
    ax.set_xlabel(xlabel, fontsize=config.font_size)
    ax.set_ylabel(ylabel, fontsize=config.font_size)
    ax.set_title(title, fontsize=config.font_size + 1)
    ax.figure.colorbar(image, ax=ax, fraction=0.046, pad=0.04)


def plot_output_heatmap(block: Block, ax: Optional[plt.Axes] = None,
                        config: Optional[ParameterPlotConfig] = None) -> plt.Axes:
    if config is None:
        config = ParameterPlotConfig()
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 4))
    _heatmap(ax, output_probability_matrix(block), 'Output symbol', 'State',
             'Output distributions', config)
    return ax


def plot_transition_heatmap(block: Block, symbol: int, ax: Optional[plt.Axes] = None,
                            config: Optional[ParameterPlotConfig] = None) -> plt.Axes:
    if config is None:
        config = ParameterPlotConfig()
    if ax is None:
        _, ax = plt.subplots(figsize=(5, 4))
    _heatmap(ax, transition_probability_matrix(block, symbol), 'Next state', 'Current state',
             f'Transitions on symbol {symbol}', config)
    return ax


def create_block_overview(block: Block, symbol: int = 0,
                          config: Optional[ParameterPlotConfig] = None) -> plt.Figure:
    """Three-panel figure: start distribution, outputs, transitions for ``symbol``."""
    if config is None:
        config = ParameterPlotConfig()

    fig, axes = plt.subplots(1, 3, figsize=config.figure_size, dpi=config.dpi)
    plot_start_distribution(block, axes[0], config)
    plot_output_heatmap(block, axes[1], config)
    plot_transition_heatmap(block, symbol, axes[2], config)
    fig.suptitle(f'Fuzzy Markov block ({block.state_count} states, '
                 f'{block.alphabet_size} symbols)', fontsize=config.font_size + 2)
    fig.tight_layout()
    return fig


def save_figure(fig: plt.Figure, path: Union[str, Path], dpi: Optional[int] = None) -> Path:
    """Save ``fig`` (format from the file suffix) and close it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    return path
