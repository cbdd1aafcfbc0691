"""
Fuzzy Markov Visualization Module.

Figures of the start, output and transition distributions learned by a block.
"""

from .parameter_plots import (
    ParameterPlotConfig,
    output_probability_matrix,
    transition_probability_matrix,
    plot_start_distribution,
    plot_output_heatmap,
    plot_transition_heatmap,
    create_block_overview,
    save_figure
)

__all__ = [
    'ParameterPlotConfig',
    'output_probability_matrix',
    'transition_probability_matrix',
    'plot_start_distribution',
    'plot_output_heatmap',
    'plot_transition_heatmap',
    'create_block_overview',
    'save_figure'
]
