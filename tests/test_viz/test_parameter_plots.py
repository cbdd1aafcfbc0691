"""Tests for parameter distribution plots."""

import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest

from fuzzy_markov.viz import (
    ParameterPlotConfig,
    create_block_overview,
    output_probability_matrix,
    plot_output_heatmap,
    plot_start_distribution,
    plot_transition_heatmap,
    save_figure,
    transition_probability_matrix,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


class TestProbabilityMatrices:
    """Test suite for the matrices behind the heatmaps."""

    def test_output_matrix(self, small_block):
        matrix = output_probability_matrix(small_block)
        assert matrix.shape == (3, 4)
        np.testing.assert_allclose(matrix.sum(axis=1), 1.0)

    def test_transition_matrix(self, small_block):
        matrix = transition_probability_matrix(small_block, 2)
        assert matrix.shape == (3, 3)
        np.testing.assert_allclose(matrix.sum(axis=1), 1.0)

    def test_transition_rows_follow_states(self, small_block):
        matrix = transition_probability_matrix(small_block, 1)
        logits = small_block.entries[2].transitions[1].vector
        np.testing.assert_allclose(matrix[2], np.exp(logits) / np.exp(logits).sum())

    @pytest.mark.parametrize("symbol", [-1, 4])
    def test_invalid_symbol(self, small_block, symbol):
        with pytest.raises(ValueError, match="outside alphabet"):
            transition_probability_matrix(small_block, symbol)


class TestPlots:
    """Test suite for individual panels."""

    def test_start_distribution(self, small_block):
        ax = plot_start_distribution(small_block)
        assert len(ax.patches) == 3
        assert ax.get_title() == 'Initial state distribution'

    def test_output_heatmap_on_given_axes(self, small_block):
        fig, ax = plt.subplots()
        returned = plot_output_heatmap(small_block, ax=ax)
        assert returned is ax
        assert len(ax.images) == 1
        assert ax.images[0].get_array().shape == (3, 4)

    def test_transition_heatmap_title(self, small_block):
        ax = plot_transition_heatmap(small_block, 3)
        assert ax.get_title() == 'Transitions on symbol 3'

    def test_custom_config(self, small_block):
        config = ParameterPlotConfig(colormap='magma', font_size=8)
        ax = plot_output_heatmap(small_block, config=config)
        assert ax.images[0].get_cmap().name == 'magma'


class TestOverview:
    def test_three_panels(self, small_block):
        fig = create_block_overview(small_block, symbol=1)
        # Two heatmaps add a colorbar axis each
        assert len(fig.axes) == 5
        assert 'Fuzzy Markov block (3 states, 4 symbols)' in fig._suptitle.get_text()

    def test_invalid_symbol(self, small_block):
        with pytest.raises(ValueError):
            create_block_overview(small_block, symbol=10)

    def test_save_figure(self, small_block, tmp_path):
        fig = create_block_overview(small_block)
        path = save_figure(fig, tmp_path / "figures" / "overview.png", dpi=50)
        assert path.exists()
        assert path.stat().st_size > 0
        assert not plt.fignum_exists(fig.number)
