"""
Integration tests for the complete fuzzy Markov workflow.
"""

import numpy as np
import pytest

from fuzzy_markov.config import Settings, set_global_seed
from fuzzy_markov.core import Block, Gradient, SequenceRunner
from fuzzy_markov.io import format_summary, load_block, save_block, summarize_block

from test_core.gradient_checking import EPSILON, assert_gradients_close, perturbed


class TestBasicIntegration:
    """Basic integration tests."""

    @pytest.mark.integration
    def test_training_reduces_loss(self, global_test_seed):
        """Plain gradient descent on one sequence lowers its negative log-likelihood."""
        settings = Settings(alphabet_size=4, state_count=3, start_logit=0.0)
        block = Block.from_settings(settings, rng=np.random.default_rng(global_test_seed))
        runner = SequenceRunner(block)
        inputs = [0, 1, 2, 3, 0, 1, 2, 3]
        targets = inputs[1:] + [0]

        initial_loss, _ = runner.loss_and_gradient(inputs, targets)
        loss = initial_loss
        for _ in range(25):
            loss, grad = runner.loss_and_gradient(inputs, targets)
            for param in block.parameters():
                param.vector -= 0.05 * grad[param]

        final_loss, _ = runner.loss_and_gradient(inputs, targets)
        assert final_loss < initial_loss
        assert np.isfinite(final_loss)

    @pytest.mark.integration
    def test_hessian_vector_product_over_sequence(self, soft_block, rng):
        """Chained R-steps give the Hessian-vector product of the sequence loss."""
        inputs, targets = [1, 3, 0], [3, 0, 2]
        rvector = {p: rng.normal(size=p.vector.shape) for p in soft_block.parameters()}
        runner = SequenceRunner(soft_block)

        grad = Gradient.zeros(soft_block.parameters())
        rgrad = Gradient.zeros(soft_block.parameters())
        initial = soft_block.initial_r_state(rvector)
        steps = []
        state = initial
        for symbol in inputs:
            step = soft_block.step(symbol, state, rvector)
            steps.append(step)
            state = step.next_state

        state_grad, state_grad_r = None, None
        for step, target in zip(reversed(steps), reversed(targets)):
            upstream = np.zeros(soft_block.alphabet_size)
            upstream[target] = -1.0
            state_grad, state_grad_r = step.propagate_r_gradient(
                upstream, None, state_grad, state_grad_r, rgrad, grad)
        soft_block.propagate_start_r(initial, state_grad, state_grad_r, rgrad, grad)

        def gradient_at(amount):
            return perturbed(soft_block.parameters(), rvector, amount,
                             lambda: runner.loss_and_gradient(inputs, targets)[1])

        plain = runner.loss_and_gradient(inputs, targets)[1]
        plus, minus = gradient_at(EPSILON), gradient_at(-EPSILON)
        for param in soft_block.parameters():
            assert_gradients_close(grad[param], plain[param])
            assert_gradients_close(rgrad[param], (plus[param] - minus[param]) / (2 * EPSILON))

    @pytest.mark.integration
    def test_persisted_block_is_equivalent(self, tmp_path):
        """A saved and reloaded block yields the same loss, gradient and summary."""
        set_global_seed(99)
        block = Block.create(alphabet_size=6, state_count=4)
        path = save_block(block, tmp_path / "block.json")
        restored = load_block(path)

        inputs, targets = [5, 0, 2, 2], [0, 2, 2, 1]
        loss_a, grad_a = SequenceRunner(block).loss_and_gradient(inputs, targets)
        loss_b, grad_b = SequenceRunner(restored).loss_and_gradient(inputs, targets)
        assert loss_a == loss_b
        for a, b in zip(block.parameters(), restored.parameters()):
            np.testing.assert_array_equal(grad_a[a], grad_b[b])

        assert format_summary(summarize_block(block)) == format_summary(summarize_block(restored))

    @pytest.mark.integration
    def test_reproducibility(self):
        """Test pipeline reproducibility."""

        def run_pipeline(seed):
            set_global_seed(seed)
            block = Block.create(alphabet_size=4, state_count=3)
            return SequenceRunner(block).sample(30, rng=np.random.default_rng(seed))

        assert run_pipeline(12) == run_pipeline(12)
