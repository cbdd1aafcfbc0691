"""
Pytest configuration and shared fixtures for the fuzzy_markov test suite.
"""

import os
import sys
from pathlib import Path

import numpy as np
import pytest

os.environ.setdefault("MPLBACKEND", "Agg")

# Add src to path for testing without an installed package
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from fuzzy_markov.config import set_global_seed
from fuzzy_markov.core import Block


@pytest.fixture(scope="session")
def global_test_seed():
    """Set global random seed for all tests to ensure reproducibility."""
    seed = 42
    set_global_seed(seed)
    return seed


@pytest.fixture
def rng():
    """Independent generator so tests do not depend on execution order."""
    return np.random.default_rng(1234)


@pytest.fixture
def small_block(rng):
    """Default block: 4 symbols, 3 states, start logit 100."""
    return Block.create(alphabet_size=4, state_count=3, rng=rng)


@pytest.fixture
def soft_block(rng):
    """Block whose initial distribution is far from certain.

    Gives every state non-negligible mass so gradients reach all parameters.
    """
    return Block.create(alphabet_size=4, state_count=3, rng=rng, start_logit=0.7)


@pytest.fixture
def random_log_distribution(rng):
    """Factory for valid log-probability vectors of a given length."""
    def make(length: int) -> np.ndarray:
        logits = rng.normal(size=length)
        return logits - np.log(np.sum(np.exp(logits)))
    return make


@pytest.fixture
def serialized_block_file(tmp_path, small_block):
    """A block saved to a temporary JSON file."""
    from fuzzy_markov.io import save_block
    return save_block(small_block, tmp_path / "block.json")
