"""Random seed handling for parameter initialization.

Nothing is seeded on import. A seed comes from, in order: an explicit value
(``--seed`` or ``Settings.random_seed``), the ``FUZZY_MARKOV_SEED``
environment variable, or fresh operating-system entropy.
"""

import hashlib
import os
import random
from typing import Optional

import numpy as np

SEED_ENVIRONMENT_VARIABLE = 'FUZZY_MARKOV_SEED'


def set_global_seed(seed: int) -> None:
    """Seed Python's and NumPy's global generators.

    ``Block.create`` without an explicit generator draws from the global
    NumPy state, so it becomes reproducible after this call.

    Parameters
    ----------
    seed : int
        Random seed value for reproducibility
    """
    random.seed(seed)
    np.random.seed(seed)


def create_deterministic_seed(base_string: str) -> int:
    """Create a deterministic seed from a string.

    Parameters
    ----------
    base_string : str
        String to hash, e.g. an experiment or model name

    Returns
    -------
    int
        Seed in ``[0, 2**31 - 1)``
    """
    hash_hex = hashlib.sha256(base_string.encode()).hexdigest()
    return int(hash_hex[:8], 16) % (2**31 - 1)


def get_environment_seed() -> Optional[int]:
    """Seed from ``FUZZY_MARKOV_SEED``, hashing non-integer values.

    Returns None when the variable is unset or empty.
    """
    env_seed = os.environ.get(SEED_ENVIRONMENT_VARIABLE)
    if not env_seed:
        return None
    try:
        return int(env_seed)
    except ValueError:
        return create_deterministic_seed(env_seed)


def get_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create a NumPy generator.

    Parameters
    ----------
    seed : Optional[int]
        Explicit seed. When None the environment seed is used if set,
        otherwise the generator draws fresh entropy.
    """
    if seed is None:
        seed = get_environment_seed()
    return np.random.default_rng(seed)
