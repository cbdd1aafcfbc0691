"""Configuration management for fuzzy_markov.

Provides global configuration and random seed management for reproducible
parameter initialization.
"""

from .settings import get_config, Settings
from .random_state import set_global_seed, get_environment_seed, get_rng
from .defaults import MINIMAL_CONFIG, BYTE_LEVEL_CONFIG, TEXT_CONFIG, PRESET_CONFIGS, DefaultConfig

__all__ = [
    'get_config',
    'set_global_seed',
    'get_environment_seed',
    'get_rng',
    'Settings',
    'MINIMAL_CONFIG',
    'BYTE_LEVEL_CONFIG',
    'TEXT_CONFIG',
    'PRESET_CONFIGS',
    'DefaultConfig'
]
