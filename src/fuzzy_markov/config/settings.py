"""Main configuration settings with TOML loading support."""

from dataclasses import dataclass, asdict
from typing import Optional, Union, List
from pathlib import Path
import logging
import tomllib

import tomli_w

from .defaults import DefaultConfig, PRESET_CONFIGS, validate_config

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Configuration of a fuzzy Markov block and the tooling around it.

    Can be loaded from TOML files, falling back to presets otherwise.
    """

    # Model shape
    alphabet_size: int = 4
    state_count: int = 3

    # Initialization
    start_logit: float = 100.0
    output_init_std: float = 1.0
    transition_init_std: float = 2.0

    # Processing
    n_parallel: int = 1

    # Inspection
    coverage_threshold: float = 0.95

    # Reproducibility
    random_seed: Optional[int] = None

    verbose: bool = False

    def __post_init__(self):
        """Validate settings after initialization."""
        for warning in self.validate():
            if self.verbose:
                print(f"Configuration warning: {warning}")
            logger.debug("Configuration warning: %s", warning)

    def validate(self) -> List[str]:
        """Warnings for questionable (but usable) values."""
        return validate_config(DefaultConfig(
            alphabet_size=self.alphabet_size,
            state_count=self.state_count,
            start_logit=self.start_logit,
            output_init_std=self.output_init_std,
            transition_init_std=self.transition_init_std,
            n_parallel=self.n_parallel,
            coverage_threshold=self.coverage_threshold
        ))

    @classmethod
    def from_preset(cls, preset: str) -> 'Settings':
        """Create settings from a preset configuration.

        Parameters
        ----------
        preset : str
            Preset name ('minimal', 'byte_level', 'text')
        """
        if preset not in PRESET_CONFIGS:
            raise ValueError(f"Unknown preset '{preset}'. Available: {list(PRESET_CONFIGS.keys())}")

        return cls(**asdict(PRESET_CONFIGS[preset]))

    @classmethod
    def from_toml(cls, toml_path: Union[str, Path]) -> 'Settings':
        """Load settings from TOML file.

        Sections ``[model]``, ``[initialization]``, ``[processing]``,
        ``[inspection]`` and ``[advanced]`` are flattened; top-level keys are
        accepted as well.

        Raises
        ------
        FileNotFoundError
            If TOML file doesn't exist
        ValueError
            If the file sets unknown keys
        """
        toml_path = Path(toml_path)
        if not toml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {toml_path}")

        with open(toml_path, 'rb') as f:
            config_data = tomllib.load(f)

        settings_data = {}
        for section in ('model', 'initialization', 'processing', 'inspection', 'advanced'):
            if section in config_data:
                settings_data.update(config_data[section])
        for key, value in config_data.items():
            if not isinstance(value, dict):
                settings_data[key] = value

        unknown = set(settings_data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown settings in {toml_path}: {sorted(unknown)}")

        return cls(**settings_data)

    def to_toml(self, toml_path: Union[str, Path]) -> None:
        """Save settings to TOML file, grouped into sections."""
        config_data = {
            'model': {
                'alphabet_size': self.alphabet_size,
                'state_count': self.state_count
            },
            'initialization': {
                'start_logit': self.start_logit,
                'output_init_std': self.output_init_std,
                'transition_init_std': self.transition_init_std
            },
            'processing': {
                'n_parallel': self.n_parallel
            },
            'inspection': {
                'coverage_threshold': self.coverage_threshold
            },
            'advanced': {
                'verbose': self.verbose
            }
        }
        # TOML has no null
        if self.random_seed is not None:
            config_data['advanced']['random_seed'] = self.random_seed

        toml_path = Path(toml_path)
        with open(toml_path, 'wb') as f:
            tomli_w.dump(config_data, f)

    def update(self, **kwargs) -> 'Settings':
        """Create new Settings with updated values."""
        current_dict = asdict(self)
        current_dict.update(kwargs)
        return Settings(**current_dict)


# Global configuration instance
_GLOBAL_CONFIG: Optional[Settings] = None


def get_config(config_path: Optional[Union[str, Path]] = None,
               preset: Optional[str] = None,
               reload: bool = False) -> Settings:
    """Get global configuration settings.

    Parameters
    ----------
    config_path : Optional[Union[str, Path]]
        Path to TOML configuration file. If None, looks for default locations.
    preset : Optional[str]
        Preset name used when no configuration file is found
    reload : bool
        Force reload configuration even if already loaded
    """
    global _GLOBAL_CONFIG

    if _GLOBAL_CONFIG is not None and not reload:
        return _GLOBAL_CONFIG

    if config_path is not None:
        _GLOBAL_CONFIG = Settings.from_toml(config_path)
    else:
        default_paths = [
            Path('fuzzy_markov.toml'),
            Path.home() / '.fuzzy_markov.toml',
            Path.cwd() / 'config' / 'fuzzy_markov.toml'
        ]

        config_loaded = False
        for path in default_paths:
            if path.exists():
                try:
                    _GLOBAL_CONFIG = Settings.from_toml(path)
                    config_loaded = True
                    break
                except (tomllib.TOMLDecodeError, ValueError, TypeError) as e:
                    logger.warning("Could not load config from %s: %s", path, e)

        if not config_loaded:
            _GLOBAL_CONFIG = Settings.from_preset(preset or 'minimal')

    if _GLOBAL_CONFIG.random_seed is not None:
        from .random_state import set_global_seed
        set_global_seed(_GLOBAL_CONFIG.random_seed)

    return _GLOBAL_CONFIG

