"""Default model configurations for common symbol alphabets."""

from dataclasses import dataclass
from typing import List


@dataclass
class DefaultConfig:
    """Base configuration structure for a fuzzy Markov block."""

    # Model shape
    alphabet_size: int
    state_count: int

    # Initialization
    start_logit: float
    output_init_std: float
    transition_init_std: float

    # Processing
    n_parallel: int

    # Inspection
    coverage_threshold: float


# Small model for smoke tests and examples
MINIMAL_CONFIG = DefaultConfig(
    alphabet_size=4,
    state_count=3,
    start_logit=100.0,
    output_init_std=1.0,
    transition_init_std=2.0,
    n_parallel=1,
    coverage_threshold=0.95
)

# Raw bytes as symbols
BYTE_LEVEL_CONFIG = DefaultConfig(
    alphabet_size=256,
    state_count=32,
    start_logit=100.0,
    output_init_std=1.0,
    transition_init_std=2.0,
    n_parallel=4,
    coverage_threshold=0.95
)

# Lower-case text with punctuation
TEXT_CONFIG = DefaultConfig(
    alphabet_size=64,
    state_count=16,
    start_logit=100.0,
    output_init_std=1.0,
    transition_init_std=2.0,
    n_parallel=2,
    coverage_threshold=0.95
)

PRESET_CONFIGS = {
    "minimal": MINIMAL_CONFIG,
    "byte_level": BYTE_LEVEL_CONFIG,
    "text": TEXT_CONFIG
}

# Size guidelines
RECOMMENDED_MAX_STATES = 512  # Step cost grows with state_count ** 2
PARAMETERS_PER_MB = 131072  # 8-byte floats


def get_parameter_count(config: DefaultConfig) -> int:
    """Number of scalar parameters in a block with this configuration."""
    a, s = config.alphabet_size, config.state_count
    return s + s * a + s * a * s


def validate_config(config: DefaultConfig) -> List[str]:
    """Validate configuration parameters and return list of warnings.

    Hard errors (non-positive sizes) are left to block construction, which
    raises ``ValueError``.
    """
    warnings = []

    if config.alphabet_size < 2:
        warnings.append(f"Alphabet size {config.alphabet_size} leaves nothing to predict")

    if config.state_count > RECOMMENDED_MAX_STATES:
        warnings.append(f"State count {config.state_count} makes every step slow "
                        f"(each step touches state_count ** 2 transition logits)")

    if config.start_logit < 10:
        warnings.append(f"Start logit {config.start_logit} gives a diffuse initial distribution")

    if config.output_init_std <= 0 or config.transition_init_std <= 0:
        warnings.append("Initialization standard deviations should be positive")

    if not 0.0 < config.coverage_threshold <= 1.0:
        warnings.append(f"Coverage threshold {config.coverage_threshold} outside (0, 1]")

    if config.n_parallel < 1:
        warnings.append(f"n_parallel {config.n_parallel} treated as 1")

    n_params = get_parameter_count(config)
    if n_params > 100 * PARAMETERS_PER_MB:
        warnings.append(f"Block holds {n_params} parameters (~{n_params / PARAMETERS_PER_MB:.0f}MB)")

    return warnings
