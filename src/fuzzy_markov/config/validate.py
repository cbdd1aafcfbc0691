"""Environment validation for fuzzy_markov dependencies."""

import sys
import warnings

from packaging import version


def check_environment(min_numpy: str = "1.25", min_scipy: str = "1.11") -> None:
    """Check that environment meets minimum dependency requirements.

    Parameters
    ----------
    min_numpy : str, default="1.25"
        Minimum required NumPy version
    min_scipy : str, default="1.11"
        Minimum required SciPy version

    Raises
    ------
    RuntimeError
        If any dependency requirements are not met
    """
    errors = []

    if sys.version_info < (3, 11):
        errors.append(f"Python 3.11+ required, found {sys.version_info.major}.{sys.version_info.minor}")

    try:
        import numpy as np
        if version.parse(np.__version__) < version.parse(min_numpy):
            errors.append(f"NumPy {min_numpy}+ required, found {np.__version__}")
    except ImportError:
        errors.append("NumPy not installed - required for array operations")

    try:
        import scipy
        if version.parse(scipy.__version__) < version.parse(min_scipy):
            errors.append(f"SciPy {min_scipy}+ required, found {scipy.__version__}")
    except ImportError:
        errors.append("SciPy not installed - required for log-softmax")

    optional_warnings = []
    try:
        import matplotlib
        if version.parse(matplotlib.__version__) < version.parse("3.5"):
            optional_warnings.append(f"Matplotlib 3.5+ recommended, found {matplotlib.__version__}")
    except ImportError:
        optional_warnings.append("Matplotlib not found - required for parameter plots")

    if errors:
        error_msg = "Environment validation failed:\n" + "\n".join(f"  - {err}" for err in errors)
        if optional_warnings:
            error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warn}" for warn in optional_warnings)
        error_msg += "\n\nTo install required dependencies:\n  pip install numpy scipy matplotlib packaging"
        raise RuntimeError(error_msg)

    if optional_warnings:
        warning_msg = "Environment warnings:\n" + "\n".join(f"  - {warn}" for warn in optional_warnings)
        warnings.warn(warning_msg, UserWarning)


def get_dependency_versions() -> dict:
    """Versions of all relevant dependencies, 'not installed' when missing."""
    versions = {
        'python': f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    }

    for name in ('numpy', 'scipy', 'matplotlib', 'packaging', 'tomli_w'):
        try:
            module = __import__(name)
            versions[name] = getattr(module, '__version__', 'unknown')
        except ImportError:
            versions[name] = 'not installed'

    return versions


def format_environment_info() -> str:
    versions = get_dependency_versions()

    lines = ["Fuzzy Markov - Environment Information", "=" * 50, "", "Core Dependencies:"]
    for pkg in ['python', 'numpy', 'scipy']:
        lines.append(f"  {pkg:12}: {versions[pkg]}")

    lines += ["", "Visualization:"]
    lines.append(f"  {'matplotlib':12}: {versions['matplotlib']}")

    lines += ["", "Configuration:"]
    for pkg in ['packaging', 'tomli_w']:
        lines.append(f"  {pkg:12}: {versions[pkg]}")

    lines += ["", "System Information:",
              f"  Platform     : {sys.platform}",
              f"  Architecture : {'64-bit' if sys.maxsize > 2**32 else '32-bit'}"]
    return "\n".join(lines)


def print_environment_info() -> None:
    """Print comprehensive environment information."""
    print(format_environment_info())
