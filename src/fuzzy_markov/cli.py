"""Command-line interface for fuzzy Markov blocks.

Sub-commands::

    fuzzy-markov init block.json --alphabet-size 256 --state-count 32
    fuzzy-markov inspect block.json
    fuzzy-markov plot block.json overview.png --symbol 3
    fuzzy-markov env
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import Settings, get_config, get_rng
from .core.block import Block
from .exceptions import DeserializationError
from .io import format_summary, load_block, save_block, summarize_block

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the root logger.

    Args:
        verbose: If ``True`` set console log level to ``DEBUG`` else ``WARNING``.
        log_file: Optional path to a log file, always written at ``DEBUG``.
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    handlers = []

    # Console handler on stderr so command output stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers)
    logging.debug("Logging initialised. Log file: %s", log_file)


def _load_settings(args: argparse.Namespace) -> Settings:
    if args.config is not None:
        settings = Settings.from_toml(args.config)
    else:
        settings = Settings.from_preset(args.preset)

    overrides = {}
    if args.alphabet_size is not None:
        overrides['alphabet_size'] = args.alphabet_size
    if args.state_count is not None:
        overrides['state_count'] = args.state_count
    if args.seed is not None:
        overrides['random_seed'] = args.seed
    return settings.update(**overrides) if overrides else settings


# -----------------------------------------------------------------------------
# Sub-command implementations
# -----------------------------------------------------------------------------

def _cmd_init(args: argparse.Namespace) -> int:
    """Entry point for the ``init`` sub-command."""
    try:
        settings = _load_settings(args)
    except (FileNotFoundError, ValueError, TypeError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    try:
        block = Block.from_settings(settings, rng=get_rng(settings.random_seed))
    except ValueError as exc:
        logger.error("Cannot create block: %s", exc)
        return 1

    path = save_block(block, args.output)
    print(f"Wrote block with {block.state_count} states and "
          f"{block.alphabet_size} symbols to {path}")
    return 0


def _load_or_report(path: str) -> Optional[Block]:
    try:
        return load_block(path)
    except FileNotFoundError as exc:
        logger.error("Failed to read file: %s", exc)
    except DeserializationError as exc:
        logger.error("Failed to deserialize: %s", exc)
    return None


def _cmd_inspect(args: argparse.Namespace) -> int:
    """Entry point for the ``inspect`` sub-command."""
    block = _load_or_report(args.block_file)
    if block is None:
        return 1

    threshold = args.threshold
    if threshold is None:
        try:
            threshold = get_config(args.config, reload=True).coverage_threshold
        except (FileNotFoundError, ValueError, TypeError) as exc:
            logger.error("Failed to load configuration: %s", exc)
            return 1

    try:
        summary = summarize_block(block, threshold=threshold)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    print(format_summary(summary))
    return 0


def _cmd_plot(args: argparse.Namespace) -> int:
    """Entry point for the ``plot`` sub-command."""
    block = _load_or_report(args.block_file)
    if block is None:
        return 1

    import matplotlib
    matplotlib.use("Agg")
    from .viz import create_block_overview, save_figure  # lazy import

    try:
        fig = create_block_overview(block, symbol=args.symbol)
    except ValueError as exc:
        logger.error("Cannot plot block: %s", exc)
        return 1
    path = save_figure(fig, args.output)
    logger.info("Saved figure to %s", path)
    print(f"Saved figure to {path}")
    return 0


def _cmd_env(args: argparse.Namespace) -> int:
    """Entry point for the ``env`` sub-command."""
    from .config.validate import check_environment, format_environment_info

    print(format_environment_info())
    try:
        check_environment()
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    return 0


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fuzzy-markov",
        description="Fuzzy Markov block command-line interface",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging output.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write DEBUG logs to this file.",
    )

    sub_parsers = parser.add_subparsers(dest="command", required=True)

    # init --------------------------------------------------------------------
    init_parser = sub_parsers.add_parser("init", help="Create a randomly initialised block")
    init_parser.add_argument("output", type=str, help="Destination JSON file.")
    init_parser.add_argument("--config", type=str, default=None, help="TOML settings file.")
    init_parser.add_argument("--preset", type=str, default="minimal",
                             help="Preset used when no --config is given.")
    init_parser.add_argument("--alphabet-size", type=int, default=None)
    init_parser.add_argument("--state-count", type=int, default=None)
    init_parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    init_parser.set_defaults(func=_cmd_init)

    # inspect -----------------------------------------------------------------
    inspect_parser = sub_parsers.add_parser("inspect", help="Print the most probable symbols")
    inspect_parser.add_argument("block_file", type=str, help="Serialized block.")
    inspect_parser.add_argument("--threshold", type=float, default=None,
                                help="Cumulative probability to exceed; the settings' "
                                     "coverage_threshold when omitted.")
    inspect_parser.add_argument("--config", type=str, default=None,
                                help="TOML settings file; default locations when omitted.")
    inspect_parser.set_defaults(func=_cmd_inspect)

    # plot --------------------------------------------------------------------
    plot_parser = sub_parsers.add_parser("plot", help="Plot learned distributions")
    plot_parser.add_argument("block_file", type=str, help="Serialized block.")
    plot_parser.add_argument("output", type=str, help="Image file (format from suffix).")
    plot_parser.add_argument("--symbol", type=int, default=0,
                             help="Input symbol whose transition matrix is drawn.")
    plot_parser.set_defaults(func=_cmd_plot)

    # env ---------------------------------------------------------------------
    env_parser = sub_parsers.add_parser("env", help="Report dependency versions")
    env_parser.set_defaults(func=_cmd_env)

    return parser


# -----------------------------------------------------------------------------
# Main entry point
# -----------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point. Parse ``argv`` and dispatch to sub-command implementation."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Logging must be set up *after* parsing to respect --verbose flag.
    _setup_logging(verbose=args.verbose, log_file=args.log_file)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
