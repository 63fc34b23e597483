"""
Command-Line Interface - Argument Parsing and Entry Point

This module provides the command-line interface for Inscription Reader.
It handles:
- Command-line argument parsing
- Argument validation
- Settings loading with command-line overrides
- Batch or interactive runs

Usage:
    python -m inscription_reader stone_1.jpg stone_2.jpg --scale 30
    python -m inscription_reader            # interactive
    python -m inscription_reader --help
"""

import sys
import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from inscription_reader.application import InscriptionApplication
from inscription_reader.core.errors import ConfigurationError
from inscription_reader.models import SessionMode, SCALE_MIN, SCALE_MAX, NOISE_MIN, NOISE_MAX
from inscription_reader.services import AppSettings, ConfigurationService


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: List of arguments to parse. If None, uses sys.argv[1:]

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Transliterate photographs of an inscription",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s stone_left.jpg stone_right.jpg
  %(prog)s stone.jpg --scale 30 --noise-divisor 0.9 --mode single-shot
  %(prog)s --backend-url http://10.0.0.5:8000

Without images an interactive prompt is started.
        """
    )

    parser.add_argument(
        "images",
        nargs="*",
        help="Photographs to translate, in reading order"
    )

    parser.add_argument(
        "--scale",
        type=int,
        default=None,
        help=f"Resize factor in percent ({SCALE_MIN}-{SCALE_MAX})"
    )

    parser.add_argument(
        "--noise-divisor",
        type=float,
        default=None,
        help=f"Noise reduction divisor ({NOISE_MIN}-{NOISE_MAX})"
    )

    parser.add_argument(
        "--mode",
        type=str,
        default=None,
        choices=[mode.value for mode in SessionMode],
        help="Backend workflow variant (default: from settings, continuous)"
    )

    parser.add_argument(
        "--backend-url",
        type=str,
        default=None,
        help="Recognition service base URL"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds"
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory the final document is saved to"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Settings file (YAML)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (default: from settings, INFO)"
    )

    return parser.parse_args(args)


def validate_args(args: argparse.Namespace) -> bool:
    """Validate parsed command-line arguments.

    Args:
        args: Parsed arguments from parse_args()

    Returns:
        True if arguments are valid, False otherwise
    """
    if args.scale is not None and not (SCALE_MIN <= args.scale <= SCALE_MAX):
        print(f"Error: Scale must be between {SCALE_MIN} and {SCALE_MAX}, got {args.scale}")
        return False

    if args.noise_divisor is not None and not (NOISE_MIN <= args.noise_divisor <= NOISE_MAX):
        print(f"Error: Noise divisor must be between {NOISE_MIN} and {NOISE_MAX}, got {args.noise_divisor}")
        return False

    if args.timeout is not None and args.timeout <= 0:
        print(f"Error: Timeout must be positive, got {args.timeout}")
        return False

    if args.backend_url is not None and not args.backend_url.startswith(('http://', 'https://')):
        print(f"Error: Backend URL must start with http:// or https://: {args.backend_url}")
        return False

    for image in args.images:
        path = Path(image)
        if not path.exists():
            print(f"Error: Image not found: {image}")
            return False
        if not path.is_file():
            print(f"Error: Image path is not a file: {image}")
            return False

    if args.config is not None and not Path(args.config).is_file():
        print(f"Error: Settings file not found: {args.config}")
        return False

    return True


def setup_logging(level: str):
    """Configure application logging.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, level.upper(), None)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_settings(args: argparse.Namespace) -> AppSettings:
    """Load settings and apply command-line overrides.

    Raises:
        ConfigurationError: If the settings file or a resulting value is invalid
    """
    settings = ConfigurationService(Path(args.config) if args.config else None).load()

    overrides = {}
    if args.backend_url is not None:
        overrides['backend_url'] = args.backend_url.rstrip('/')
    if args.timeout is not None:
        overrides['timeout_seconds'] = args.timeout
    if args.mode is not None:
        overrides['session_mode'] = SessionMode.parse(args.mode)
    if args.output_dir is not None:
        overrides['download_dir'] = Path(args.output_dir).expanduser()
    if args.log_level is not None:
        overrides['log_level'] = args.log_level

    return replace(settings, **overrides)


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the application.

    This function:
    1. Parses and validates command-line arguments
    2. Loads settings and sets up logging
    3. Runs the batch, or the interactive prompt when no images are given
    4. Returns exit code

    Args:
        args: Command-line arguments. If None, uses sys.argv[1:]

    Returns:
        Exit code (0 = success, 1 = error)
    """
    parsed_args = parse_args(args)

    if not validate_args(parsed_args):
        return 1

    try:
        settings = load_settings(parsed_args)
    except ConfigurationError as e:
        print(f"Error: {e.format_user_message()}")
        return 1

    setup_logging(settings.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Starting Inscription Reader...")
    logger.debug(f"Settings: {settings.to_dict()}")

    app = None
    try:
        app = InscriptionApplication(settings)
        app.setup_dependencies()
        if parsed_args.images:
            exit_code = app.run_batch(
                parsed_args.images,
                scale=parsed_args.scale,
                noise_divisor=parsed_args.noise_divisor,
            )
        elif app.apply_parameters(parsed_args.scale, parsed_args.noise_divisor):
            exit_code = app.run_interactive()
        else:
            exit_code = 1

        logger.info(f"Application exited with code {exit_code}")
        return exit_code

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        print(f"Error: {e}")
        return 1

    finally:
        if app is not None:
            app.shutdown()


if __name__ == "__main__":
    sys.exit(main())
