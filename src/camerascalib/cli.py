"""
Command line entry points: ``camerascalib`` and ``camerasstitch``.

Both run the same capture loop; see ``config.CALIB_VARIANT`` and
``config.STITCH_VARIANT`` for their differences. Fatal conditions print a
one-line diagnostic to stderr and return a distinct negative exit code.
"""

from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .commands import COMMAND_HELP
from .config import CALIB_VARIANT, LOG_LEVELS, STITCH_VARIANT, AppConfig, Variant, resolve_config
from .control_loop import run_session
from .errors import (
    EXIT_BAD_ARGUMENTS,
    EXIT_NO_FRAMES,
    EXIT_OK,
    CamerasCalibError,
    CaptureOpenError,
    ConfigError,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that raises instead of exiting on bad arguments"""

    def error(self, message: str):
        raise ConfigError(message)


def build_epilog(variant: Variant) -> str:
    lines = ["runtime commands:"]
    for command, text in COMMAND_HELP.items():
        lines.append(f"  {command.value:<22}{text}")

    example = f"{variant.name} --width=1920 --height=1080 --fps=30"
    if variant.has_out_flag:
        example += " --out=/home/rose/cameras-1080p.xml"
    lines += ["", "example:", f"  {example}"]
    return "\n".join(lines)


def build_arg_parser(variant: Variant) -> ArgumentParser:
    parser = ArgumentParser(
        prog=variant.name,
        description=variant.description,
        epilog=build_epilog(variant),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=variant.width,
                        help=f"Capture width [Default = {variant.width}]")
    parser.add_argument("--height", type=int, default=variant.height,
                        help=f"Capture height [Default = {variant.height}]")
    parser.add_argument("--fps", type=int, default=variant.fps,
                        help=f"Frames per second [Default = {variant.fps}]")
    if variant.has_out_flag:
        parser.add_argument("--out", default=None,
                            help="Output calibration (path and) filename [Default = cameras.xml]")
    parser.add_argument("--config", default=None,
                        help="JSON settings file [Default = $CAMERASCALIB_CONFIG]")
    parser.add_argument("--log-level", default=None, type=str.upper, choices=LOG_LEVELS,
                        help="Logging level [Default = INFO]")
    return parser


def configure_logging(config: AppConfig) -> None:
    """
    Raises:
        ConfigError: If the log file cannot be opened
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        try:
            handlers.append(
                RotatingFileHandler(
                    config.log_file,
                    maxBytes=10*1024*1024,  # 10MB
                    backupCount=5
                )
            )
        except OSError as e:
            raise ConfigError(f"Cannot open log file {config.log_file}: {e}") from e
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT, handlers=handlers)


def main(argv: Optional[List[str]] = None, variant: Variant = CALIB_VARIANT, **session_kwargs) -> int:
    """
    Run one tool variant.

    Args:
        argv: Command line arguments (defaults to ``sys.argv[1:]``)
        variant: Tool variant
        session_kwargs: Passed to :func:`run_session` (capture/calibrator
            factories, windows, stop flag)

    Returns:
        Process exit code
    """
    parser = build_arg_parser(variant)

    try:
        args = parser.parse_args(argv)
        config = resolve_config(args, variant)
        configure_logging(config)
    except SystemExit as e:
        # --help
        return EXIT_OK if not e.code else EXIT_BAD_ARGUMENTS
    except ConfigError as e:
        print(f"{variant.name}: error: {e}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return e.exit_code

    logger.info(
        f"{variant.name}: {config.width}x{config.height}@{config.fps}, "
        f"calibration file {config.calib_file}, capture backend {config.capture_backend}"
    )

    try:
        frames = run_session(config, **session_kwargs)
    except CaptureOpenError as e:
        print(e.pipeline, file=sys.stderr)
        print(e, file=sys.stderr)
        return e.exit_code
    except CamerasCalibError as e:
        print(e, file=sys.stderr)
        return e.exit_code

    if variant.require_frames and frames == 0:
        print("No frames processed!", file=sys.stderr)
        return EXIT_NO_FRAMES

    return EXIT_OK


def calib_main() -> int:
    """Console script ``camerascalib``"""
    return main(variant=CALIB_VARIANT)


def stitch_main() -> int:
    """Console script ``camerasstitch``"""
    return main(variant=STITCH_VARIANT)


if __name__ == "__main__":
    raise SystemExit(calib_main())
