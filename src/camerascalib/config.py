"""
Configuration for the camera calibration tools

Two tool variants share one control loop and differ only in their defaults.
Settings that are not command line flags come from an optional JSON settings
file and ``CAMERASCALIB_*`` environment variables.

Precedence: command line flag > environment > settings file > variant default.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from .calibrator import DEFAULT_CALIBRATOR, DEFAULT_CALIB_FILE
from .capture import BACKEND_OPENCV, SUPPORTED_BACKENDS
from .display import WindowLayout
from .errors import ConfigError

logger = logging.getLogger(__name__)

ENV_CONFIG = "CAMERASCALIB_CONFIG"
ENV_CALIBRATOR = "CAMERASCALIB_CALIBRATOR"
ENV_CAPTURE_BACKEND = "CAMERASCALIB_CAPTURE_BACKEND"
ENV_LOG_LEVEL = "CAMERASCALIB_LOG_LEVEL"
ENV_LOG_FILE = "CAMERASCALIB_LOG_FILE"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Variant:
    """Defaults and behaviour of one tool variant"""
    name: str
    description: str
    width: int
    height: int
    fps: int
    has_out_flag: bool
    measure_fps: bool
    require_frames: bool


CALIB_VARIANT = Variant(
    name="camerascalib",
    description=(
        "This is a calibration tool running on Jetson Nano or Jetson Xavier NX "
        "to generate transform between two CSI-cameras."
    ),
    width=1920,
    height=1080,
    fps=30,
    has_out_flag=True,
    measure_fps=False,
    require_frames=False,
)

STITCH_VARIANT = Variant(
    name="camerasstitch",
    description=(
        "This is a stitching preview running on Jetson Nano or Jetson Xavier NX "
        "to check and refine the transform between two CSI-cameras."
    ),
    width=1280,
    height=720,
    fps=30,
    has_out_flag=False,
    measure_fps=True,
    require_frames=True,
)

VARIANTS = {variant.name: variant for variant in (CALIB_VARIANT, STITCH_VARIANT)}


class SettingsManager:
    """Loads and validates the JSON settings file"""

    DEFAULT_SETTINGS = {
        "calibrator": DEFAULT_CALIBRATOR,
        "capture_backend": BACKEND_OPENCV,
        "match_mode": 0,
        "calib_file": DEFAULT_CALIB_FILE,
        "log_level": "INFO",
        "fps_report_interval": 5.0,
        "windows": {
            "width": 1280,
            "height": 720,
            "matches_position": [200, 100],
            "warping_position": None
        }
    }

    def __init__(self, settings_path: Optional[str] = None):
        """
        Args:
            settings_path: Path to the settings file; defaults are used when
                None or when the file does not exist
        """
        self.settings_path = Path(settings_path) if settings_path else None
        self.settings: Dict = self.load_settings()

    def load_settings(self) -> Dict:
        """
        Load the settings file merged over the defaults

        Raises:
            ConfigError: If the file cannot be read, is malformed or a field
                has a wrong type
        """
        if self.settings_path is None:
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        if not self.settings_path.exists():
            logger.warning(f"Settings file not found at {self.settings_path}, using defaults")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in settings file {self.settings_path}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read settings file {self.settings_path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file {self.settings_path} must contain a JSON object")

        settings = self._validate_and_merge(loaded)
        logger.info(f"Loaded settings from {self.settings_path}")
        return settings

    def _validate_and_merge(self, loaded: Dict) -> Dict:
        """Deep merge over the defaults and validate field types"""
        merged = copy.deepcopy(self.DEFAULT_SETTINGS)

        for key, value in loaded.items():
            if key not in merged:
                logger.warning(f"Ignoring unknown setting '{key}'")
                continue
            if isinstance(merged[key], dict):
                if not isinstance(value, dict):
                    raise ConfigError(f"'{key}' must be an object")
                merged[key].update(value)
            else:
                merged[key] = value

        self._validate_types(merged)
        return merged

    def _validate_types(self, settings: Dict) -> None:
        """
        Raises:
            ConfigError: If any field has an invalid type or value
        """
        if not isinstance(settings['calibrator'], str) or ':' not in settings['calibrator']:
            raise ConfigError("'calibrator' must be a 'module:attribute' reference")

        if settings['capture_backend'] not in SUPPORTED_BACKENDS:
            raise ConfigError(f"'capture_backend' must be one of {', '.join(SUPPORTED_BACKENDS)}")

        if isinstance(settings['match_mode'], bool) or not isinstance(settings['match_mode'], int):
            raise ConfigError("'match_mode' must be an integer")

        if not isinstance(settings['calib_file'], str) or not settings['calib_file']:
            raise ConfigError("'calib_file' must be a non-empty string")

        if str(settings['log_level']).upper() not in LOG_LEVELS:
            raise ConfigError(f"'log_level' must be one of {', '.join(LOG_LEVELS)}")

        if not isinstance(settings['fps_report_interval'], (int, float)):
            raise ConfigError("'fps_report_interval' must be numeric")

        windows = settings['windows']
        for key in ('width', 'height'):
            if isinstance(windows[key], bool) or not isinstance(windows[key], int) or windows[key] <= 0:
                raise ConfigError(f"'windows.{key}' must be a positive integer")

        for key in ('matches_position', 'warping_position'):
            position = windows[key]
            if position is None and key == 'warping_position':
                continue
            if not (isinstance(position, (list, tuple)) and len(position) == 2
                    and all(isinstance(v, int) for v in position)):
                raise ConfigError(f"'windows.{key}' must be a list of two integers")

    def window_layout(self) -> WindowLayout:
        windows = self.settings['windows']
        warping = windows['warping_position']
        return WindowLayout(
            width=windows['width'],
            height=windows['height'],
            matches_position=tuple(windows['matches_position']),
            warping_position=tuple(warping) if warping is not None else None,
        )


@dataclass
class AppConfig:
    """Resolved configuration of one run"""
    variant: Variant
    width: int
    height: int
    fps: int
    calib_file: str
    calibrator: str
    capture_backend: str
    match_mode: int
    log_level: str
    log_file: Optional[str]
    fps_report_interval: float
    window_layout: WindowLayout


def resolve_config(args, variant: Variant, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Combine parsed arguments, environment and settings file.

    Args:
        args: argparse namespace from the variant's parser
        variant: Tool variant the arguments were parsed for
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigError: On an invalid settings file or environment value
    """
    environ = os.environ if environ is None else environ

    settings_path = getattr(args, 'config', None) or environ.get(ENV_CONFIG)
    manager = SettingsManager(settings_path)
    settings = manager.settings

    calibrator = environ.get(ENV_CALIBRATOR) or settings['calibrator']

    capture_backend = environ.get(ENV_CAPTURE_BACKEND) or settings['capture_backend']
    if capture_backend not in SUPPORTED_BACKENDS:
        raise ConfigError(f"{ENV_CAPTURE_BACKEND} must be one of {', '.join(SUPPORTED_BACKENDS)}")

    log_level = (getattr(args, 'log_level', None) or environ.get(ENV_LOG_LEVEL) or settings['log_level']).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Log level must be one of {', '.join(LOG_LEVELS)}")

    calib_file = settings['calib_file']
    if variant.has_out_flag and getattr(args, 'out', None):
        calib_file = args.out

    return AppConfig(
        variant=variant,
        width=args.width,
        height=args.height,
        fps=args.fps,
        calib_file=calib_file,
        calibrator=calibrator,
        capture_backend=capture_backend,
        match_mode=settings['match_mode'],
        log_level=log_level,
        log_file=environ.get(ENV_LOG_FILE),
        fps_report_interval=float(settings['fps_report_interval']),
        window_layout=manager.window_layout(),
    )
