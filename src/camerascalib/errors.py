"""Exceptions raised by the camera calibration tools.

Every fatal condition maps to a distinct process exit code so that scripts
driving the tools can tell the failure sites apart.
"""

from typing import Optional


EXIT_OK = 0
EXIT_BAD_ARGUMENTS = -1
EXIT_CAPTURE_FAILED = -4
EXIT_CALIBRATOR_FAILED = -5
EXIT_NO_FRAMES = -10


class CamerasCalibError(Exception):
    """Base class for fatal errors; carries the process exit code"""

    exit_code = EXIT_BAD_ARGUMENTS

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(CamerasCalibError):
    """Invalid command line arguments or settings file"""

    exit_code = EXIT_BAD_ARGUMENTS


class CaptureOpenError(CamerasCalibError):
    """A capture pipeline could not be opened"""

    exit_code = EXIT_CAPTURE_FAILED

    def __init__(self, message: str, camera_id: int, pipeline: str):
        super().__init__(message)
        self.camera_id = camera_id
        self.pipeline = pipeline


class CalibratorStartError(CamerasCalibError):
    """The external calibration session could not be constructed"""

    exit_code = EXIT_CALIBRATOR_FAILED


class NoFramesError(CamerasCalibError):
    """The loop stopped before a single frame pair was processed"""

    exit_code = EXIT_NO_FRAMES
