"""
Interface to the external camera calibration collaborator.

The calibration itself (feature matching, homography estimation, warping and
blending) lives in the external ``videostitcher`` library. The tools only talk
to it through :class:`CamerasCalib`; the concrete class is resolved at run time
from a ``module:attribute`` reference so any implementation can be plugged in.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Tuple

from .errors import CalibratorStartError

logger = logging.getLogger(__name__)

DEFAULT_CALIBRATOR = "videostitcher:CamerasCalib"
DEFAULT_CALIB_FILE = "cameras.xml"


@dataclass
class CalibSettings:
    """Settings the calibration session is constructed with"""
    image_size: Tuple[int, int]
    calib_file: str = DEFAULT_CALIB_FILE
    match_mode: int = 0


@dataclass
class EvaluationResult:
    """Result of evaluating the current transform on one frame pair"""
    psnr: float = 0.0
    mssim: Tuple[float, ...] = field(default_factory=tuple)
    stitched: Any = None


class CamerasCalib(ABC):
    """Calibration session accumulating the transform between two cameras"""

    @abstractmethod
    def feed(self, frames: Sequence) -> None:
        """Update the session with a GPU-resident frame pair"""

    @abstractmethod
    def draw_matches(self, frames: Sequence) -> Any:
        """Return an image visualising feature matches of a host frame pair"""

    @abstractmethod
    def evaluate(self, frames: Sequence) -> EvaluationResult:
        """Stitch a GPU-resident frame pair with the current transform"""

    @abstractmethod
    def estimate(self) -> None:
        """Estimate the transform from the frames fed so far"""

    @abstractmethod
    def save(self) -> None:
        """Write the current transform to the calibration file"""

    @abstractmethod
    def reset(self) -> None:
        """Drop the accumulated state and restart the calibration"""


class BindingCalibrator(CamerasCalib):
    """
    Adapts an object exposing the library's native method names
    (``Feed``, ``Matches``/``DrawMatches``, ``Evaluate``, ``Estimate``,
    ``Save``, ``Reset``) to :class:`CamerasCalib`.
    """

    REQUIRED_METHODS = ("Feed", "Evaluate", "Estimate", "Save", "Reset")

    def __init__(self, binding: Any):
        missing = [name for name in self.REQUIRED_METHODS if not callable(getattr(binding, name, None))]
        if missing:
            raise TypeError(f"Calibrator is missing methods: {', '.join(missing)}")

        self.binding = binding
        self._draw_matches = getattr(binding, "DrawMatches", None) or getattr(binding, "Matches", None)
        if not callable(self._draw_matches):
            raise TypeError("Calibrator is missing methods: Matches/DrawMatches")

    def feed(self, frames: Sequence) -> None:
        self.binding.Feed(frames)

    def draw_matches(self, frames: Sequence) -> Any:
        return self._draw_matches(frames)

    def evaluate(self, frames: Sequence) -> EvaluationResult:
        psnr, mssim, stitched = self.binding.Evaluate(frames)
        return EvaluationResult(psnr=float(psnr), mssim=tuple(mssim), stitched=stitched)

    def estimate(self) -> None:
        self.binding.Estimate()

    def save(self) -> None:
        self.binding.Save()

    def reset(self) -> None:
        self.binding.Reset()


def resolve_factory(reference: str) -> Callable[[CalibSettings], Any]:
    """Import the object named by a ``module:attribute`` reference"""
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Calibrator reference must look like 'module:attribute', got '{reference}'")

    target = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    return target


def start_calibrator(factory: Callable[[CalibSettings], Any], settings: CalibSettings,
                     name: Optional[str] = None) -> CamerasCalib:
    """
    Construct the calibration session with ``factory``.

    Raises:
        CalibratorStartError: If the factory raises or returns nothing
    """
    name = name or getattr(factory, "__qualname__", repr(factory))
    try:
        calib = factory(settings)
        if calib is None:
            raise RuntimeError("factory returned None")
        if not isinstance(calib, CamerasCalib):
            calib = BindingCalibrator(calib)
    except CalibratorStartError:
        raise
    except Exception as e:
        logger.error(f"Failed to construct calibrator {name}: {e}", exc_info=True)
        raise CalibratorStartError("Failed to start calibrator!") from e

    return calib


def load_calibrator(reference: str, settings: CalibSettings) -> CamerasCalib:
    """
    Construct the calibration session named by a ``module:attribute`` reference.

    Raises:
        CalibratorStartError: If the implementation cannot be imported or
            constructed, or the constructor returns nothing
    """
    logger.info(
        f"Starting calibrator {reference} (image_size={settings.image_size[0]}x{settings.image_size[1]}, "
        f"calib_file={settings.calib_file}, match_mode={settings.match_mode})"
    )

    try:
        factory = resolve_factory(reference)
    except Exception as e:
        logger.error(f"Failed to import calibrator {reference}: {e}", exc_info=True)
        raise CalibratorStartError("Failed to start calibrator!") from e

    return start_calibrator(factory, settings, name=reference)
