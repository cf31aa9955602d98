"""
Capture sources for the two CSI cameras.

A capture source is opened from a pipeline descriptor, yields one BGR frame
per ``read()`` and is released exactly once. ``DualCapture`` owns both
sources for the lifetime of the control loop and guarantees the release on
every exit path.
"""

import logging
from typing import Callable, List, Optional

import cv2
import numpy as np

from .errors import CaptureOpenError
from .pipeline_builders import build_appsink_pipeline, build_capture_pipeline

logger = logging.getLogger(__name__)

BACKEND_OPENCV = "opencv"
BACKEND_GSTREAMER = "gstreamer"
SUPPORTED_BACKENDS = (BACKEND_OPENCV, BACKEND_GSTREAMER)

CAMERA_IDS = (0, 1)
CAMERA_NAMES = {0: "first", 1: "second"}


def empty_frame() -> np.ndarray:
    """Frame handed on when a source delivers nothing"""
    return np.empty((0, 0, 3), dtype=np.uint8)


class CaptureSource:
    """Base class for a single camera capture"""

    def __init__(self, pipeline: str):
        self.pipeline = pipeline
        self.released = False

    def open(self) -> bool:
        raise NotImplementedError

    def is_opened(self) -> bool:
        raise NotImplementedError

    def read(self) -> np.ndarray:
        raise NotImplementedError

    def release(self) -> None:
        """Release the capture; further calls are no-ops"""
        if self.released:
            return
        self.released = True
        self._release()

    def _release(self) -> None:
        raise NotImplementedError


class OpenCVCapture(CaptureSource):
    """Capture through OpenCV's GStreamer backend"""

    def __init__(self, pipeline: str):
        super().__init__(pipeline)
        self.capture = cv2.VideoCapture()

    def open(self) -> bool:
        return self.capture.open(self.pipeline, cv2.CAP_GSTREAMER)

    def is_opened(self) -> bool:
        return self.capture.isOpened()

    def read(self) -> np.ndarray:
        ok, frame = self.capture.read()
        if not ok or frame is None:
            return empty_frame()
        return frame

    def _release(self) -> None:
        self.capture.release()


def create_capture(camera_id: int, width: int, height: int, fps: int,
                   backend: str = BACKEND_OPENCV) -> CaptureSource:
    """Create (but do not open) the capture source for one camera"""
    if backend == BACKEND_OPENCV:
        return OpenCVCapture(build_capture_pipeline(camera_id, width, height, fps))

    if backend == BACKEND_GSTREAMER:
        pipeline = build_appsink_pipeline(camera_id, width, height, fps)
        # PyGObject is only needed for this backend
        try:
            from .gst_capture import GstAppSinkCapture
        except (ImportError, ValueError) as e:
            logger.error(f"GStreamer capture backend unavailable: {e}")
            raise CaptureOpenError(
                f"Failed to open capture for {CAMERA_NAMES[camera_id]} camera! "
                f"The gstreamer backend needs PyGObject (pip install camerascalib[gstreamer])",
                camera_id=camera_id,
                pipeline=pipeline,
            ) from e
        return GstAppSinkCapture(pipeline)

    raise ValueError(f"Unsupported capture backend: {backend}")


CaptureFactory = Callable[[int], CaptureSource]


class DualCapture:
    """
    Owns the capture sources of camera 0 and camera 1.

    Opening stops at the first camera that fails; every source created so far
    is released before ``CaptureOpenError`` propagates. Used as a context
    manager the sources are released on exit, whatever the exit path.
    """

    def __init__(self, factory: CaptureFactory):
        """
        Args:
            factory: Callable creating the (unopened) source for a camera ID
        """
        self.factory = factory
        self.sources: List[CaptureSource] = []

    def open(self) -> None:
        try:
            for camera_id in CAMERA_IDS:
                source = self.factory(camera_id)
                self.sources.append(source)

                logger.info(f"Opening camera {camera_id}: {source.pipeline}")
                if not source.open() or not source.is_opened():
                    raise CaptureOpenError(
                        f"Failed to open capture for {CAMERA_NAMES[camera_id]} camera!",
                        camera_id=camera_id,
                        pipeline=source.pipeline,
                    )
        except BaseException:
            self.release()
            raise

    def read_pair(self) -> List[np.ndarray]:
        """Pull one frame from each camera, camera 0 first"""
        return [source.read() for source in self.sources]

    def release(self) -> None:
        for source in self.sources:
            source.release()

    def __enter__(self) -> "DualCapture":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        logger.info("Capture sources released")
        return None
