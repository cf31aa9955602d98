"""
GPU frame transfer for the calibration collaborator.

Frames are uploaded into reusable ``cv2.cuda_GpuMat`` buffers (one per camera)
when OpenCV was built with CUDA and a device is present. Without CUDA the
collaborator receives the host arrays unchanged.
"""

import logging
from typing import List, Sequence

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def cuda_device_count() -> int:
    """Number of CUDA devices OpenCV can use (0 for non-CUDA builds)"""
    try:
        return cv2.cuda.getCudaEnabledDeviceCount()
    except (AttributeError, cv2.error):
        return 0


class GpuFrameUploader:
    """Keeps one device buffer per camera and moves frames to and from it"""

    def __init__(self, use_cuda: bool = None):
        if use_cuda is None:
            use_cuda = cuda_device_count() > 0
        self.cuda_available = use_cuda
        self.buffers: List = []

        if self.cuda_available:
            logger.info("CUDA device found, frames are uploaded with cv2.cuda_GpuMat")
        else:
            logger.warning("No CUDA device available, passing host frames to the calibrator")

    def upload_pair(self, frames: Sequence[np.ndarray]) -> List:
        """Upload a frame pair, reusing the buffers of the previous iteration"""
        if not self.cuda_available:
            return list(frames)

        while len(self.buffers) < len(frames):
            self.buffers.append(cv2.cuda_GpuMat())

        for buffer, frame in zip(self.buffers, frames):
            # upload() throws on an empty frame; hand on an empty buffer
            if frame is None or frame.size == 0:
                buffer.release()
                continue
            buffer.upload(frame)

        return self.buffers[:len(frames)]

    def download(self, image) -> np.ndarray:
        """Bring an image produced by the calibrator back to host memory"""
        if image is None:
            return np.empty((0, 0, 3), dtype=np.uint8)
        if isinstance(image, np.ndarray):
            return image
        if image.empty():
            return np.empty((0, 0, 3), dtype=np.uint8)
        return image.download()
