"""
GStreamer Frame Utilities for the appsink capture backend

Converts samples pulled from the capture appsink into NumPy BGR arrays.
The capture pipeline ends in ``video/x-raw, format=(string)BGR``; BGRx is
accepted too so a pipeline without the final videoconvert still works.
"""

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst
import numpy as np
import logging
from typing import Tuple, Dict, Optional

logger = logging.getLogger(__name__)

# Initialize GStreamer
Gst.init(None)

# Bytes per pixel for the packed formats the capture pipeline can deliver
PACKED_FORMATS = {
    'BGR': 3,
    'BGRx': 4,
}


def gst_sample_to_numpy(sample: Gst.Sample) -> Tuple[Optional[np.ndarray], int, Dict]:
    """
    Convert GStreamer sample to NumPy BGR array.

    Args:
        sample: GStreamer sample from appsink

    Returns:
        Tuple of (frame_bgr, timestamp_ns, metadata)
        - frame_bgr: BGR numpy array (H, W, 3) uint8, or None if conversion fails
        - timestamp_ns: PTS timestamp in nanoseconds
        - metadata: Dictionary containing frame information
    """
    metadata = {}

    if sample is None:
        logger.error("Received None sample")
        return None, 0, metadata

    buffer = sample.get_buffer()
    if buffer is None:
        logger.error("Failed to get buffer from sample")
        return None, 0, metadata

    timestamp_ns = buffer.pts
    if timestamp_ns == Gst.CLOCK_TIME_NONE:
        timestamp_ns = 0

    caps = sample.get_caps()
    if caps is None:
        logger.error("Failed to get caps from sample")
        return None, timestamp_ns, metadata

    structure = caps.get_structure(0)
    width = structure.get_value('width')
    height = structure.get_value('height')
    format_str = structure.get_value('format')

    metadata = {
        'width': width,
        'height': height,
        'format': format_str,
        'timestamp_ns': timestamp_ns,
        'buffer_size': buffer.get_size()
    }

    channels = PACKED_FORMATS.get(format_str)
    if channels is None:
        logger.error(f"Unsupported format: {format_str}")
        return None, timestamp_ns, metadata

    success, map_info = buffer.map(Gst.MapFlags.READ)
    if not success:
        logger.error("Failed to map buffer for reading")
        return None, timestamp_ns, metadata

    try:
        frame_bgr = packed_to_bgr(map_info.data, width, height, channels)
    finally:
        # Always unmap buffer
        buffer.unmap(map_info)

    if frame_bgr is None:
        logger.error(
            f"Buffer size mismatch: got {metadata['buffer_size']}, "
            f"expected {width * height * channels}"
        )
        return None, timestamp_ns, metadata

    return frame_bgr, timestamp_ns, metadata


def packed_to_bgr(data: bytes, width: int, height: int, channels: int) -> Optional[np.ndarray]:
    """
    Copy packed BGR/BGRx pixel data into a BGR array.

    Rows may be padded by the producer; the stride is derived from the buffer
    size. Returns None when the buffer is too small for the frame.
    """
    row_bytes = width * channels
    if width <= 0 or height <= 0 or len(data) < row_bytes * height:
        return None

    stride = len(data) // height
    frame = np.frombuffer(data, dtype=np.uint8, count=stride * height)
    frame = frame.reshape((height, stride))[:, :row_bytes]
    frame = frame.reshape((height, width, channels))

    # Copy out of the mapped GStreamer memory before the buffer is unmapped
    return frame[:, :, :3].copy()
