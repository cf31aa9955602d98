"""GStreamer pipeline builders for the dual CSI camera capture."""

from __future__ import annotations


# Raw frames leave the ISP in NVMM as NV12, nvvidconv brings them to CPU
# memory as BGRx and videoconvert drops the padding byte for OpenCV.
SENSOR_FORMAT = "NV12"
CONVERT_FORMAT = "BGRx"
OUTPUT_FORMAT = "BGR"

DEFAULT_SINK_NAME = "appsink"


def build_capture_pipeline(camera_id: int, width: int, height: int, fps: int) -> str:
    """Build the nvarguscamerasrc -> appsink pipeline for one CSI camera.

    Values are rendered as given. Whether a resolution/frame rate combination
    is supported is decided by the Argus daemon when the pipeline is opened.

    The descriptor deliberately ends with ``"appsink "`` so that callers can
    append sink properties (see :func:`build_appsink_pipeline`).

    Args:
        camera_id: Camera sensor ID (0 or 1)
        width: Capture width in pixels
        height: Capture height in pixels
        fps: Frame rate, rendered as ``<fps>/1``

    Returns:
        Pipeline description string for ``cv2.VideoCapture`` / ``Gst.parse_launch``
    """

    pipeline = (
        f"nvarguscamerasrc sensor-id={camera_id} ! "
        f"video/x-raw(memory:NVMM), width=(int){width}, height=(int){height}, "
        f"format=(string){SENSOR_FORMAT}, framerate=(fraction){fps}/1 ! "

        # VIC colour conversion out of NVMM
        f"nvvidconv ! video/x-raw, format=(string){CONVERT_FORMAT} ! "

        # CPU conversion to packed BGR for OpenCV
        f"videoconvert ! video/x-raw, format=(string){OUTPUT_FORMAT} ! "
        "appsink "
    )

    return pipeline


def build_appsink_pipeline(
    camera_id: int,
    width: int,
    height: int,
    fps: int,
    sink_name: str = DEFAULT_SINK_NAME,
) -> str:
    """Build the capture pipeline with a named, non-blocking appsink.

    Used by the PyGObject capture backend, which looks the sink up by name and
    pulls samples from it. Only the newest frame is kept so a slow consumer
    never stalls the camera.
    """

    pipeline = "".join(
        [
            build_capture_pipeline(camera_id, width, height, fps),
            f"name={sink_name} ",
            "max-buffers=1 ",
            "drop=true ",
            "sync=false",
        ]
    )

    return pipeline
