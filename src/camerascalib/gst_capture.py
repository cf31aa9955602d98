"""
PyGObject capture backend.

Runs the capture pipeline directly with GStreamer and pulls frames from the
named appsink. Useful on images where OpenCV was built without GStreamer
support.
"""

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst, GLib
import logging

import numpy as np

from .capture import CaptureSource, empty_frame
from .gst_frame_utils import gst_sample_to_numpy
from .pipeline_builders import DEFAULT_SINK_NAME

# Initialize GStreamer
Gst.init(None)

logger = logging.getLogger(__name__)

# Upper bound for the pipeline to reach PLAYING (Argus start-up is slow)
STATE_CHANGE_TIMEOUT_NS = 10 * Gst.SECOND


class GstAppSinkCapture(CaptureSource):
    """Capture by pulling samples from an appsink"""

    def __init__(self, pipeline: str, sink_name: str = DEFAULT_SINK_NAME):
        super().__init__(pipeline)
        self.sink_name = sink_name
        self.gst_pipeline = None
        self.appsink = None
        self.playing = False

    def open(self) -> bool:
        try:
            self.gst_pipeline = Gst.parse_launch(self.pipeline)
        except GLib.Error as e:
            logger.error(f"Failed to parse pipeline: {e}")
            return False

        self.appsink = self.gst_pipeline.get_by_name(self.sink_name)
        if self.appsink is None:
            logger.error(f"Pipeline has no appsink named '{self.sink_name}'")
            return False

        ret = self.gst_pipeline.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            logger.error("Failed to set capture pipeline to PLAYING")
            return False

        ret, _, _ = self.gst_pipeline.get_state(STATE_CHANGE_TIMEOUT_NS)
        if ret == Gst.StateChangeReturn.FAILURE:
            logger.error("Capture pipeline failed while starting")
            return False

        self.playing = True
        return True

    def is_opened(self) -> bool:
        return self.playing

    def read(self) -> np.ndarray:
        # Blocks until a sample arrives; None means EOS or a stopped pipeline
        sample = self.appsink.emit('pull-sample')
        if sample is None:
            return empty_frame()

        frame, _, _ = gst_sample_to_numpy(sample)
        if frame is None:
            return empty_frame()
        return frame

    def _release(self) -> None:
        if self.gst_pipeline is not None:
            self.gst_pipeline.set_state(Gst.State.NULL)
        self.playing = False
