"""
camerascalib - Dual CSI Camera Calibration Tools

Captures synchronized frames from two CSI cameras on Jetson Nano / Xavier NX,
feeds them to an external camera calibration library and shows the feature
matches and the stitched result while the operator tunes the transform.

Architecture:
- pipeline_builders: nvarguscamerasrc capture pipeline descriptors
- capture: OpenCV / GStreamer appsink capture sources
- calibrator: Interface to the external calibration collaborator
- control_loop: Capture -> feed -> display loop with runtime commands
- cli: camerascalib / camerasstitch command line entry points

Version: 1.0.0
"""

__version__ = "1.0.0"

from .calibrator import CalibSettings, CamerasCalib, EvaluationResult
from .control_loop import ControlLoop, LoopState
from .pipeline_builders import build_capture_pipeline

__all__ = [
    "CalibSettings",
    "CamerasCalib",
    "ControlLoop",
    "EvaluationResult",
    "LoopState",
    "build_capture_pipeline",
]
