"""Frame-rate instrumentation for the capture loop."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class FrameRateStats:
    """Counts processed frame pairs and reports the loop frame rate"""
    report_interval_s: float = 5.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    frames: int = 0
    fps: float = 0.0
    avg_fps: float = 0.0
    started_at: float = None
    last_frame_at: float = None
    last_report_at: float = None
    frames_at_last_report: int = 0

    def update(self) -> None:
        """Record one processed frame pair"""
        now = self.clock()
        if self.started_at is None:
            self.started_at = now
            self.last_report_at = now

        if self.last_frame_at is not None and now > self.last_frame_at:
            self.fps = 1.0 / (now - self.last_frame_at)
        self.last_frame_at = now
        self.frames += 1

        elapsed = now - self.started_at
        self.avg_fps = self.frames / elapsed if elapsed > 0 else 0.0

        since_report = now - self.last_report_at
        if self.report_interval_s > 0 and since_report >= self.report_interval_s:
            window_fps = (self.frames - self.frames_at_last_report) / since_report
            logger.info(f"Processed {self.frames} frames, {window_fps:.2f} fps (avg {self.avg_fps:.2f} fps)")
            self.last_report_at = now
            self.frames_at_last_report = self.frames

    def to_dict(self) -> Dict:
        return {
            'frames': self.frames,
            'fps': round(self.fps, 2),
            'avg_fps': round(self.avg_fps, 2),
        }
