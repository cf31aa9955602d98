"""
Capture -> calibrate -> display control loop.

Each iteration pulls a frame pair, hands it to the calibrator, shows the
matches and the stitched result and interprets one keystroke. The loop is
single threaded; the only asynchronous input is the stop flag set from the
signal handlers, which is read at the top of every iteration.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from .calibrator import CalibSettings, CamerasCalib, load_calibrator, start_calibrator
from .capture import DualCapture, create_capture
from .commands import RuntimeCommand, command_for_key
from .display import DiagnosticWindows
from .gpu_frames import GpuFrameUploader
from .shutdown import StopFlag
from .stats import FrameRateStats

logger = logging.getLogger(__name__)


class LoopState(Enum):
    """Control loop state"""
    RUNNING = "running"
    STOPPED = "stopped"


class ControlLoop:
    """
    Drives the calibration session with frames from both cameras.

    The loop does not own its collaborators: captures, calibrator and windows
    are acquired and released by the caller (see :func:`run_session`).
    """

    def __init__(
        self,
        captures: DualCapture,
        calibrator: CamerasCalib,
        windows: DiagnosticWindows,
        stop_flag: StopFlag,
        uploader: Optional[GpuFrameUploader] = None,
        stats: Optional[FrameRateStats] = None,
    ):
        self.captures = captures
        self.calibrator = calibrator
        self.windows = windows
        self.stop_flag = stop_flag
        self.uploader = uploader or GpuFrameUploader()
        self.stats = stats

        self.state = LoopState.RUNNING
        self.frames_processed = 0

    def step(self) -> Optional[RuntimeCommand]:
        """Run one iteration and return the command read in it, if any"""
        frames = self.captures.read_pair()
        gpu_frames = self.uploader.upload_pair(frames)

        self.calibrator.feed(gpu_frames)
        matches_image = self.calibrator.draw_matches(frames)
        result = self.calibrator.evaluate(gpu_frames)
        stitched_image = self.uploader.download(result.stitched)

        logger.debug(f"Evaluation: psnr={result.psnr:.2f} mssim={result.mssim}")

        self.windows.show(matches_image, stitched_image)

        self.frames_processed += 1
        if self.stats is not None:
            self.stats.update()

        command = command_for_key(self.windows.poll_key())
        if command is not None:
            self.dispatch(command)
        return command

    def dispatch(self, command: RuntimeCommand) -> None:
        """Execute a runtime command"""
        logger.info(f"Runtime command: {command.name.lower()}")

        if command == RuntimeCommand.QUIT:
            self.state = LoopState.STOPPED
        elif command == RuntimeCommand.ESTIMATE:
            self.calibrator.estimate()
        elif command == RuntimeCommand.SAVE:
            self.calibrator.save()
        elif command == RuntimeCommand.RESET:
            self.calibrator.reset()

    def run(self) -> int:
        """
        Loop until quit or a stop request.

        Returns:
            Number of frame pairs processed
        """
        logger.info("Capture loop started (q quit, c calibrate, s save, r reset)")

        while self.state == LoopState.RUNNING:
            if self.stop_flag.is_set():
                logger.info("Stop requested, leaving capture loop")
                self.state = LoopState.STOPPED
                break
            self.step()

        logger.info(f"Capture loop stopped after {self.frames_processed} frames")
        if self.stats is not None:
            logger.info(f"Frame rate: {self.stats.to_dict()}")
        return self.frames_processed


CalibratorFactory = Callable[[CalibSettings], CamerasCalib]


def run_session(
    config,
    capture_factory=None,
    calibrator_factory: Optional[CalibratorFactory] = None,
    windows: Optional[DiagnosticWindows] = None,
    stop_flag: Optional[StopFlag] = None,
    uploader: Optional[GpuFrameUploader] = None,
) -> int:
    """
    Acquire captures, calibrator and windows, run the loop, release everything.

    Args:
        config: Resolved AppConfig
        capture_factory: Creates the unopened capture of a camera ID
        calibrator_factory: Constructs the calibrator from its settings
        windows: Diagnostic windows (created from the config layout if None)
        stop_flag: Stop flag; signal handlers are installed for the run
        uploader: GPU frame uploader

    Returns:
        Number of frame pairs processed

    Raises:
        CaptureOpenError: A camera could not be opened (loop not entered)
        CalibratorStartError: The calibrator could not be constructed
    """
    if capture_factory is None:
        def capture_factory(camera_id):
            return create_capture(camera_id, config.width, config.height, config.fps,
                                  backend=config.capture_backend)

    if calibrator_factory is None:
        def calibrator_factory(settings):
            return load_calibrator(config.calibrator, settings)

    windows = windows or DiagnosticWindows(config.window_layout)
    stop_flag = stop_flag or StopFlag()
    stats = FrameRateStats(report_interval_s=config.fps_report_interval) if config.variant.measure_fps else None

    settings = CalibSettings(
        image_size=(config.width, config.height),
        calib_file=config.calib_file,
        match_mode=config.match_mode,
    )

    with DualCapture(capture_factory) as captures:
        calibrator = start_calibrator(calibrator_factory, settings)

        with windows, stop_flag:
            loop = ControlLoop(captures, calibrator, windows, stop_flag,
                               uploader=uploader, stats=stats)
            return loop.run()
