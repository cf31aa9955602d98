import unittest

import numpy as np

from camerascalib.calibrator import CamerasCalib, EvaluationResult
from camerascalib.capture import CaptureSource, DualCapture
from camerascalib.config import CALIB_VARIANT, STITCH_VARIANT, AppConfig
from camerascalib.control_loop import ControlLoop, LoopState, run_session
from camerascalib.display import DiagnosticWindows, WindowLayout
from camerascalib.errors import CalibratorStartError, CaptureOpenError
from camerascalib.gpu_frames import GpuFrameUploader
from camerascalib.shutdown import StopFlag


EVENT_LOG: list[str] = []


class _FakeSource(CaptureSource):
    def __init__(self, camera_id: int, opens: bool = True) -> None:
        super().__init__(f"pipeline-cam{camera_id}")
        self.camera_id = camera_id
        self.opens = opens
        self.reads = 0
        self.release_calls = 0

    def open(self) -> bool:
        EVENT_LOG.append(f"open:{self.camera_id}")
        return self.opens

    def is_opened(self) -> bool:
        return self.opens

    def read(self) -> np.ndarray:
        self.reads += 1
        EVENT_LOG.append(f"read:{self.camera_id}")
        return np.full((4, 6, 3), self.camera_id, dtype=np.uint8)

    def _release(self) -> None:
        self.release_calls += 1
        EVENT_LOG.append(f"release:{self.camera_id}")


class _FakeCalibrator(CamerasCalib):
    def __init__(self, settings=None, on_feed=None) -> None:
        self.settings = settings
        self.on_feed = on_feed
        self.calls: list[str] = []

    def feed(self, frames):
        self.calls.append("feed")
        EVENT_LOG.append("feed")
        if self.on_feed:
            self.on_feed(self)

    def draw_matches(self, frames):
        self.calls.append("draw_matches")
        return np.hstack(frames)

    def evaluate(self, frames):
        self.calls.append("evaluate")
        return EvaluationResult(psnr=30.0, mssim=(0.9,), stitched=np.zeros((4, 10, 3), dtype=np.uint8))

    def estimate(self):
        self.calls.append("estimate")

    def save(self):
        self.calls.append("save")

    def reset(self):
        self.calls.append("reset")


class _FakeWindows(DiagnosticWindows):
    def __init__(self, keys=None) -> None:
        super().__init__(WindowLayout())
        self.keys = [ord(k) if isinstance(k, str) else k for k in (keys or [])]
        self.open_calls = 0
        self.close_calls = 0
        self.shown: list[tuple] = []

    def open(self) -> None:
        self.open_calls += 1
        self.opened = True

    def show(self, matches, stitched) -> None:
        self.shown.append((matches.shape, stitched.shape))

    def poll_key(self, delay_ms: int = 1) -> int:
        EVENT_LOG.append("poll")
        return self.keys.pop(0) if self.keys else -1

    def close(self) -> None:
        self.close_calls += 1
        self.opened = False


def make_config(variant=CALIB_VARIANT) -> AppConfig:
    return AppConfig(
        variant=variant,
        width=1280,
        height=720,
        fps=30,
        calib_file="cameras.xml",
        calibrator="videostitcher:CamerasCalib",
        capture_backend="opencv",
        match_mode=0,
        log_level="INFO",
        log_file=None,
        fps_report_interval=0.0,
        window_layout=WindowLayout(),
    )


class TestControlLoop(unittest.TestCase):
    def setUp(self) -> None:
        EVENT_LOG.clear()
        self.captures = DualCapture(_FakeSource)
        self.captures.open()
        self.calibrator = _FakeCalibrator()
        self.stop_flag = StopFlag()

    def tearDown(self) -> None:
        self.captures.release()

    def _loop(self, keys) -> tuple:
        windows = _FakeWindows(keys)
        loop = ControlLoop(self.captures, self.calibrator, windows, self.stop_flag,
                           uploader=GpuFrameUploader(use_cuda=False))
        return loop, windows

    def test_step_runs_collaborators_in_order(self) -> None:
        loop, windows = self._loop([])
        self.assertIsNone(loop.step())
        self.assertEqual(self.calibrator.calls, ["feed", "draw_matches", "evaluate"])
        self.assertEqual(EVENT_LOG[-4:], ["read:0", "read:1", "feed", "poll"])
        self.assertEqual(windows.shown, [((4, 12, 3), (4, 10, 3))])
        self.assertEqual(loop.frames_processed, 1)

    def test_quit_key_ends_after_the_iteration_it_was_read_in(self) -> None:
        loop, _ = self._loop(["x", "x", "q", "c"])
        frames = loop.run()

        self.assertEqual(frames, 3)
        self.assertEqual(loop.state, LoopState.STOPPED)
        self.assertEqual([s.reads for s in self.captures.sources], [3, 3])
        self.assertEqual(EVENT_LOG[-1], "poll")
        self.assertNotIn("estimate", self.calibrator.calls)

    def test_runtime_commands_dispatch(self) -> None:
        loop, _ = self._loop(["c", "s", "r", "z", "q"])
        loop.run()
        commands = [c for c in self.calibrator.calls if c in ("estimate", "save", "reset")]
        self.assertEqual(commands, ["estimate", "save", "reset"])
        self.assertEqual(loop.frames_processed, 5)

    def test_stop_flag_checked_before_each_pull(self) -> None:
        def stop_on_third(calib):
            if calib.calls.count("feed") == 3:
                self.stop_flag.request_stop()

        self.calibrator.on_feed = stop_on_third
        loop, _ = self._loop([])
        self.assertEqual(loop.run(), 3)
        self.assertEqual([s.reads for s in self.captures.sources], [3, 3])

    def test_stop_flag_set_before_start_pulls_nothing(self) -> None:
        self.stop_flag.request_stop()
        loop, _ = self._loop(["q"])
        self.assertEqual(loop.run(), 0)
        self.assertEqual([s.reads for s in self.captures.sources], [0, 0])
        self.assertEqual(loop.state, LoopState.STOPPED)


class TestRunSession(unittest.TestCase):
    def setUp(self) -> None:
        EVENT_LOG.clear()
        self.sources: list[_FakeSource] = []

    def _factory(self, failing=()):
        def factory(camera_id):
            source = _FakeSource(camera_id, opens=camera_id not in failing)
            self.sources.append(source)
            return source
        return factory

    def test_quit_releases_everything_once(self) -> None:
        windows = _FakeWindows(["q"])
        frames = run_session(
            make_config(),
            capture_factory=self._factory(),
            calibrator_factory=_FakeCalibrator,
            windows=windows,
            uploader=GpuFrameUploader(use_cuda=False),
        )
        self.assertEqual(frames, 1)
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])
        self.assertEqual((windows.open_calls, windows.close_calls), (1, 1))

    def test_calibrator_receives_settings(self) -> None:
        received = []

        def calibrator_factory(settings):
            received.append(settings)
            return _FakeCalibrator(settings)

        run_session(
            make_config(),
            capture_factory=self._factory(),
            calibrator_factory=calibrator_factory,
            windows=_FakeWindows(["q"]),
            uploader=GpuFrameUploader(use_cuda=False),
        )
        self.assertEqual(received[0].image_size, (1280, 720))
        self.assertEqual(received[0].calib_file, "cameras.xml")
        self.assertEqual(received[0].match_mode, 0)

    def test_stop_requested_before_start(self) -> None:
        stop_flag = StopFlag()
        stop_flag.request_stop()
        windows = _FakeWindows()
        frames = run_session(
            make_config(),
            capture_factory=self._factory(),
            calibrator_factory=_FakeCalibrator,
            windows=windows,
            stop_flag=stop_flag,
            uploader=GpuFrameUploader(use_cuda=False),
        )
        self.assertEqual(frames, 0)
        self.assertEqual([s.reads for s in self.sources], [0, 0])
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])
        self.assertEqual(windows.close_calls, 1)

    def test_first_camera_failure_never_enters_loop(self) -> None:
        windows = _FakeWindows()
        calibrators = []
        with self.assertRaises(CaptureOpenError):
            run_session(
                make_config(),
                capture_factory=self._factory(failing=(0,)),
                calibrator_factory=lambda s: calibrators.append(s) or _FakeCalibrator(s),
                windows=windows,
            )
        self.assertEqual(len(self.sources), 1)
        self.assertEqual(self.sources[0].release_calls, 1)
        self.assertEqual(calibrators, [])
        self.assertEqual(windows.open_calls, 0)
        self.assertNotIn("read:0", EVENT_LOG)

    def test_calibrator_failure_releases_captures(self) -> None:
        def failing_factory(settings):
            raise CalibratorStartError("Failed to start calibrator!")

        windows = _FakeWindows()
        with self.assertRaises(CalibratorStartError):
            run_session(
                make_config(),
                capture_factory=self._factory(),
                calibrator_factory=failing_factory,
                windows=windows,
            )
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])
        self.assertEqual(windows.open_calls, 0)

    def test_injected_factory_returning_none_is_start_error(self) -> None:
        windows = _FakeWindows()
        with self.assertRaises(CalibratorStartError):
            run_session(
                make_config(),
                capture_factory=self._factory(),
                calibrator_factory=lambda settings: None,
                windows=windows,
            )
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])
        self.assertEqual(windows.open_calls, 0)
        self.assertNotIn("read:0", EVENT_LOG)

    def test_injected_factory_exception_is_start_error(self) -> None:
        def failing_factory(settings):
            raise OSError("no such device")

        with self.assertRaises(CalibratorStartError) as ctx:
            run_session(
                make_config(),
                capture_factory=self._factory(),
                calibrator_factory=failing_factory,
                windows=_FakeWindows(),
            )
        self.assertIsInstance(ctx.exception.__cause__, OSError)
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])

    def test_collaborator_error_still_releases(self) -> None:
        def explode(calib):
            raise RuntimeError("collaborator failure")

        windows = _FakeWindows()
        with self.assertRaises(RuntimeError):
            run_session(
                make_config(),
                capture_factory=self._factory(),
                calibrator_factory=lambda s: _FakeCalibrator(s, on_feed=explode),
                windows=windows,
                uploader=GpuFrameUploader(use_cuda=False),
            )
        self.assertEqual([s.release_calls for s in self.sources], [1, 1])
        self.assertEqual(windows.close_calls, 1)

    def test_stitch_variant_measures_frame_rate(self) -> None:
        frames = run_session(
            make_config(STITCH_VARIANT),
            capture_factory=self._factory(),
            calibrator_factory=_FakeCalibrator,
            windows=_FakeWindows(["x", "q"]),
            uploader=GpuFrameUploader(use_cuda=False),
        )
        self.assertEqual(frames, 2)


if __name__ == "__main__":
    unittest.main()
