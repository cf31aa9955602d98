import signal
import unittest

from camerascalib.shutdown import StopFlag


class TestStopFlag(unittest.TestCase):
    def test_initially_clear(self) -> None:
        self.assertFalse(StopFlag().is_set())

    def test_request_stop_and_clear(self) -> None:
        flag = StopFlag()
        flag.request_stop()
        self.assertTrue(flag.is_set())
        flag.clear()
        self.assertFalse(flag.is_set())

    def test_signal_sets_flag(self) -> None:
        flag = StopFlag()
        with flag:
            signal.raise_signal(signal.SIGINT)
            self.assertTrue(flag.is_set())

    def test_sigterm_sets_flag(self) -> None:
        flag = StopFlag()
        with flag:
            signal.raise_signal(signal.SIGTERM)
        self.assertTrue(flag.is_set())

    def test_previous_handlers_restored(self) -> None:
        before = signal.getsignal(signal.SIGINT)
        with StopFlag():
            self.assertNotEqual(signal.getsignal(signal.SIGINT), before)
        self.assertEqual(signal.getsignal(signal.SIGINT), before)


if __name__ == "__main__":
    unittest.main()
