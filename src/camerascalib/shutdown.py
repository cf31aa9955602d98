"""
Process-wide stop flag set from signal handlers.

The handler only flips a boolean. It does not log and does not touch the
capture sources or the calibrator; the control loop checks the flag at the
top of every iteration and shuts down from there.
"""

import signal
from typing import Dict, Iterable

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class StopFlag:
    """Boolean stop request shared between signal handlers and the loop"""

    def __init__(self):
        self._stop = False
        self._previous_handlers: Dict[int, object] = {}

    def request_stop(self, signum=None, frame=None) -> None:
        # Signal handler signature; a single attribute store, nothing else
        self._stop = True

    def is_set(self) -> bool:
        return self._stop

    def clear(self) -> None:
        self._stop = False

    def install(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> "StopFlag":
        """Route the given signals to :meth:`request_stop`"""
        for signum in signals:
            self._previous_handlers[signum] = signal.signal(signum, self.request_stop)
        return self

    def restore(self) -> None:
        """Put back the handlers that were active before :meth:`install`"""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def __enter__(self) -> "StopFlag":
        return self.install()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
