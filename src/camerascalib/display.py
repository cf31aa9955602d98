"""
Diagnostic windows shown while calibrating.

Two resizable highgui windows side by side: the feature matches of the
current frame pair and the pair stitched with the current transform.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .commands import NO_KEY

logger = logging.getLogger(__name__)

MATCHES_WINDOW = "Matches"
WARPING_WINDOW = "Warping"

# Key poll wait; short enough not to throttle a 30 fps capture
KEY_POLL_MS = 1


@dataclass
class WindowLayout:
    """Size and placement of the two windows"""
    width: int = 1280
    height: int = 720
    matches_position: Tuple[int, int] = (200, 100)
    warping_position: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        if self.warping_position is None:
            self.warping_position = (self.width + 250, 100)


class DiagnosticWindows:
    """Owns the Matches and Warping windows"""

    def __init__(self, layout: Optional[WindowLayout] = None):
        self.layout = layout or WindowLayout()
        self.opened = False

    def open(self) -> None:
        layout = self.layout
        for name, position in ((MATCHES_WINDOW, layout.matches_position),
                               (WARPING_WINDOW, layout.warping_position)):
            cv2.namedWindow(name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(name, layout.width, layout.height)
            cv2.moveWindow(name, position[0], position[1])
        self.opened = True
        logger.info(
            f"Opened windows {MATCHES_WINDOW} at {layout.matches_position} and "
            f"{WARPING_WINDOW} at {layout.warping_position} ({layout.width}x{layout.height})"
        )

    def show(self, matches: np.ndarray, stitched: np.ndarray) -> None:
        self._show(MATCHES_WINDOW, matches)
        self._show(WARPING_WINDOW, stitched)

    def _show(self, name: str, image: np.ndarray) -> None:
        # highgui asserts on empty images; keep the previous content instead
        if image is None or image.size == 0:
            logger.debug(f"Nothing to show in {name}")
            return
        cv2.imshow(name, image)

    def poll_key(self, delay_ms: int = KEY_POLL_MS) -> int:
        """Return the pending key code, or -1 when none was pressed"""
        key = cv2.waitKey(delay_ms)
        return NO_KEY if key is None else key

    def close(self) -> None:
        cv2.destroyAllWindows()
        self.opened = False

    def __enter__(self) -> "DiagnosticWindows":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
