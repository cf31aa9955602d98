"""Runtime keyboard commands understood by the control loop."""

from enum import Enum
from typing import Optional

# cv2.waitKey() returns -1 when no key was pressed
NO_KEY = -1


class RuntimeCommand(Enum):
    """Command triggered by a single keystroke"""
    ESTIMATE = "c"
    SAVE = "s"
    RESET = "r"
    QUIT = "q"


COMMAND_HELP = {
    RuntimeCommand.ESTIMATE: "Runtime command to do a calibration",
    RuntimeCommand.SAVE: "Runtime command to save current transform",
    RuntimeCommand.RESET: "Runtime command to reset (restart) calibration",
    RuntimeCommand.QUIT: "Runtime command to stop capture and quit",
}


def command_for_key(key: int) -> Optional[RuntimeCommand]:
    """Map a key code from ``cv2.waitKey`` to a command; None for anything else"""
    if key is None or key == NO_KEY:
        return None

    # Some highgui backends report modifier state in the upper bits
    char = chr(key & 0xFF)
    try:
        return RuntimeCommand(char)
    except ValueError:
        return None
