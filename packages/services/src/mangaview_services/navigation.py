"""Keyboard and swipe bindings for the reader."""

from typing import Callable, Optional

from .reader import ReaderController

SWIPE_THRESHOLD = 50

KEY_BINDINGS: dict[str, Callable[[ReaderController], None]] = {
    "ArrowLeft": ReaderController.previous_page,
    "p": ReaderController.previous_page,
    "ArrowRight": ReaderController.next_page,
    "n": ReaderController.next_page,
    "r": lambda reader: reader.retry_page(reader.current_page),
    "t": ReaderController.toggle_loading_method,
}


def handle_key(reader: ReaderController, key: str) -> bool:
    """Dispatch a key press. Returns True if the key was bound."""
    action = KEY_BINDINGS.get(key)
    if action is None:
        return False
    action(reader)
    return True


def handle_swipe(reader: ReaderController, start_x: float, end_x: float) -> Optional[str]:
    """Turn a horizontal touch gesture into a page turn.

    Swiping left advances, swiping right goes back. Movements shorter than
    SWIPE_THRESHOLD pixels are ignored.

    Returns:
        "next", "previous", or None when the gesture was too short
    """
    distance = start_x - end_x
    if abs(distance) < SWIPE_THRESHOLD:
        return None
    if distance > 0:
        reader.next_page()
        return "next"
    reader.previous_page()
    return "previous"
