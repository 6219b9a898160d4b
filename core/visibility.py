"""
Application visibility.

Tracks whether the hosting application is in the foreground (someone is
watching the fleet live) or backgrounded, and tells listeners when that
changes. Background monitoring only runs while the application is not in
the foreground.
"""
import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

# Type alias for visibility callbacks, called with the new foreground flag
VisibilityCallback = Callable[[bool], None]


class VisibilitySource:
    """Foreground/background flag with change notification."""

    def __init__(self, foreground: bool = False) -> None:
        self._foreground = foreground
        self._callbacks: List[VisibilityCallback] = []
        self._lock = threading.Lock()

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    def add_listener(self, callback: VisibilityCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def remove_listener(self, callback: VisibilityCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def set_foreground(self, foreground: bool) -> None:
        """Record a visibility transition; listeners hear only real changes."""
        with self._lock:
            if foreground == self._foreground:
                return
            self._foreground = foreground
            callbacks = list(self._callbacks)

        logger.info("Application moved to %s", "foreground" if foreground else "background")
        for callback in callbacks:
            try:
                callback(foreground)
            except Exception as exc:
                logger.error("Visibility listener error: %s", exc)
