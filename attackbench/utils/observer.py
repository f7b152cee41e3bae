"""Module observer: minimal pub/sub signal used for change notifications."""
#
# PURPOSE:
# Lets the engine publish events (new output line, tool status change,
# session finished) without knowing who listens. The UI or API layer
# subscribes; the engine never hands out its mutable state.
#
# CONTRACT:
# - Callbacks run synchronously in the emitting context, so they must be quick.
# - One failing subscriber never stops delivery to the others.
#

import logging
import threading
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class Signal:
    """
    A simple pure-Python signal: connect, disconnect, emit.
    """
    def __init__(self, name: str = "signal"):
        self.name = name
        self._observers: List[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def connect(self, callback: Callable[..., Any]) -> None:
        """Subscribe a callback function."""
        with self._lock:
            if callback not in self._observers:
                self._observers.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        """Unsubscribe a callback function."""
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    def emit(self, *args, **kwargs) -> None:
        """Notify all subscribers."""
        # Copy so callbacks may disconnect themselves while we iterate
        with self._lock:
            observers = list(self._observers)
        for callback in observers:
            try:
                callback(*args, **kwargs)
            except Exception as e:
                # Prevent one subscriber from breaking the loop
                logger.error(f"[Signal:{self.name}] Error in observer callback: {e}", exc_info=e)

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)
