"""Signal handling for teardown on interruption."""

from __future__ import annotations

import logging
import signal
import threading
import types
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

logger = logging.getLogger(__name__)


class CleanupHandler(Protocol):
    """Object able to release resources when a signal arrives."""

    def _cleanup_resources(
        self, signum: int | None = None, frame: types.FrameType | None = None
    ) -> None: ...


class CleanupInstanceManager:
    """Thread-safe holder of the object handling cleanup on signals.

    A reentrant lock lets a second signal reach the handler while the first
    one is still tearing down; the handler itself ignores the repeat. Inside a
    ``deferred()`` block signals are held back and delivered when it exits.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._instance: CleanupHandler | None = None
        self._defer_depth = 0
        self._pending: tuple[int, types.FrameType | None] | None = None

    def set(self, instance: CleanupHandler | None) -> None:
        """Set the cleanup instance."""
        with self._lock:
            self._instance = instance

    def get(self) -> CleanupHandler | None:
        """Get the current cleanup instance, or None if not set."""
        with self._lock:
            return self._instance

    def cleanup_with_lock(self, signum: int, frame: types.FrameType | None) -> None:
        """Run cleanup on the current instance, if any.

        Parameters
        ----------
        signum : int
            Signal number
        frame : types.FrameType | None
            Signal frame
        """
        with self._lock:
            if self._defer_depth:
                logger.info("Interrupt received, finishing current step before cleanup...")
                self._pending = (signum, frame)
                return

            instance = self._instance
            if instance is not None:
                instance._cleanup_resources(signum=signum, frame=frame)

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold back signal cleanup until the block exits.

        Used around steps whose result must be registered for teardown before
        an interruption may act on it. The last signal received inside the
        block is delivered on exit.
        """
        with self._lock:
            self._defer_depth += 1

        try:
            yield
        finally:
            with self._lock:
                self._defer_depth -= 1
                pending = None
                if self._defer_depth == 0:
                    pending, self._pending = self._pending, None

            if pending is not None:
                self.cleanup_with_lock(*pending)


_cleanup_manager = CleanupInstanceManager()


def setup_signal_handlers() -> None:
    """Route SIGINT and SIGTERM to the registered cleanup instance."""

    def handler(signum: int, frame: types.FrameType | None) -> None:
        _cleanup_manager.cleanup_with_lock(signum=signum, frame=frame)

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def set_cleanup_instance(instance: CleanupHandler | None) -> None:
    """Set the instance to handle cleanup for signal handlers."""
    _cleanup_manager.set(instance)


def get_cleanup_instance() -> CleanupHandler | None:
    """Get the instance handling cleanup for signal handlers."""
    return _cleanup_manager.get()


def defer_signals() -> AbstractContextManager[None]:
    """Hold back signal cleanup for the duration of a with-block."""
    return _cleanup_manager.deferred()
