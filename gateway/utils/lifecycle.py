"""Lifecycle helpers to support graceful shutdown."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType
from typing import Callable, Iterable, List, Tuple

ShutdownCallback = Callable[[], None]

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownRegistry:
    """Registry of shutdown callbacks executed once, in registration order."""

    def __init__(self) -> None:
        self._callbacks: List[Tuple[str, ShutdownCallback]] = []
        self._lock = threading.Lock()
        self._engaged = False

    def add(self, name: str, callback: ShutdownCallback) -> None:
        with self._lock:
            self._callbacks.append((name, callback))

    def fire(self, *, logger: logging.Logger | None = None) -> List[Tuple[str, Exception]]:
        """Run every callback and return the ones that raised."""

        with self._lock:
            if self._engaged:
                return []
            self._engaged = True
            callbacks = list(self._callbacks)

        failures: List[Tuple[str, Exception]] = []
        for name, callback in callbacks:
            try:
                callback()
            except Exception as exc:
                if logger is not None:
                    logger.exception("Shutdown callback %s failed", name)
                failures.append((name, exc))
        return failures

    def __iter__(self) -> Iterable[Tuple[str, ShutdownCallback]]:
        return iter(tuple(self._callbacks))


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class ShutdownSignal:
    """Blocks the main thread until SIGTERM or SIGINT is received."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.received: str | None = None

    def trigger(self, reason: str) -> None:
        if self.received is None:
            self.received = reason
        self._event.set()

    def install(self, logger: logging.Logger | None = None) -> None:
        """Install handlers for the shutdown signals; main thread only."""

        def _handler(signum: int, frame: FrameType | None) -> None:  # pragma: no cover - signal path
            name = signal_name(signum)
            if logger is not None:
                logger.info("Received shutdown signal", extra={"signal": name})
            self.trigger(name)

        for sig in SHUTDOWN_SIGNALS:
            signal.signal(sig, _handler)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    @property
    def is_set(self) -> bool:
        return self._event.is_set()
