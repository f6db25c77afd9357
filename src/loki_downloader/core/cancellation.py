from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence

from loki_downloader.utils.logging import get_logger

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """
    Shared cancellation flag for one download run.

    The flag can be set once; later calls are no-ops. Callbacks registered with
    ``on_cancel`` run at most once, on the thread that cancels.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        # re-entrant: cancel() may run from a signal handler while the main
        # thread holds the lock
        self._lock = threading.RLock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None
        self.log = get_logger("loki_downloader.cancellation")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        self.log.info("Cancellation requested%s", f" ({reason})" if reason else "")
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                self.log.warning("Abort hook failed: %s", type(e).__name__)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)

    @contextmanager
    def on_cancel(self, callback: Callable[[], None]) -> Iterator[None]:
        """Run ``callback`` if the token is cancelled while the block executes."""
        with self._lock:
            already = self._event.is_set()
            if not already:
                self._callbacks.append(callback)
        if already:
            callback()
        try:
            yield
        finally:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)


@contextmanager
def route_signals(
    token: CancellationToken,
    signals: Sequence[int] = DEFAULT_SIGNALS,
) -> Iterator[CancellationToken]:
    """
    Turn operator interrupts into token cancellation.

    The first signal cancels the token and reinstates the previous handlers, so
    a second interrupt stops the process the usual way.
    """
    previous = {sig: signal.getsignal(sig) for sig in signals}

    def restore() -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    def handler(signum, frame) -> None:
        restore()
        token.cancel(signal.Signals(signum).name)

    for sig in signals:
        signal.signal(sig, handler)
    try:
        yield token
    finally:
        restore()
