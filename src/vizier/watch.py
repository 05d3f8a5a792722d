"""Debounced file watching for live session rebuilds.

A burst of writes to a session's files collapses into a single rebuild: every
accepted change restarts a quiescence timer, and the rebuild callback fires
only once the timer runs out.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchfiles import Change, watch

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 150

Unsubscribe = Callable[[], None]


class Debouncer:
    """Timer-gated task queue of depth 1.

    ``trigger()`` schedules ``callback`` after ``delay_ms``. Triggering again
    while a call is pending restarts the timer instead of queueing another
    call. Calls never overlap: a timer that expires while the callback is
    running waits for it to return.
    """

    def __init__(self, callback: Callable[[], None], delay_ms: int = DEFAULT_DEBOUNCE_MS):
        self._callback = callback
        self._delay = max(delay_ms, 0) / 1000.0
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        """Whether a call is currently scheduled."""
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        """Schedule the callback, restarting any pending timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self, generation: int) -> None:
        with self._run_lock:
            with self._lock:
                # Superseded by a later trigger() or dropped by cancel().
                if generation != self._generation:
                    return
                self._timer = None
            try:
                self._callback()
            except Exception:
                logger.exception("Debounced callback failed")


class SessionWatcher:
    """Watch a set of roots and fire a debounced callback on accepted changes.

    The watch runs on a daemon thread. ``start()`` returns the unsubscribe
    handle, which stops the watch and cancels any pending callback.
    """

    def __init__(
        self,
        paths: list[Path],
        on_change: Callable[[], None],
        accept: Callable[[Path], bool] | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ):
        """Initialize the watcher.

        Args:
            paths: Roots to watch recursively. Missing roots are skipped.
            on_change: Callback fired after changes settle.
            accept: Optional predicate selecting the changed paths that count.
            debounce_ms: Quiescence window in milliseconds.
        """
        self.paths = paths
        self._accept = accept
        self._debounce_ms = debounce_ms
        self._debouncer = Debouncer(on_change, debounce_ms)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def accepts(self, change: Change, path: str) -> bool:
        """Filter for watchfiles: keep changes the predicate accepts."""
        if self._accept is None:
            return True
        return self._accept(Path(path))

    def notify(self) -> None:
        """Register a change, restarting the debounce timer."""
        self._debouncer.trigger()

    def start(self) -> Unsubscribe:
        """Start watching in the background.

        A stopped watcher can be started again.

        Returns:
            A callable that stops the watch.
        """
        if self.running:
            return self.stop

        watch_paths = [str(p) for p in self.paths if p.exists()]
        if not watch_paths:
            logger.warning("No existing paths to watch: %s", self.paths)
            return self.stop

        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(watch_paths, self._stop_event),
            name="vizier-watch",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Watching paths: %s", watch_paths)
        return self.stop

    def stop(self) -> None:
        """Stop watching and cancel any pending callback."""
        self._stop_event.set()
        self._debouncer.cancel()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None
        logger.debug("Stopped watching %s", self.paths)

    def _run(self, watch_paths: list[str], stop_event: threading.Event) -> None:
        for _changes in watch(
            *watch_paths,
            watch_filter=self.accepts,
            debounce=max(self._debounce_ms, 1),
            stop_event=stop_event,
            raise_interrupt=False,
        ):
            if stop_event.is_set():
                break
            self.notify()
