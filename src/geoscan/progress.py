"""Progress reporting and cooperative cancellation of a running pipeline.

ProgressObserver subscribes to the counters published by the sliding
window and the detector and forwards them to a progress display. When the
display reports it is no longer running (the user asked to stop), the
observer cancels the sink instead, once. Callbacks arrive on the
execution engine's threads and may race with teardown, so every callback
takes a lock and checks a liveness flag first. The sink is cancelled after
the lock is released.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from geoscan.graph import StageHandle

logger = logging.getLogger(__name__)

READING = "Reading"
DETECTING = "Detecting"

CATEGORIES: dict[str, str] = {
    READING: "Reading the image",
    DETECTING: "Detecting the object(s)",
}

# Metric names published by the engine
TOTAL_METRIC = "total"
FORWARDED_METRIC = "forwarded"
PROCESSED_METRIC = "processed"


class ProgressDisplay(Protocol):
    """A progress UI with named categories."""

    @property
    def is_running(self) -> bool: ...

    def set_categories(self, categories: Mapping[str, str]) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def update_maximum(self, category: str, value: int) -> None: ...

    def update_current(self, category: str, value: int) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class TqdmProgressDisplay:
    """ProgressDisplay rendering one tqdm bar per category.

    ``request_stop()`` marks the display as stopped, which the observer
    turns into a cancellation of the pipeline.

    Args:
        disable: Create the bars disabled (quiet runs).
    """

    def __init__(self, disable: bool = False) -> None:
        self._disable = disable
        self._categories: dict[str, str] = dict(CATEGORIES)
        self._bars: dict[str, Any] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def set_categories(self, categories: Mapping[str, str]) -> None:
        if self._bars:
            raise RuntimeError("Categories cannot change while the display is running.")
        self._categories = dict(categories)

    def start(self) -> None:
        from tqdm import tqdm

        self._bars = {
            name: tqdm(total=0, desc=description, unit="window", position=i, disable=self._disable)
            for i, (name, description) in enumerate(self._categories.items())
        }
        self._running = True

    def request_stop(self) -> None:
        self._running = False

    def stop(self) -> None:
        self._running = False
        for bar in self._bars.values():
            bar.close()
        self._bars = {}

    def update_maximum(self, category: str, value: int) -> None:
        bar = self._bars.get(category)
        if bar is not None:
            bar.total = value
            bar.refresh()

    def update_current(self, category: str, value: int) -> None:
        bar = self._bars.get(category)
        if bar is not None:
            bar.n = value
            bar.refresh()


class ProgressObserver:
    """Forwards pipeline counters to a display and cancels on request.

    Args:
        display: Progress display receiving the counters.
        sink: Stage (or pipeline) cancelled when the display stops.
    """

    def __init__(self, display: ProgressDisplay, sink: Cancellable) -> None:
        self._display = display
        self._sink = sink
        self._lock = threading.Lock()
        self._active = False
        self._cancelled = False
        self._subscriptions: list[tuple[Any, Callable[[Any], None]]] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _check(self) -> tuple[bool, bool]:
        """Return (update, cancel_now). Caller holds the lock."""
        if not self._active:
            return False, False
        if not self._display.is_running:
            if self._cancelled:
                return False, False
            self._cancelled = True
            return False, True
        return True, False

    def _cancel_sink(self) -> None:
        # Called without the lock so the sink may re-enter the callbacks
        logger.info("Progress display stopped, cancelling the pipeline")
        self._sink.cancel()

    def on_total(self, value: Any) -> None:
        with self._lock:
            update, cancel_now = self._check()
            if update:
                self._display.update_maximum(READING, int(value))
                self._display.update_maximum(DETECTING, int(value))
        if cancel_now:
            self._cancel_sink()

    def on_read(self, value: Any) -> None:
        with self._lock:
            update, cancel_now = self._check()
            if update:
                self._display.update_current(READING, int(value))
        if cancel_now:
            self._cancel_sink()

    def on_detected(self, value: Any) -> None:
        with self._lock:
            update, cancel_now = self._check()
            if update:
                self._display.update_current(DETECTING, int(value))
        if cancel_now:
            self._cancel_sink()

    def attach(self, sliding_window: StageHandle, detector: StageHandle) -> None:
        """Subscribe to the sliding window and detector counters."""
        subscriptions = [
            (sliding_window.metric(TOTAL_METRIC).changed(), self.on_total),
            (sliding_window.metric(FORWARDED_METRIC).changed(), self.on_read),
            (detector.metric(PROCESSED_METRIC).changed(), self.on_detected),
        ]
        with self._lock:
            for signal, callback in subscriptions:
                signal.connect(callback)
            self._subscriptions = subscriptions
            self._active = True

    def detach(self) -> None:
        """Unsubscribe; later callbacks become no-ops."""
        with self._lock:
            self._active = False
            subscriptions, self._subscriptions = self._subscriptions, []
        for signal, callback in subscriptions:
            signal.disconnect(callback)
