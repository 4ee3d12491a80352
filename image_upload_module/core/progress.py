"""Per-leg progress events delivered to a serialized caller sink."""

import threading
from collections.abc import Callable
from dataclasses import dataclass

from logger import format_log, get_logger
from models import ServiceId

logger = get_logger()

PRIMARY_LEG = "primary"


def backup_leg(service_id: ServiceId) -> str:
    return f"backup:{ServiceId(service_id).value}"


@dataclass(frozen=True)
class ProgressEvent:
    leg: str
    percent: int


ProgressSink = Callable[[ProgressEvent], None]


class SerializedProgressSink:
    """Calls the wrapped sink under a lock so legs never invoke it concurrently."""

    def __init__(self, sink: ProgressSink | None):
        self._sink = sink
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        if self._sink is None:
            return
        with self._lock:
            try:
                self._sink(event)
            except Exception as e:
                logger.warning(format_log("Progress sink failed", leg=event.leg, error=e))


class LegProgress:
    """Normalizes one leg's raw percentages: int, clamped to [0, 100], non-decreasing."""

    def __init__(self, leg: str, sink: SerializedProgressSink):
        self.leg = leg
        self._sink = sink
        self._last = -1
        self._lock = threading.Lock()

    @property
    def last_percent(self) -> int | None:
        return self._last if self._last >= 0 else None

    def __call__(self, percent: float) -> None:
        try:
            value = int(percent)
        except (TypeError, ValueError, OverflowError):
            return
        value = max(0, min(100, value))
        with self._lock:
            if value <= self._last:
                return
            self._last = value
            self._sink.emit(ProgressEvent(self.leg, value))

    def complete(self) -> None:
        """Emit the terminal 100 if the uploader did not."""
        self(100)
