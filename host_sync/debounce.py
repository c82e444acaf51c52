import logging
import time
from typing import Any, Callable, Optional
from .config import settings
from .models import CanonicalUpdate

logger = logging.getLogger(__name__)

def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)

class DebouncedEmitter:
    """
    Leading-edge debounce in front of a publish sink.

    The first submit in an idle period goes straight to the sink and opens a
    window of window_ms measured from that forwarded call. Submits inside the
    window are dropped and do not move it. Dropped payloads are not queued:
    every update is a full snapshot and later ticks reconcile the position.
    """

    def __init__(
        self,
        sink: Callable[[CanonicalUpdate], Any],
        window_ms: Optional[int] = None,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.sink = sink
        self.window_ms = settings.DEBOUNCE_WINDOW_MS if window_ms is None else window_ms
        self.clock = clock
        self._window_closes_at: Optional[int] = None
        self.forwarded = 0
        self.suppressed = 0

    @property
    def window_open(self) -> bool:
        if self._window_closes_at is None:
            return False
        return self.clock() < self._window_closes_at

    def submit(self, update: CanonicalUpdate) -> bool:
        """Returns True if the update was forwarded to the sink."""
        now = self.clock()
        if self._window_closes_at is not None and now < self._window_closes_at:
            self.suppressed += 1
            logger.debug(f"Suppressed update for '{update.track_id}' inside debounce window")
            return False

        self._window_closes_at = now + self.window_ms
        self.forwarded += 1
        self.sink(update)
        return True

    def cancel(self):
        self._window_closes_at = None
