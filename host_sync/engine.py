import logging
from typing import Optional
from .config import settings
from .models import CanonicalUpdate, ChangeKind, Classification, LastKnownState, Observation

logger = logging.getLogger(__name__)

class ChangeClassifier:
    def __init__(self, seek_threshold_ms: Optional[int] = None):
        self.seek_threshold_ms = settings.SEEK_THRESHOLD_MS if seek_threshold_ms is None else seek_threshold_ms

    def classify(self, previous: Optional[LastKnownState], current: Observation) -> Classification:
        """
        Compares a new observation against the last emitted state.

        Only the last emitted state is consulted, never older history. Returns
        NO_CHANGE for provisional observations and for position jitter within
        the seek threshold.
        """
        # 1. Provisional states are never reported
        if current.is_transient:
            logger.debug(f"Ignoring transient observation for '{current.track_id}' at {current.position_ms}ms")
            return Classification(kind=ChangeKind.NO_CHANGE)

        update = CanonicalUpdate.from_observation(current)

        # 2. Nothing emitted yet -> establish initial sync
        if previous is None:
            logger.info(f"Initial observation: '{current.track_id}' at {current.position_ms}ms")
            return Classification(kind=ChangeKind.TRACK_CHANGED, update=update)

        if current.track_id != previous.track_id:
            logger.info(f"Track changed: '{previous.track_id}' -> '{current.track_id}'")
            return Classification(kind=ChangeKind.TRACK_CHANGED, update=update)

        if current.is_playing != previous.is_playing:
            logger.info(f"Play state changed for '{current.track_id}': playing={current.is_playing}")
            return Classification(kind=ChangeKind.PLAY_STATE_CHANGED, update=update)

        # 3. Stutter vs seek
        expected = previous.position.extrapolate(current.observed_at_ms)
        drift = abs(current.position_ms - expected)
        if drift > self.seek_threshold_ms:
            logger.info(f"Seek detected for '{current.track_id}': expected {expected}ms, got {current.position_ms}ms")
            return Classification(kind=ChangeKind.SEEK_DETECTED, update=update, drift_ms=drift)

        logger.debug(f"Drift of {drift}ms for '{current.track_id}' within threshold")
        return Classification(kind=ChangeKind.NO_CHANGE, drift_ms=drift)
