from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional

class PlaybackPosition(BaseModel):
    """Position in the media at a point in time."""
    model_config = ConfigDict(frozen=True)

    position_ms: int = Field(default=0, ge=0)
    recorded_at_ms: int = 0
    is_playing: bool = False

    def extrapolate(self, now_ms: int) -> int:
        """Expected position at now_ms assuming linear playback since recorded_at_ms."""
        if not self.is_playing:
            return self.position_ms
        elapsed = max(0, now_ms - self.recorded_at_ms)
        return self.position_ms + elapsed

class Observation(BaseModel):
    track_id: str = ""  # "" = no session / ended
    position_ms: int = Field(default=0, ge=0)
    is_playing: bool = False
    observed_at_ms: int = 0

    # Provisional player states
    buffering: bool = False
    seeking: bool = False
    unstarted: bool = False
    ended: bool = False

    @property
    def is_transient(self) -> bool:
        return self.buffering or self.seeking or self.unstarted or self.ended

    @classmethod
    def no_session(cls, now_ms: int, position_ms: int = 0) -> "Observation":
        """Player reported no state at all (device transferred away, session closed)."""
        return cls(track_id="", position_ms=position_ms, is_playing=False, observed_at_ms=now_ms)

class CanonicalUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_id: str
    position_ms: int = Field(ge=0)
    is_playing: bool

    @classmethod
    def disconnect(cls, position_ms: int) -> "CanonicalUpdate":
        return cls(track_id="", position_ms=max(0, position_ms), is_playing=False)

    @classmethod
    def from_observation(cls, obs: Observation) -> "CanonicalUpdate":
        return cls(track_id=obs.track_id, position_ms=obs.position_ms, is_playing=obs.is_playing)

    @property
    def is_disconnect(self) -> bool:
        return self.track_id == ""

    def to_payload(self) -> Dict:
        return {
            "uri": self.track_id,
            "position": self.position_ms,
            "playing": self.is_playing,
        }

class LastKnownState(BaseModel):
    """The most recently emitted update and when it was emitted."""
    model_config = ConfigDict(frozen=True)

    update: CanonicalUpdate
    emitted_at_ms: int

    @classmethod
    def from_observation(cls, obs: Observation) -> "LastKnownState":
        return cls(update=CanonicalUpdate.from_observation(obs), emitted_at_ms=obs.observed_at_ms)

    @property
    def track_id(self) -> str:
        return self.update.track_id

    @property
    def is_playing(self) -> bool:
        return self.update.is_playing

    @property
    def position(self) -> PlaybackPosition:
        return PlaybackPosition(
            position_ms=self.update.position_ms,
            recorded_at_ms=self.emitted_at_ms,
            is_playing=self.update.is_playing,
        )

class ChangeKind(str, Enum):
    NO_CHANGE = "no_change"
    TRACK_CHANGED = "track_changed"
    PLAY_STATE_CHANGED = "play_state_changed"
    SEEK_DETECTED = "seek_detected"

class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    update: Optional[CanonicalUpdate] = None
    drift_ms: Optional[int] = None

    @property
    def is_reportable(self) -> bool:
        return self.kind != ChangeKind.NO_CHANGE

class ControllerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"

class ControllerStatus(BaseModel):
    state: ControllerState
    device_id: Optional[str] = None
    last_update: Optional[CanonicalUpdate] = None
    last_emitted_at_ms: Optional[int] = None
    last_publish_at: float = 0.0
    forwarded_count: int = 0
    suppressed_count: int = 0
    publish_failure_count: int = 0
    refresh_failure_count: int = 0
    listener_count: int = 0
    needs_reauthentication: bool = False

class TokenBundle(BaseModel):
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    session_token: Optional[str] = None
    expires_at: float = 0.0
