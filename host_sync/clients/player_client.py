import asyncio
import logging
import time
import httpx
from typing import Callable, Dict, Optional
from ..config import settings
from ..errors import CredentialsExpired, HandshakeFailure
from ..models import Observation, PlaybackPosition
from ..state import TokenStore

logger = logging.getLogger(__name__)

def _now_ms() -> int:
    return int(time.time() * 1000)

class PollingPlayer:
    """
    Local player source backed by the player's Web API.

    Every poll produces one Observation. Positions between polls are
    extrapolated from the last poll.
    """

    def __init__(self, token_store: TokenStore, client: Optional[httpx.AsyncClient] = None, poll_interval: Optional[float] = None):
        self.token_store = token_store
        self.client = client or httpx.AsyncClient(
            base_url=settings.PLAYER_API_BASE_URL.rstrip('/'),
            timeout=settings.REQUEST_TIMEOUT_SECONDS
        )
        self.poll_interval = settings.PLAYER_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.device_id: Optional[str] = None
        self.last_observation: Optional[Observation] = None
        self._poll_task: Optional[asyncio.Task] = None
        # Called with no arguments when the access token is rejected
        self.on_credentials_expired: Optional[Callable[[], None]] = None

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token_store.tokens.access_token}"}

    async def connect(self, device_label: str) -> str:
        """Finds the device named device_label, falling back to the active device."""
        if not self.token_store.tokens.access_token:
            raise HandshakeFailure("Bad refresh token", details={"reason": "bad_refresh_token"})

        try:
            resp = await self.client.get("/me/player/devices", headers=self._headers())
            if resp.status_code == 401:
                raise HandshakeFailure("Bad refresh token", details={"reason": "bad_refresh_token"})
            resp.raise_for_status()
            devices = resp.json().get("devices", [])
        except httpx.HTTPError as e:
            raise HandshakeFailure(f"Could not list player devices: {e}") from e

        chosen = next((d for d in devices if d.get("name") == device_label), None)
        if not chosen:
            chosen = next((d for d in devices if d.get("is_active")), None)
        if not chosen or not chosen.get("id"):
            raise HandshakeFailure(
                f"No player device named '{device_label}' and no active device",
                details={"devices": [d.get("name") for d in devices]}
            )

        self.device_id = chosen["id"]
        logger.info(f"Connected to player device '{chosen.get('name')}' ({self.device_id})")
        return self.device_id

    async def disconnect(self):
        self._stop_polling()
        self.device_id = None
        self.last_observation = None

    def subscribe(self, callback: Callable[[Observation], None]) -> Callable[[], None]:
        self._stop_polling()
        self._poll_task = asyncio.create_task(self._poll_loop(callback))
        return self._stop_polling

    def current_position_ms(self) -> Optional[int]:
        obs = self.last_observation
        if obs is None:
            return None
        return PlaybackPosition(
            position_ms=obs.position_ms,
            recorded_at_ms=obs.observed_at_ms,
            is_playing=obs.is_playing,
        ).extrapolate(_now_ms())

    def _stop_polling(self):
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def _poll_loop(self, callback: Callable[[Observation], None]):
        while True:
            try:
                obs = await self.poll()
                if obs is not None:
                    self.last_observation = obs
                    callback(obs)
            except CredentialsExpired as e:
                logger.warning(f"Player rejected access token: {e}")
                if self.on_credentials_expired is not None:
                    self.on_credentials_expired()
            except Exception as e:
                logger.error(f"Error polling player: {e}", exc_info=True)
            await asyncio.sleep(self.poll_interval)

    async def poll(self) -> Optional[Observation]:
        resp = await self.client.get("/me/player", headers=self._headers())
        now = _now_ms()
        if resp.status_code == 401:
            raise CredentialsExpired("Access token expired", details={"status_code": 401})
        if resp.status_code == 204:
            return Observation.no_session(now, position_ms=self.current_position_ms() or 0)
        resp.raise_for_status()
        return self.parse_playback(resp.json(), now)

    @staticmethod
    def parse_playback(data: Optional[Dict], now_ms: int) -> Observation:
        """Maps a playback-state response to an Observation."""
        if not data:
            return Observation.no_session(now_ms)

        item = data.get("item") or {}
        track_id = item.get("uri", "")
        # Ads and unknown items have no track yet
        unstarted = not track_id or data.get("currently_playing_type") not in (None, "track", "episode")

        return Observation(
            track_id=track_id,
            position_ms=max(0, int(data.get("progress_ms") or 0)),
            is_playing=bool(data.get("is_playing")),
            observed_at_ms=now_ms,
            unstarted=unstarted,
        )

    async def close(self):
        self._stop_polling()
        await self.client.aclose()
