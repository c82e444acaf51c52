import logging
import time
import httpx
from typing import Dict, Optional
from ..config import settings
from ..errors import PublishFailure, RefreshFailure
from ..models import CanonicalUpdate
from ..state import TokenStore

logger = logging.getLogger(__name__)

class SessionClient:
    """
    Boundary to the session service: outbound channel, presence source and
    session token renewal.
    """

    def __init__(self, token_store: TokenStore, session_id: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.token_store = token_store
        self.session_id = session_id or settings.SESSION_ID
        self.client = client or httpx.AsyncClient(
            base_url=settings.SESSION_BASE_URL.rstrip('/'),
            timeout=settings.REQUEST_TIMEOUT_SECONDS
        )

    def _headers(self) -> Dict[str, str]:
        token = self.token_store.tokens.session_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def publish(self, update: CanonicalUpdate):
        if settings.DRY_RUN:
            logger.info(f"[DRY RUN] Would publish {update.to_payload()}")
            return

        try:
            resp = await self.client.post(
                f"/sessions/{self.session_id}/update",
                json=update.to_payload(),
                headers=self._headers()
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PublishFailure(
                f"Session service rejected update: {e.response.status_code}",
                details={"status_code": e.response.status_code, "track_id": update.track_id}
            ) from e
        except httpx.HTTPError as e:
            raise PublishFailure(f"Could not reach session service: {e}", details={"track_id": update.track_id}) from e
        logger.debug(f"Published {update.to_payload()}")

    async def listener_count(self) -> int:
        resp = await self.client.get(f"/sessions/{self.session_id}/count", headers=self._headers())
        resp.raise_for_status()
        data = resp.json()
        return int(data.get("count", 0))

    async def refresh_session_token(self, refresh_token: str) -> Dict:
        """
        Exchanges the refresh token for a new session token.
        Returns the raw response: token, access_token, optional refresh_token and expires_in.
        """
        try:
            resp = await self.client.post("/auth/refresh", json={"refresh_token": refresh_token})
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise RefreshFailure(
                f"Session service refused token refresh: {e.response.status_code}",
                details={"status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            raise RefreshFailure(f"Could not reach session service: {e}") from e

    async def close(self):
        await self.client.aclose()

class SessionCredentials:
    """Credential store backed by the token file and the session service."""

    def __init__(self, token_store: TokenStore, session: SessionClient):
        self.token_store = token_store
        self.session = session

    def get_refresh_token(self) -> Optional[str]:
        return self.token_store.tokens.refresh_token

    async def refresh(self, token: str) -> str:
        data = await self.session.refresh_session_token(token)
        new_token = data.get("token")
        if not new_token:
            raise RefreshFailure("Session service returned no token", details={"keys": sorted(data.keys())})

        expires_in = data.get("expires_in")
        self.token_store.update(
            session_token=new_token,
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=(time.time() + float(expires_in)) if expires_in else None,
        )
        return new_token
