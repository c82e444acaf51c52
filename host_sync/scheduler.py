import asyncio
import logging
from typing import Callable, Optional
from .config import settings
from .errors import RefreshFailure

logger = logging.getLogger(__name__)

class CredentialRefreshScheduler:
    def __init__(
        self,
        credentials,
        interval_seconds: Optional[float] = None,
        on_failure: Optional[Callable[[RefreshFailure, int], None]] = None,
    ):
        self.credentials = credentials
        self.interval_seconds = settings.TOKEN_REFRESH_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.on_failure = on_failure
        self.consecutive_failures = 0
        self.total_failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self):
        logger.info(f"Credential refresh every {self.interval_seconds}s")
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.refresh_once()

    async def refresh_once(self) -> bool:
        """
        Runs a single refresh attempt. Failures are reported to on_failure and
        never raised, so one bad attempt does not stop the timer.
        """
        try:
            token = self.credentials.get_refresh_token()
            if not token:
                raise RefreshFailure("No refresh token available")
            await self.credentials.refresh(token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = e if isinstance(e, RefreshFailure) else RefreshFailure(
                f"Token refresh failed: {e}", details={"original_error": repr(e)}
            )
            self.consecutive_failures += 1
            self.total_failures += 1
            logger.warning(f"Credential refresh failed ({self.consecutive_failures} in a row): {failure}")
            if self.on_failure is not None:
                try:
                    self.on_failure(failure, self.consecutive_failures)
                except Exception as cb_err:
                    logger.error(f"Refresh failure handler raised: {cb_err}", exc_info=True)
            return False

        self.consecutive_failures = 0
        logger.info("Credentials refreshed")
        return True
