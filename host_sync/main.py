import asyncio
import logging
import signal
import uvicorn
from typing import Optional

from .config import settings
from .state import TokenStore
from .clients.player_client import PollingPlayer
from .clients.session_client import SessionClient, SessionCredentials
from .controller import SyncController
from .errors import HandshakeFailure
from .presence import PresenceTracker
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("main")

class HostService:
    def __init__(self):
        self.running = True
        self.token_store = TokenStore(settings.TOKEN_PATH)
        self.session = SessionClient(self.token_store)
        self.player = PollingPlayer(self.token_store)
        self.presence = PresenceTracker(self.session)
        self.controller = SyncController(
            player=self.player,
            channel=self.session,
            credentials=SessionCredentials(self.token_store, self.session),
            presence=self.presence,
        )
        self.player.on_credentials_expired = self.controller.notify_credentials_expired
        self._shutdown: Optional[asyncio.Event] = None

        # Link controller to server module
        server.controller = self.controller

    async def presence_loop(self):
        """Periodic listener count refresh"""
        while self.running:
            await self.presence.refresh()
            if self.presence.has_listeners:
                logger.debug(self.presence.describe())
            else:
                logger.debug("No listeners connected")
            await asyncio.sleep(settings.PRESENCE_POLL_INTERVAL_SECONDS)

    def request_shutdown(self):
        logger.info("Shutdown requested")
        self.running = False
        if self._shutdown is not None:
            self._shutdown.set()

    async def start(self):
        if not settings.SESSION_ID:
            logger.error("SESSION_ID is not configured")
            return

        # Bound to the running loop
        self._shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)

        try:
            await self.controller.start()
        except HandshakeFailure as e:
            logger.error(f"Could not start hosting: {e}")
            await self.close()
            return

        tasks = [asyncio.create_task(self.presence_loop())]
        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host="0.0.0.0", port=settings.HTTP_SERVER_PORT, log_level="warning")
            tasks.append(asyncio.create_task(uvicorn.Server(config).serve()))

        try:
            await self._shutdown.wait()
        except asyncio.CancelledError:
            pass
        finally:
            for task in tasks:
                task.cancel()
            await self.controller.stop()
            await self.close()

    async def close(self):
        self.token_store.save()
        await self.player.close()
        await self.session.close()

if __name__ == "__main__":
    service = HostService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        service.controller.stop_nowait()
        logger.info("Interrupted by user")
