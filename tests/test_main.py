import asyncio
import os
import tempfile
import unittest
from unittest.mock import AsyncMock
from host_sync import server
from host_sync.config import settings
from host_sync.main import HostService

class TestHostService(unittest.TestCase):
    def setUp(self):
        self.saved = (settings.SESSION_ID, settings.TOKEN_PATH, settings.PERSIST_ENABLED, settings.HTTP_SERVER_ENABLED)
        self.tmp = tempfile.TemporaryDirectory()
        settings.SESSION_ID = "room1"
        settings.TOKEN_PATH = os.path.join(self.tmp.name, "tokens.json")
        settings.PERSIST_ENABLED = False
        settings.HTTP_SERVER_ENABLED = False
        # Built outside any event loop, as the entry point does
        self.service = HostService()
        self.service.controller.start = AsyncMock()
        self.service.controller.stop = AsyncMock()
        self.service.presence_loop = AsyncMock()

    def tearDown(self):
        settings.SESSION_ID, settings.TOKEN_PATH, settings.PERSIST_ENABLED, settings.HTTP_SERVER_ENABLED = self.saved
        server.controller = None
        self.tmp.cleanup()

    def test_player_expiry_is_wired_to_controller(self):
        self.assertEqual(self.service.player.on_credentials_expired, self.service.controller.notify_credentials_expired)
        self.assertIs(server.controller, self.service.controller)

    def test_shutdown_request_ends_service(self):
        async def run():
            asyncio.get_running_loop().call_later(0.05, self.service.request_shutdown)
            await asyncio.wait_for(self.service.start(), timeout=2.0)

        asyncio.run(run())
        self.service.controller.start.assert_awaited_once()
        self.service.controller.stop.assert_awaited_once()
        self.assertFalse(self.service.running)

    def test_shutdown_before_start_is_harmless(self):
        self.service.request_shutdown()
        self.assertFalse(self.service.running)

    def test_missing_session_id_does_not_start(self):
        settings.SESSION_ID = ""
        asyncio.run(self.service.start())
        self.service.controller.start.assert_not_awaited()

if __name__ == '__main__':
    unittest.main()
