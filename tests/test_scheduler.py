import asyncio
import unittest
from host_sync.errors import RefreshFailure
from host_sync.scheduler import CredentialRefreshScheduler

class FakeCredentials:
    def __init__(self, token="refresh-1"):
        self.token = token
        self.error = None
        self.calls = []

    def get_refresh_token(self):
        return self.token

    async def refresh(self, token):
        self.calls.append(token)
        if self.error is not None:
            raise self.error
        return "session-2"

class TestCredentialRefreshScheduler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.credentials = FakeCredentials()
        self.failures = []
        self.scheduler = CredentialRefreshScheduler(
            self.credentials,
            interval_seconds=0.01,
            on_failure=lambda exc, count: self.failures.append((exc, count)),
        )

    async def asyncTearDown(self):
        self.scheduler.cancel()

    async def test_refresh_once_success(self):
        self.assertTrue(await self.scheduler.refresh_once())
        self.assertEqual(self.credentials.calls, ["refresh-1"])
        self.assertEqual(self.failures, [])

    async def test_missing_token_is_failure(self):
        self.credentials.token = None
        self.assertFalse(await self.scheduler.refresh_once())
        self.assertEqual(self.credentials.calls, [])
        self.assertIsInstance(self.failures[0][0], RefreshFailure)
        self.assertEqual(self.failures[0][1], 1)

    async def test_unexpected_error_wrapped_and_counted(self):
        self.credentials.error = ConnectionError("offline")
        await self.scheduler.refresh_once()
        await self.scheduler.refresh_once()
        self.assertEqual([count for _, count in self.failures], [1, 2])
        self.assertIsInstance(self.failures[-1][0], RefreshFailure)
        self.assertIn("offline", str(self.failures[-1][0]))

        # Success resets the streak
        self.credentials.error = None
        await self.scheduler.refresh_once()
        self.assertEqual(self.scheduler.consecutive_failures, 0)
        self.assertEqual(self.scheduler.total_failures, 2)

    async def test_failure_handler_errors_contained(self):
        def broken(exc, count):
            raise RuntimeError("handler bug")
        scheduler = CredentialRefreshScheduler(self.credentials, interval_seconds=1, on_failure=broken)
        self.credentials.error = RefreshFailure("denied")
        self.assertFalse(await scheduler.refresh_once())

    async def test_timer_keeps_running_after_failure(self):
        self.credentials.error = RefreshFailure("denied")
        self.scheduler.start()
        self.assertTrue(self.scheduler.running)
        await asyncio.sleep(0.1)
        self.assertTrue(self.scheduler.running)
        self.assertGreaterEqual(len(self.credentials.calls), 2)

        self.scheduler.cancel()
        self.assertFalse(self.scheduler.running)
        calls = len(self.credentials.calls)
        await asyncio.sleep(0.05)
        self.assertEqual(len(self.credentials.calls), calls)

    async def test_start_is_idempotent(self):
        self.scheduler.start()
        task = self.scheduler._task
        self.scheduler.start()
        self.assertIs(self.scheduler._task, task)

if __name__ == '__main__':
    unittest.main()
