import unittest
from host_sync.presence import PresenceTracker

class FakeSource:
    def __init__(self):
        self.value = 0
        self.error = None
    async def listener_count(self):
        if self.error:
            raise self.error
        return self.value

class TestPresenceTracker(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.source = FakeSource()
        self.tracker = PresenceTracker(self.source)

    async def test_zero_listeners_is_normal(self):
        self.assertEqual(await self.tracker.refresh(), 0)
        self.assertFalse(self.tracker.has_listeners)
        self.assertEqual(self.tracker.describe(), "Hosting 0 listeners.")

    async def test_tracks_count(self):
        self.source.value = 1
        await self.tracker.refresh()
        self.assertEqual(self.tracker.describe(), "Hosting 1 listener.")
        self.source.value = 12
        await self.tracker.refresh()
        self.assertEqual(self.tracker.count, 12)
        self.assertTrue(self.tracker.has_listeners)

    async def test_error_keeps_last_count(self):
        self.source.value = 3
        await self.tracker.refresh()
        self.source.error = ConnectionError("offline")
        self.assertEqual(await self.tracker.refresh(), 3)
        self.assertEqual(self.tracker.count, 3)

    async def test_negative_clamped(self):
        self.source.value = -2
        await self.tracker.refresh()
        self.assertEqual(self.tracker.count, 0)

if __name__ == '__main__':
    unittest.main()
