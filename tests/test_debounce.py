import unittest
from host_sync.debounce import DebouncedEmitter
from host_sync.models import CanonicalUpdate

class FakeClock:
    def __init__(self):
        self.now = 0
    def __call__(self):
        return self.now

def update(pos):
    return CanonicalUpdate(track_id="A", position_ms=pos, is_playing=True)

class TestDebouncedEmitter(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.sent = []
        self.emitter = DebouncedEmitter(self.sent.append, window_ms=400, clock=self.clock)

    def test_first_submit_forwarded_immediately(self):
        self.assertTrue(self.emitter.submit(update(1)))
        self.assertEqual(self.sent, [update(1)])
        self.assertTrue(self.emitter.window_open)

    def test_burst_forwards_first_payload_only(self):
        for t, pos in [(0, 1), (100, 2), (200, 3), (399, 4)]:
            self.clock.now = t
            self.emitter.submit(update(pos))
        self.assertEqual(self.sent, [update(1)])
        self.assertEqual(self.emitter.forwarded, 1)
        self.assertEqual(self.emitter.suppressed, 3)

    def test_submit_after_window_forwarded(self):
        self.emitter.submit(update(1))
        self.clock.now = 400
        self.assertTrue(self.emitter.submit(update(2)))
        self.assertEqual(self.sent, [update(1), update(2)])

    def test_window_anchored_on_last_forward(self):
        self.emitter.submit(update(1))
        self.clock.now = 300
        self.assertFalse(self.emitter.submit(update(2)))
        # Suppressed submit at 300 does not move the window past 400
        self.clock.now = 399
        self.assertTrue(self.emitter.window_open)
        self.clock.now = 500
        self.assertFalse(self.emitter.window_open)
        self.assertTrue(self.emitter.submit(update(3)))
        self.assertEqual(self.sent, [update(1), update(3)])

        # New window runs from the forward at 500
        self.clock.now = 899
        self.assertFalse(self.emitter.submit(update(4)))
        self.clock.now = 900
        self.assertTrue(self.emitter.submit(update(5)))
        self.assertEqual(self.sent, [update(1), update(3), update(5)])

    def test_cancel_closes_window_without_emitting(self):
        self.emitter.submit(update(1))
        self.clock.now = 100
        self.emitter.cancel()
        self.assertFalse(self.emitter.window_open)
        self.assertEqual(self.sent, [update(1)])
        self.assertTrue(self.emitter.submit(update(2)))
        self.assertEqual(self.sent, [update(1), update(2)])

if __name__ == '__main__':
    unittest.main()
