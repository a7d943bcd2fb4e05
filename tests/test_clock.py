import unittest
import time
from datetime import datetime, timedelta, timezone
from server_monitor.core.clock import Clock

class TestClock(unittest.TestCase):
    def test_now_is_utc(self):
        now = Clock.now()
        self.assertIsNotNone(now.tzinfo)
        self.assertEqual(now.utcoffset(), timedelta(0))

    def test_monotonic(self):
        t1 = Clock.monotonic()
        time.sleep(0.001)
        t2 = Clock.monotonic()
        self.assertGreater(t2, t1)

    def test_parse_zulu(self):
        parsed = Clock.parse_timestamp("2024-03-01T12:30:00Z")
        self.assertEqual(parsed, datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc))

    def test_parse_offset_normalized_to_utc(self):
        parsed = Clock.parse_timestamp("2024-03-01T14:30:00+02:00")
        self.assertEqual(parsed, datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc))
        self.assertEqual(parsed.utcoffset(), timedelta(0))

    def test_parse_naive_assumed_utc(self):
        parsed = Clock.parse_timestamp("2024-03-01T12:30:00")
        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_parse_malformed_returns_none(self):
        for value in (None, "", "   ", "yesterday", "2024-13-45", 12345, {"a": 1}):
            self.assertIsNone(Clock.parse_timestamp(value), value)

    def test_elapsed(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(Clock.elapsed_seconds(start, start + timedelta(minutes=2)), 120.0)

if __name__ == '__main__':
    unittest.main()
