"""
Tests for timestamp conversions and run fingerprints.
"""

import unittest
from datetime import datetime, timedelta, timezone

from loki_downloader.utils.hashing import fingerprint, stable_hash
from loki_downloader.utils.time import (
    datetime_to_nanoseconds,
    end_of_today,
    ensure_utc,
    nanoseconds_to_datetime,
    nanoseconds_to_iso,
    seconds_to_nanoseconds,
    start_of_today,
)


class TestTimeConversions(unittest.TestCase):
    def test_datetime_to_nanoseconds(self):
        self.assertEqual(datetime_to_nanoseconds(datetime(2024, 9, 27, tzinfo=timezone.utc)), 1727395200000000000)
        self.assertEqual(
            datetime_to_nanoseconds(datetime(2024, 9, 27, 0, 0, 0, 123456, tzinfo=timezone.utc)),
            1727395200123456000,
        )

    def test_offsets_and_naive_values(self):
        plus_two = timezone(timedelta(hours=2))

        self.assertEqual(
            datetime_to_nanoseconds(datetime(2024, 9, 27, 2, tzinfo=plus_two)),
            datetime_to_nanoseconds(datetime(2024, 9, 27)),
        )
        self.assertEqual(ensure_utc(datetime(2024, 9, 27)).tzinfo, timezone.utc)

    def test_nanoseconds_to_iso(self):
        self.assertEqual(nanoseconds_to_iso(1727524289398000000), "2024-09-28T11:51:29.398Z")
        self.assertEqual(nanoseconds_to_iso(1727524289398999999), "2024-09-28T11:51:29.398Z")

    def test_nanoseconds_to_datetime(self):
        self.assertEqual(
            nanoseconds_to_datetime(1727395200123456789),
            datetime(2024, 9, 27, 0, 0, 0, 123456, tzinfo=timezone.utc),
        )

    def test_seconds_to_nanoseconds(self):
        self.assertEqual(seconds_to_nanoseconds("1727388000.123"), 1727388000123000000)
        self.assertEqual(seconds_to_nanoseconds(1727388000.123), 1727388000123000000)
        self.assertEqual(seconds_to_nanoseconds(1727388000), 1727388000000000000)

    def test_today_bounds(self):
        start, end = start_of_today(), end_of_today()

        self.assertEqual(end - start, timedelta(days=1))
        self.assertEqual((start.hour, start.minute, start.second), (0, 0, 0))
        self.assertLessEqual(start, datetime.now(timezone.utc))


class TestFingerprint(unittest.TestCase):
    def test_stable(self):
        inputs = ["2024-09-27", "2024-09-28", "{}", "http://localhost:3100", "Infinity", "download", "output"]

        self.assertEqual(fingerprint(inputs), fingerprint(list(inputs)))
        self.assertEqual(fingerprint(inputs), stable_hash("-".join(inputs)))
        self.assertEqual(len(fingerprint(inputs)), 16)

    def test_order_matters(self):
        self.assertNotEqual(fingerprint(["a", "b"]), fingerprint(["b", "a"]))


if __name__ == "__main__":
    unittest.main()
