from datetime import datetime, timezone, timedelta

from shared.time import EPOCH, epoch_ms, set_fake_utcnow, now_ms, to_utc


class _FakeTimestamp:
    def __init__(self, seconds, nanoseconds=0):
        self.seconds = seconds
        self.nanoseconds = nanoseconds


class _Convertible:
    def to_datetime(self):
        return datetime(2024, 1, 2, 3, 4, 5)


def test_naive_datetime_is_treated_as_utc():
    assert to_utc(datetime(2024, 1, 1, 12, 0)) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_aware_datetime_is_converted_to_utc():
    local = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_utc(local) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_epoch_milliseconds():
    assert to_utc(1_500) == EPOCH + timedelta(milliseconds=1_500)


def test_iso_string_with_z_suffix():
    assert to_utc("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_seconds_nanoseconds_forms():
    expected = EPOCH + timedelta(seconds=10, milliseconds=500)
    assert to_utc({"seconds": 10, "nanoseconds": 500_000_000}) == expected
    assert to_utc(_FakeTimestamp(10, 500_000_000)) == expected


def test_objects_with_to_datetime():
    assert to_utc(_Convertible()) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_missing_or_unusable_values_sort_first():
    assert to_utc(None) == EPOCH
    assert to_utc("not a date") == EPOCH
    assert to_utc({"foo": 1}) == EPOCH
    assert to_utc(True) == EPOCH


def test_epoch_ms_and_fake_clock():
    set_fake_utcnow(EPOCH + timedelta(milliseconds=42))
    assert now_ms() == 42
    assert epoch_ms("1970-01-01T00:00:01Z") == 1_000
