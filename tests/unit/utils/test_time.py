"""Unit tests for timestamp helpers."""

import pendulum


def test_segment_stamp_format() -> None:
    from chopup.utils import format_segment_stamp

    moment = pendulum.datetime(2026, 10, 18, 9, 30, 15, tz="UTC").add(microseconds=123456)

    assert format_segment_stamp(moment) == "20261018T093015.123456Z"


def test_segment_stamp_converts_to_utc() -> None:
    from chopup.utils import format_segment_stamp

    moment = pendulum.datetime(2026, 10, 18, 11, 30, 15, tz="Europe/Berlin")

    assert format_segment_stamp(moment) == "20261018T093015.000000Z"


def test_segment_stamps_sort_chronologically() -> None:
    from chopup.utils import format_segment_stamp

    earlier = pendulum.datetime(2026, 1, 2, 3, 4, 5, tz="UTC")
    later = earlier.add(microseconds=1)

    assert format_segment_stamp(earlier) < format_segment_stamp(later)


def test_get_timestamp_is_iso8601() -> None:
    from chopup.utils import get_timestamp

    parsed = pendulum.parse(get_timestamp())

    assert isinstance(parsed, pendulum.DateTime)
    assert parsed.utcoffset() is not None
