import pytest
from datetime import datetime, timezone, timedelta
from hypothesis import given, strategies as st

from vitalsync.services.timestamps import (
    INVALID_DATE_LABEL,
    NO_DATA_LABEL,
    format_timestamp,
    normalize,
    parse_timestamp,
    to_sentinel,
)


NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Parsing of both backend timestamp encodings."""

    def test_sentinel_format(self):
        assert parse_timestamp("2024-05-01_10-30-15") == datetime(2024, 5, 1, 10, 30, 15, tzinfo=timezone.utc)

    def test_sentinel_without_seconds_defaults_to_zero(self):
        assert parse_timestamp("2024-05-01_10-30") == datetime(2024, 5, 1, 10, 30, 0, tzinfo=timezone.utc)

    def test_iso_with_zulu_suffix(self):
        assert parse_timestamp("2024-05-01T10:30:15Z") == datetime(2024, 5, 1, 10, 30, 15, tzinfo=timezone.utc)

    def test_iso_with_offset(self):
        parsed = parse_timestamp("2024-05-01T12:30:15+02:00")
        assert parsed == datetime(2024, 5, 1, 10, 30, 15, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2024-05-01T10:30:15").tzinfo == timezone.utc

    def test_datetime_passthrough(self):
        assert parse_timestamp(NOW) is NOW

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "   ",
        "not a date",
        "2024-13-01_10-00-00",
        "2024-02-30_10-00-00",
        "2024-05-01_25-00-00",
        "2024-05_10-00-00",
        "2024-05-01_10",
        "_",
        12345,
        ["2024-05-01_10-00-00"],
    ])
    def test_unparseable_returns_none(self, raw):
        assert parse_timestamp(raw) is None

    def test_sentinel_and_iso_compare_on_one_axis(self):
        sentinel = parse_timestamp("2024-05-01_09-00-00")
        iso = parse_timestamp("2024-05-01T10:00:00Z")
        assert sentinel < iso


class TestNormalize:

    def test_valid_input_is_parsed(self):
        assert normalize("2024-05-01_10-00-00", now=NOW) == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_invalid_input_yields_now(self):
        assert normalize("garbage", now=NOW) == NOW
        assert normalize(None, now=NOW) == NOW

    def test_naive_now_is_utc(self):
        naive = datetime(2025, 1, 1, 11)

        assert normalize("garbage", now=naive) == datetime(2025, 1, 1, 11, tzinfo=timezone.utc)
        assert normalize("garbage", now=naive) > normalize("2024-05-01_12-00-00", now=naive)

    def test_default_now_is_current_time(self):
        before = datetime.now(timezone.utc)
        result = normalize("garbage")
        assert before <= result <= datetime.now(timezone.utc) + timedelta(seconds=1)


class TestFormatTimestamp:

    def test_absent_value(self):
        assert format_timestamp(None) == NO_DATA_LABEL
        assert format_timestamp("") == NO_DATA_LABEL

    def test_unparseable_value(self):
        assert format_timestamp("yesterday-ish") == INVALID_DATE_LABEL

    def test_display_rendering(self):
        assert format_timestamp("2024-05-01_15-04-05") == "May 01, 2024, 03:04:05 PM"


class TestSentinelProperties:
    """Property-based checks for the normalizer."""

    @given(st.datetimes(
        min_value=datetime(1970, 1, 1),
        max_value=datetime(2100, 12, 31),
        timezones=st.just(timezone.utc),
    ))
    def test_sentinel_round_trip(self, instant):
        assert parse_timestamp(to_sentinel(instant)) == instant.replace(microsecond=0)

    @given(st.one_of(st.none(), st.text(), st.integers(), st.floats(), st.booleans()))
    def test_malformed_inputs_never_raise(self, raw):
        assert isinstance(normalize(raw, now=NOW), datetime)
        assert isinstance(format_timestamp(raw), str)

    @given(st.text(alphabet="0123456789-_", max_size=25))
    def test_sentinel_like_noise_never_raises(self, raw):
        result = parse_timestamp(raw)
        assert result is None or result.tzinfo is not None
