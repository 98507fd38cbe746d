"""Unit tests for commit models and timestamp helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from commitfeed.models.commit import EPOCH_MIN, CommitRecord, format_timestamp, parse_timestamp


class TestParseTimestamp:
    def test_zulu_suffix(self) -> None:
        assert parse_timestamp("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, tzinfo=UTC)

    def test_offset_converted_to_utc(self) -> None:
        parsed = parse_timestamp("2024-05-01T14:00:00+02:00")
        assert parsed == datetime(2024, 5, 1, 12, tzinfo=UTC)
        assert parsed.utcoffset() == timedelta(0)

    def test_naive_taken_as_utc(self) -> None:
        assert parse_timestamp("2024-05-01T12:00:00") == datetime(2024, 5, 1, 12, tzinfo=UTC)

    @pytest.mark.parametrize("value", ["", "yesterday", "2024-13-45T00:00:00Z"])
    def test_malformed_maps_to_epoch_min(self, value: str) -> None:
        assert parse_timestamp(value) == EPOCH_MIN

    def test_epoch_min_sorts_before_everything(self) -> None:
        assert EPOCH_MIN < parse_timestamp("0001-01-02T00:00:00Z")


class TestFormatTimestamp:
    def test_second_precision_utc(self) -> None:
        value = datetime(2024, 5, 1, 14, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-05-01T12:00:00Z"

    def test_round_trips_through_parse(self) -> None:
        value = datetime(2024, 5, 1, 12, 30, 15, tzinfo=UTC)
        assert parse_timestamp(format_timestamp(value)) == value


class TestCommitRecord:
    def test_records_are_frozen(self) -> None:
        record = CommitRecord(
            id="abc",
            repo_name="site",
            message="m",
            timestamp="2024-05-01T12:00:00Z",
            url="https://github.com/octo/site/commit/abc",
        )
        with pytest.raises(ValidationError):
            record.message = "changed"  # type: ignore[misc]
        assert record.is_private is False
