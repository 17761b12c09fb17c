"""Unit tests for range and conditional request helpers.

Exercises the pure functions from handlers/files.py without a server.
"""

from datetime import datetime, timezone

import pytest
from starlette.datastructures import Headers

from s3www.errors import InvalidRange
from s3www.handlers.files import (
    evaluate_conditionals,
    http_date,
    parse_range_header,
    range_applies,
)

ETAG = '"5eb63bbbe01eeed093cb22bb8f5acdc3"'
MTIME = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
MTIME_HTTP = "Tue, 02 Jan 2024 03:04:05 GMT"


class TestParseRangeHeader:
    """Tests for parse_range_header()."""

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("bytes=0-4", (0, 4)),
            ("bytes=0-0", (0, 0)),
            ("bytes=0-99", (0, 99)),
            ("bytes=10-", (10, 99)),
            ("bytes=99-", (99, 99)),
            ("bytes=-5", (95, 99)),
            ("bytes=-200", (0, 99)),
            ("bytes=50-200", (50, 99)),
            ("bytes= 3-4", (3, 4)),
        ],
    )
    def test_satisfiable(self, header, expected):
        assert parse_range_header(header, 100) == expected

    @pytest.mark.parametrize(
        "header",
        [None, "", "pages=1-5", "bytes=0-4, 10-14", "bytes=a-b", "bytes=5", "0-4"],
    )
    def test_ignored(self, header):
        """Absent, malformed and multi-range headers fall back to a full response."""
        assert parse_range_header(header, 100) is None

    @pytest.mark.parametrize(
        "header, total",
        [
            ("bytes=100-", 100),
            ("bytes=100-150", 100),
            ("bytes=10-5", 100),
            ("bytes=-0", 100),
            ("bytes=-", 100),
            ("bytes=0-", 0),
        ],
    )
    def test_unsatisfiable(self, header, total):
        with pytest.raises(InvalidRange) as exc_info:
            parse_range_header(header, total)
        assert exc_info.value.http_status == 416


class TestEvaluateConditionals:
    """Tests for evaluate_conditionals()."""

    def _eval(self, **headers):
        return evaluate_conditionals(
            Headers({k.replace("_", "-"): v for k, v in headers.items()}), ETAG, MTIME
        )

    def test_no_conditions(self):
        assert self._eval() is None

    def test_if_match(self):
        assert self._eval(if_match=ETAG) is None
        assert self._eval(if_match='"other", ' + ETAG) is None
        assert self._eval(if_match="*") is None
        assert self._eval(if_match='"other"') == 412

    def test_if_unmodified_since(self):
        assert self._eval(if_unmodified_since=MTIME_HTTP) is None
        assert self._eval(if_unmodified_since="Mon, 01 Jan 2024 00:00:00 GMT") == 412

    def test_if_match_takes_precedence_over_if_unmodified_since(self):
        assert (
            self._eval(if_match=ETAG, if_unmodified_since="Mon, 01 Jan 2024 00:00:00 GMT")
            is None
        )

    def test_if_none_match(self):
        assert self._eval(if_none_match=ETAG) == 304
        assert self._eval(if_none_match=f"W/{ETAG}") == 304
        assert self._eval(if_none_match="*") == 304
        assert self._eval(if_none_match='"other"') is None

    def test_if_modified_since(self):
        """Sub-second precision on the object is ignored."""
        assert self._eval(if_modified_since=MTIME_HTTP) == 304
        assert self._eval(if_modified_since="Wed, 03 Jan 2024 00:00:00 GMT") == 304
        assert self._eval(if_modified_since="Mon, 01 Jan 2024 00:00:00 GMT") is None

    def test_if_none_match_takes_precedence_over_if_modified_since(self):
        assert self._eval(if_none_match='"other"', if_modified_since=MTIME_HTTP) is None

    def test_unparsable_date_is_ignored(self):
        assert self._eval(if_modified_since="yesterday") is None
        assert self._eval(if_unmodified_since="yesterday") is None


class TestRangeApplies:
    """Tests for range_applies()."""

    def _applies(self, if_range=None):
        headers = Headers({"if-range": if_range} if if_range is not None else {})
        return range_applies(headers, ETAG, MTIME)

    def test_without_if_range(self):
        assert self._applies() is True

    def test_matching_etag(self):
        assert self._applies(ETAG) is True

    def test_mismatched_etag(self):
        assert self._applies('"stale"') is False

    def test_weak_etag_never_matches(self):
        assert self._applies(f"W/{ETAG}") is False

    def test_matching_date(self):
        assert self._applies(MTIME_HTTP) is True

    def test_older_date(self):
        assert self._applies("Mon, 01 Jan 2024 00:00:00 GMT") is False


def test_http_date_drops_fraction():
    assert http_date(MTIME) == MTIME_HTTP
