"""
Tests for bastion/utils/duration.py

Covers parsing and formatting of duration strings used by /ban, /timeout
and /jail.
"""

from bastion.utils.duration import format_duration, is_permanent, parse_duration


# =============================================================================
# parse_duration() Tests
# =============================================================================

class TestParseDuration:
    """Tests for parse_duration function."""

    # -------------------------------------------------------------------------
    # Basic single-unit parsing
    # -------------------------------------------------------------------------

    def test_parse_seconds(self):
        assert parse_duration("30s") == 30

    def test_parse_minutes(self):
        assert parse_duration("30m") == 1800

    def test_parse_hours(self):
        assert parse_duration("6h") == 21600

    def test_parse_days(self):
        assert parse_duration("7d") == 604800

    def test_parse_weeks(self):
        assert parse_duration("2w") == 1209600

    def test_parse_plain_number_defaults_to_minutes(self):
        assert parse_duration("45") == 2700

    # -------------------------------------------------------------------------
    # Combined formats
    # -------------------------------------------------------------------------

    def test_parse_combined(self):
        assert parse_duration("1h30m") == 5400
        assert parse_duration("10m30s") == 630
        assert parse_duration("1d12h30m") == 131400

    def test_parse_with_spaces_between_parts(self):
        assert parse_duration("1h 30m") == 5400

    def test_parse_case_and_whitespace(self):
        assert parse_duration("  1D12H  ") == 129600

    # -------------------------------------------------------------------------
    # Permanent and invalid input
    # -------------------------------------------------------------------------

    def test_permanent_keywords(self):
        for word in ("permanent", "perm", "forever", "INF"):
            assert parse_duration(word) is None
            assert is_permanent(word) is True

    def test_invalid_is_not_permanent(self):
        assert parse_duration("abc") is None
        assert is_permanent("abc") is False
        assert is_permanent(None) is False

    def test_parse_invalid_format(self):
        assert parse_duration("") is None
        assert parse_duration(None) is None
        assert parse_duration("1x") is None
        assert parse_duration("1h banana") is None
        assert parse_duration("-1h") is None

    def test_parse_zero(self):
        assert parse_duration("0") is None
        assert parse_duration("0m") is None


# =============================================================================
# format_duration() Tests
# =============================================================================

class TestFormatDuration:
    """Tests for format_duration function."""

    def test_format_none_is_permanent(self):
        assert format_duration(None) == "Permanent"

    def test_format_under_minute(self):
        assert format_duration(0) == "< 1m"
        assert format_duration(59) == "< 1m"

    def test_format_basic(self):
        assert format_duration(60) == "1m"
        assert format_duration(5400) == "1h 30m"
        assert format_duration(129600) == "1d 12h"

    def test_format_weeks(self):
        assert format_duration(1209600) == "2w"

    def test_format_max_units(self):
        seconds = 7 * 86400 + 86400 + 3600 + 60
        assert format_duration(seconds) == "1w 1d 1h"
        assert format_duration(seconds, max_units=2) == "1w 1d"
