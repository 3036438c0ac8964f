"""
Time/date helper tests.
"""
import pytest


# ─────────────────────────────────────────────────────────────
# Times
# ─────────────────────────────────────────────────────────────

class TestParseTime:
    def test_valid(self):
        from zeitlib.time_utils import parse_time
        assert parse_time('08:30') == 510

    def test_invalid(self):
        from zeitlib.time_utils import parse_time
        assert parse_time('25:00') is None
        assert parse_time('8') is None
        assert parse_time('') is None
        assert parse_time(None) is None

    @pytest.mark.parametrize('raw,expected', [
        ('8:00', '08:00'), ('800', '08:00'), ('1530', '15:30'), ('07:45', '07:45'),
        ('2400', None), ('abc', None), ('', None),
    ])
    def test_normalize_input(self, raw, expected):
        from zeitlib.time_utils import normalize_time_input
        assert normalize_time_input(raw) == expected

    def test_span_wraps_midnight(self):
        from zeitlib.time_utils import span_hours
        assert span_hours('22:00', '06:00') == 8.0

    def test_span_missing(self):
        from zeitlib.time_utils import span_hours
        assert span_hours('08:00', None) == 0.0


class TestPause:
    @pytest.mark.parametrize('raw,expected', [
        ('keine', 0), ('none', 0), ('', 0), (None, 0), ('30', 30), ('45min.', 45),
        (30, 30), (500, 180), (-5, 0),
    ])
    def test_pause_to_minutes(self, raw, expected):
        from zeitlib.time_utils import pause_to_minutes
        assert pause_to_minutes(raw) == expected


class TestIstHours:
    def test_legal_pause_applies_when_entered_is_lower(self):
        from zeitlib.time_utils import calculate_ist_hours
        result = calculate_ist_hours('08:00', '16:30', None, None, 0)
        assert result.raw_hours == 8.5
        assert result.pause_minutes == 30
        assert result.net_hours == 8.0

    def test_entered_pause_wins_when_higher(self):
        from zeitlib.time_utils import calculate_ist_hours
        result = calculate_ist_hours('08:00', '12:00', None, None, 60)
        assert result.net_hours == 3.0

    def test_two_blocks_are_summed(self):
        from zeitlib.time_utils import calculate_ist_hours
        result = calculate_ist_hours('08:00', '12:00', '13:00', '17:30', 0)
        assert result.raw_hours == 8.5
        assert result.net_hours == 8.0


# ─────────────────────────────────────────────────────────────
# Dates
# ─────────────────────────────────────────────────────────────

class TestDates:
    def test_parse_rejects_garbage(self):
        from zeitlib.time_utils import parse_iso_date
        with pytest.raises(ValueError, match='YYYY-MM-DD'):
            parse_iso_date('28.01.2025')
        with pytest.raises(ValueError):
            parse_iso_date('2025-02-30')

    def test_date_range_inclusive(self):
        from zeitlib.time_utils import date_range
        assert date_range('2025-01-30', '2025-02-02') == [
            '2025-01-30', '2025-01-31', '2025-02-01', '2025-02-02',
        ]

    def test_date_range_reversed(self):
        from zeitlib.time_utils import date_range
        assert date_range('2025-01-02', '2025-01-01') == ['2025-01-01', '2025-01-02']

    def test_month_bounds_december(self):
        from zeitlib.time_utils import month_bounds
        assert month_bounds(2024, 12) == ('2024-12-01', '2024-12-31')

    def test_month_bounds_leap_february(self):
        from zeitlib.time_utils import month_bounds
        assert month_bounds(2024, 2) == ('2024-02-01', '2024-02-29')

    def test_previous_month(self):
        from zeitlib.time_utils import previous_month
        assert previous_month(2025, 1) == (2024, 12)
        assert previous_month(2025, 5) == (2025, 4)

    def test_labels(self):
        from zeitlib.time_utils import format_date_de, month_label
        assert month_label(2025, 3) == 'März 2025'
        assert format_date_de('2025-01-28') == '28.01.2025'
