"""
Shift plan model: label mapping, plan hours, weekly fallback and segment saves.
"""
import pytest

from zeitlib.errors import ShiftPlanError
from zeitlib.shift_plan import (
    PatternDay, ShiftPlan, ShiftPlanDay, WeeklyPattern, build_plan_hours,
    derive_code_from_label, is_no_work_label, normalize_segments, plan_hours_for_day,
)
from zeitlib.status_codes import StatusCode

from conftest import plan_day


# ── Labels ─────────────────────────────────────────────────────────────────────

class TestLabels:
    @pytest.mark.parametrize('label,code', [
        ('Urlaub', StatusCode.U),
        ('URLAUB (genehmigt)', StatusCode.U),
        ('Krank', StatusCode.K),
        ('Kurzarbeit', StatusCode.KU),
        ('Überstundenabbau', StatusCode.UE),
        ('Ueberstunden', StatusCode.UE),
        ('Feiertag', StatusCode.FT),
        ('Frühschicht', None),
        (None, None),
    ])
    def test_derive_code(self, label, code):
        assert derive_code_from_label(label) == code

    def test_vacation_on_holiday_becomes_holiday(self):
        assert derive_code_from_label('Urlaub', on_holiday=True) == StatusCode.FT

    def test_no_work_label(self):
        assert is_no_work_label('kein arbeitstag')
        assert not is_no_work_label('Urlaub')

    def test_absence_label_wins(self):
        day = ShiftPlanDay(iso_date='2025-03-03', segments=[
            {'segment_index': 0, 'start': '08:00', 'end': '12:00', 'label': 'Frühschicht'},
            {'segment_index': 1, 'mode': 'unavailable', 'label': 'Urlaub'},
        ])
        assert day.label == 'Urlaub'


# ── Plan hours ─────────────────────────────────────────────────────────────────

class TestPlanHours:
    def test_net_of_legal_pause(self):
        info = build_plan_hours('08:00', '16:30')
        assert info.raw_hours == 8.5
        assert info.soll_hours == 8.0

    def test_plan_pause_wins_when_higher(self):
        info = build_plan_hours('08:00', '16:30', required_pause=45)
        assert info.soll_hours == 7.75

    def test_short_day_has_no_pause(self):
        assert build_plan_hours('08:00', '12:00').soll_hours == 4.0

    def test_empty_span(self):
        info = build_plan_hours(None, None, label='Urlaub')
        assert info.raw_hours == 0.0
        assert not info.has_times

    def test_night_shift(self):
        assert build_plan_hours('22:00', '06:00').soll_hours == 7.5

    def test_two_segments(self):
        day = ShiftPlanDay(iso_date='2025-03-03', segments=[
            {'segment_index': 0, 'start': '08:00', 'end': '12:00'},
            {'segment_index': 1, 'start': '13:00', 'end': '17:00'},
        ])
        info = plan_hours_for_day(day)
        assert info.raw_hours == 8.0
        assert info.start2 == '13:00'
        assert info.soll_hours == 7.5

    def test_unavailable_absence_segment_counts(self):
        day = plan_day('2025-03-03', '08:00', '16:30', label='Urlaub', mode='unavailable')
        info = plan_hours_for_day(day)
        assert info.soll_hours == 8.0
        assert info.label == 'Urlaub'

    def test_unavailable_without_absence_label_has_no_hours(self):
        day = plan_day('2025-03-03', '08:00', '16:30', label='Schule', mode='unavailable')
        assert plan_hours_for_day(day).soll_hours == 0.0

    def test_working_segment_wins_over_absence_segment(self):
        day = ShiftPlanDay(iso_date='2025-03-03', segments=[
            {'segment_index': 0, 'start': '08:00', 'end': '12:00'},
            {'segment_index': 1, 'mode': 'unavailable', 'start': '13:00', 'end': '17:00',
             'label': 'Urlaub'},
        ])
        assert plan_hours_for_day(day).soll_hours == 4.0

    def test_legacy_single_segment(self):
        day = ShiftPlanDay.single('2025-03-03', '06:00', '14:00', required_pause_minutes=30)
        assert plan_hours_for_day(day).soll_hours == 7.5


class TestShiftPlan:
    def _weekly(self):
        return WeeklyPattern(
            two_week_cycle=True,
            w1={0: PatternDay(start='08:00', end='16:30')},
            w2={0: PatternDay(start='12:00', end='20:30')},
        )

    def test_daily_day(self):
        plan = ShiftPlan(1, [plan_day('2025-03-03', '08:00', '14:00')])
        assert plan.plan_hours('2025-03-03').soll_hours == 6.0
        assert plan.plan_hours('2025-03-04') is None

    def test_weekly_fallback_without_daily_plan(self):
        plan = ShiftPlan(1, [], self._weekly())
        assert plan.plan_hours('2025-03-03').start == '08:00'
        assert plan.plan_hours('2025-03-04') is None

    def test_weekly_late_shift(self):
        plan = ShiftPlan(1, [], self._weekly(), schicht='spät')
        assert plan.plan_hours('2025-03-03').start == '12:00'

    def test_weekly_ignored_once_daily_plan_exists(self):
        plan = ShiftPlan(1, [plan_day('2025-03-04', '08:00', '12:00')], self._weekly())
        assert plan.plan_hours('2025-03-03') is None


# ── Segment normalization ──────────────────────────────────────────────────────

class TestNormalizeSegments:
    def test_drops_empty_segments(self):
        result = normalize_segments('2025-03-03', [
            {'start': '08:00', 'end': '12:00'}, {'start': '', 'end': ''},
        ])
        assert len(result) == 1

    def test_no_work_day_has_no_times(self):
        result = normalize_segments('2025-03-03', [{
            'mode': 'unavailable', 'label': 'Kein Arbeitstag',
            'start': '08:00', 'end': '12:00', 'required_pause_minutes': 30,
        }])
        assert result[0].start is None
        assert result[0].required_pause_minutes == 0

    def test_pads_times(self):
        result = normalize_segments('2025-03-03', [{'start': '8:00', 'end': '12:00'}])
        assert result[0].start == '08:00'

    def test_single_branch_is_default(self):
        result = normalize_segments('2025-03-03', [{'start': '08:00', 'end': '12:00'}], [4])
        assert result[0].branch_id == 4

    def test_foreign_branch_falls_back(self):
        result = normalize_segments('2025-03-03',
                                    [{'start': '08:00', 'end': '12:00', 'branch_id': 9}], [4, 5])
        assert result[0].branch_id is None

    def test_unpaired_time(self):
        with pytest.raises(ShiftPlanError, match='gemeinsam'):
            normalize_segments('2025-03-03', [{'start': '08:00'}])

    def test_zero_length(self):
        with pytest.raises(ShiftPlanError):
            normalize_segments('2025-03-03', [{'start': '08:00', 'end': '08:00'}])

    def test_overlap(self):
        with pytest.raises(ShiftPlanError, match='überschneiden'):
            normalize_segments('2025-03-03', [
                {'segment_index': 0, 'start': '08:00', 'end': '12:00'},
                {'segment_index': 1, 'start': '11:00', 'end': '15:00'},
            ])

    def test_invalid_time(self):
        with pytest.raises(ShiftPlanError):
            normalize_segments('2025-03-03', [{'start': '25:00', 'end': '26:00'}])
