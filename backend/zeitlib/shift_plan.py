"""
Read-only shift plan model.

A plan day is stored as one or more ordered segments (start/end/pause/label/
branch). ``ShiftPlan.plan_hours()`` resolves a date to a ``PlanHoursInfo``
(span, target hours net of the required pause), falling back to a weekly
two-week pattern for employees without any daily plan entries.
"""
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from .errors import ShiftPlanError
from .pause_law import required_pause_minutes
from .status_codes import StatusCode
from .time_utils import HOURS_EPSILON, parse_iso_date, parse_time, span_hours

NO_WORK_LABEL = 'Kein Arbeitstag'

# First match wins; keywords are compared after diacritic folding.
PLAN_LABEL_CODE_MAP = [
    ('feiertag', StatusCode.FT),
    ('urlaub', StatusCode.U),
    ('krank', StatusCode.K),
    ('kurzarbeit', StatusCode.KU),
    ('uberstunden', StatusCode.UE),
    ('ueberstunden', StatusCode.UE),
    ('abbau', StatusCode.UE),
]


def _fold(text: Optional[str]) -> str:
    """Lowercase and strip diacritics ('Überstunden' -> 'uberstunden')."""
    decomposed = unicodedata.normalize('NFKD', (text or '').strip().lower())
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def is_no_work_label(label: Optional[str]) -> bool:
    return _fold(label) == _fold(NO_WORK_LABEL)


def derive_code_from_label(label: Optional[str], on_holiday: bool = False) -> Optional[StatusCode]:
    """Status code implied by a plan label, or None for ordinary shifts.

    Vacation planned on a public holiday counts as holiday (FT).
    """
    folded = _fold(label)
    if not folded:
        return None
    for keyword, code in PLAN_LABEL_CODE_MAP:
        if keyword in folded:
            if code == StatusCode.U and on_holiday:
                return StatusCode.FT
            return code
    return None


def sanitize_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) == 4 and value[1] == ':':
        value = '0' + value
    return value


# ── Models ─────────────────────────────────────────────────────

class ShiftPlanSegment(BaseModel):
    segment_index: int = Field(0, ge=0)
    mode: Literal['available', 'unavailable'] = 'available'
    start: Optional[str] = None
    end: Optional[str] = None
    required_pause_minutes: int = Field(0, ge=0)
    label: Optional[str] = None
    branch_id: Optional[int] = None

    @field_validator('start', 'end')
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        v = sanitize_time(v)
        if v is not None and parse_time(v) is None:
            raise ValueError("Uhrzeit muss im Format HH:MM angegeben werden")
        return v

    @property
    def has_times(self) -> bool:
        return bool(self.start and self.end)


class ShiftPlanDay(BaseModel):
    iso_date: str
    segments: List[ShiftPlanSegment] = Field(default_factory=list)

    @field_validator('iso_date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_iso_date(v)
        return v

    @classmethod
    def single(cls, iso_date: str, start: Optional[str] = None, end: Optional[str] = None,
               required_pause_minutes: int = 0, label: Optional[str] = None,
               branch_id: Optional[int] = None) -> 'ShiftPlanDay':
        """Legacy one-segment plan day."""
        return cls(iso_date=iso_date, segments=[ShiftPlanSegment(
            start=start, end=end, required_pause_minutes=required_pause_minutes,
            label=label, branch_id=branch_id,
        )])

    def timed_segments(self) -> List[ShiftPlanSegment]:
        """Segments whose times make up the day's plan hours.

        Working segments win. A day without any keeps the times of its
        absence-labelled segments, so a planned vacation still carries hours.
        """
        ordered = [s for s in sorted(self.segments, key=lambda s: s.segment_index) if s.has_times]
        available = [s for s in ordered if s.mode == 'available']
        if available:
            return available
        return [s for s in ordered if derive_code_from_label(s.label) is not None]

    @property
    def label(self) -> Optional[str]:
        """Absence label wins over an ordinary shift label."""
        for seg in self.segments:
            if seg.mode == 'unavailable' and seg.label:
                return seg.label
        for seg in self.segments:
            if seg.label:
                return seg.label
        return None

    @property
    def branch_id(self) -> Optional[int]:
        return next((s.branch_id for s in self.segments if s.branch_id), None)


class PatternDay(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    required_pause_minutes: int = Field(0, ge=0)


class WeeklyPattern(BaseModel):
    """Weekday template (0 = Monday). ``w2`` is used in two-week cycles for late shifts."""
    two_week_cycle: bool = False
    w1: Dict[int, PatternDay] = Field(default_factory=dict)
    w2: Dict[int, PatternDay] = Field(default_factory=dict)

    def day_for(self, iso_date: str, schicht: Optional[str] = None) -> Optional[PatternDay]:
        weekday = parse_iso_date(iso_date).weekday()
        use_w2 = self.two_week_cycle and (schicht or '').strip().lower() == 'spät'
        return (self.w2 if use_w2 else self.w1).get(weekday)


@dataclass(frozen=True)
class PlanHoursInfo:
    raw_hours: float
    soll_hours: float
    required_pause_minutes: int
    start: Optional[str] = None
    end: Optional[str] = None
    start2: Optional[str] = None
    end2: Optional[str] = None
    label: Optional[str] = None
    branch_id: Optional[int] = None

    @property
    def has_times(self) -> bool:
        return bool(self.start and self.end)


def build_plan_hours(start: Optional[str], end: Optional[str], required_pause: int = 0,
                     start2: Optional[str] = None, end2: Optional[str] = None,
                     label: Optional[str] = None, branch_id: Optional[int] = None) -> PlanHoursInfo:
    """Target hours: span minus max(legal pause, plan's required pause)."""
    raw = span_hours(start, end) + span_hours(start2, end2)
    if raw <= HOURS_EPSILON:
        return PlanHoursInfo(0.0, 0.0, required_pause, start, end, start2, end2, label, branch_id)
    pause = max(required_pause_minutes(raw), required_pause or 0)
    soll = max(raw - pause / 60, 0.0)
    return PlanHoursInfo(round(raw, 2), round(soll, 2), required_pause, start, end,
                         start2, end2, label, branch_id)


def plan_hours_for_day(day: ShiftPlanDay) -> PlanHoursInfo:
    timed = day.timed_segments()
    first = timed[0] if timed else None
    second = timed[1] if len(timed) > 1 else None
    pause = sum(s.required_pause_minutes for s in timed)
    return build_plan_hours(
        first.start if first else None,
        first.end if first else None,
        pause,
        second.start if second else None,
        second.end if second else None,
        label=day.label,
        branch_id=day.branch_id,
    )


class ShiftPlan:
    """All plan days of one employee, plus the optional weekly fallback."""

    def __init__(self, employee_id: int, days: Optional[Sequence[ShiftPlanDay]] = None,
                 weekly: Optional[WeeklyPattern] = None, schicht: Optional[str] = None):
        self.employee_id = employee_id
        self.days: Dict[str, ShiftPlanDay] = {d.iso_date: d for d in (days or [])}
        self.weekly = weekly
        self.schicht = schicht

    def day(self, iso_date: str) -> Optional[ShiftPlanDay]:
        return self.days.get(iso_date)

    def plan_hours(self, iso_date: str) -> Optional[PlanHoursInfo]:
        day = self.days.get(iso_date)
        if day is not None:
            return plan_hours_for_day(day)
        # weekly template only applies to employees without daily planning
        if not self.days and self.weekly is not None:
            pattern = self.weekly.day_for(iso_date, self.schicht)
            if pattern is None:
                return None
            return build_plan_hours(sanitize_time(pattern.start), sanitize_time(pattern.end),
                                    pattern.required_pause_minutes)
        return None

    def label(self, iso_date: str) -> Optional[str]:
        day = self.days.get(iso_date)
        return day.label if day else None


# ── Segment normalization (plan saves) ─────────────────────────

def normalize_segments(iso_date: str, segments: Sequence[dict],
                       employee_branch_ids: Sequence[int] = ()) -> List[ShiftPlanSegment]:
    """Clean up submitted segments for one day.

    Drops empty segments, forces no-work days to null times, resolves branches
    against the employee's branches and rejects overlapping or zero-length
    segments with ShiftPlanError.
    """
    parse_iso_date(iso_date)
    branch_ids = list(employee_branch_ids)
    fallback_branch = branch_ids[0] if len(branch_ids) == 1 else None

    result: List[ShiftPlanSegment] = []
    for index, raw in enumerate(segments):
        label = (raw.get('label') or '').strip() or None
        mode = 'unavailable' if raw.get('mode') == 'unavailable' else 'available'
        no_work = mode == 'unavailable' and is_no_work_label(label)

        start = None if no_work else sanitize_time(raw.get('start'))
        end = None if no_work else sanitize_time(raw.get('end'))
        try:
            pause = max(0, round(float(raw.get('required_pause_minutes') or 0)))
        except (TypeError, ValueError):
            pause = 0
        if no_work:
            pause = 0

        branch_id = _coerce_branch(raw.get('branch_id'), branch_ids, fallback_branch)
        if no_work:
            branch_id = None

        has_content = bool(start or end or label or pause > 0)
        if not has_content:
            continue
        if bool(start) != bool(end):
            raise ShiftPlanError("Beginn und Ende müssen gemeinsam angegeben werden.")

        try:
            segment = ShiftPlanSegment(
                segment_index=max(0, int(raw.get('segment_index', index) or 0)),
                mode=mode, start=start, end=end, required_pause_minutes=pause,
                label=label, branch_id=branch_id,
            )
        except ValueError as e:
            raise ShiftPlanError(f"Ungültiges Segment: {e}") from e
        if segment.has_times and parse_time(segment.start) == parse_time(segment.end):
            raise ShiftPlanError("Ende muss nach dem Beginn liegen.")
        result.append(segment)

    result.sort(key=lambda s: s.segment_index)
    _check_overlap(result)
    return result


def _check_overlap(segments: List[ShiftPlanSegment]) -> None:
    windows = []
    for seg in segments:
        if not seg.has_times:
            continue
        s = parse_time(seg.start)
        e = parse_time(seg.end)
        if e <= s:
            e += 24 * 60
        windows.append((s, e))
    windows.sort()
    for (_, prev_end), (next_start, _) in zip(windows, windows[1:]):
        if next_start < prev_end:
            raise ShiftPlanError("Segmente eines Tages dürfen sich nicht überschneiden.")


def _coerce_branch(value, branch_ids: List[int], fallback: Optional[int]) -> Optional[int]:
    if value is None:
        return fallback
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    if parsed <= 0:
        return None
    return parsed if parsed in branch_ids else fallback
