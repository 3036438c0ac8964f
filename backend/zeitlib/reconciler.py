"""
Plan/actual reconciliation.

Turns a shift plan plus an in-progress entry into form defaults, decides
whether an entry needs operator confirmation (plan deviation, public
holiday), classifies overtime-abatement days and derives the per-code hour
breakdown. Plan-only absence days become read-only synthetic entries.

Decisions are returned, never prompted: callers get a ``Decision`` with
kind proceed / needs_confirmation / reject and decide how to ask.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .models import EmployeeProfile, TimeEntry
from .pause_law import PAUSE_EPSILON_HOURS, enforced_pause_minutes
from .shift_plan import PlanHoursInfo, ShiftPlan, derive_code_from_label
from .status_codes import CODE_POLICIES, StatusCode, parse_code
from .time_utils import HOURS_EPSILON, calculate_ist_hours, format_date_de

# Codes offered when a regular entry deviates from the plan.
DEVIATION_ALTERNATIVES: Tuple[StatusCode, ...] = (
    StatusCode.UE, StatusCode.KR, StatusCode.KKR, StatusCode.UH,
)
REVERT_TO_PLAN = 'plan'

SYNTHETIC_MIN_HOURS = 0.001


# ── Defaults ───────────────────────────────────────────────────

@dataclass(frozen=True)
class EntryDefaults:
    start: Optional[str]
    end: Optional[str]
    pause: int
    mittag: str
    has_plan: bool
    start2: Optional[str] = None
    end2: Optional[str] = None


def compute_defaults(plan, iso_date: Optional[str] = None, requires_meal_flag: bool = False,
                     mandatory_pause_under6: int = 0, user_overrode_pause: bool = False,
                     current_pause: Optional[int] = None) -> EntryDefaults:
    """Prefill values for the entry form.

    *plan* is a ``ShiftPlan`` (resolved for *iso_date*) or an already resolved
    ``PlanHoursInfo``. When *user_overrode_pause* is set, *current_pause* is
    kept instead of the computed pause.
    """
    info = plan.plan_hours(iso_date) if isinstance(plan, ShiftPlan) else plan
    keep_pause = user_overrode_pause and current_pause is not None

    if info is None or not info.has_times:
        return EntryDefaults(
            start=None, end=None,
            pause=int(current_pause) if keep_pause else 0,
            mittag='Ja' if requires_meal_flag else 'Nein',
            has_plan=False,
        )

    span = info.raw_hours
    pause = enforced_pause_minutes(span, info.required_pause_minutes, mandatory_pause_under6)
    if keep_pause:
        pause = int(current_pause)
    long_day = span > 6 + PAUSE_EPSILON_HOURS
    return EntryDefaults(
        start=info.start, end=info.end, pause=pause,
        mittag='Ja' if (requires_meal_flag or long_day) else 'Nein',
        has_plan=True, start2=info.start2, end2=info.end2,
    )


# ── Decisions ──────────────────────────────────────────────────

class DecisionKind(str, Enum):
    PROCEED = 'proceed'
    NEEDS_CONFIRMATION = 'needs_confirmation'
    REJECT = 'reject'


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    reason: Optional[str] = None
    message: str = ''
    options: Tuple[str, ...] = ()
    code: Optional[StatusCode] = None
    defaults: Optional[EntryDefaults] = None

    @classmethod
    def proceed(cls, code: Optional[StatusCode] = None) -> 'Decision':
        return cls(DecisionKind.PROCEED, code=code)

    @classmethod
    def confirm(cls, reason: str, message: str, options: Sequence[str] = (),
                defaults: Optional[EntryDefaults] = None) -> 'Decision':
        return cls(DecisionKind.NEEDS_CONFIRMATION, reason, message, tuple(options), defaults=defaults)

    @classmethod
    def reject(cls, message: str, reason: Optional[str] = None) -> 'Decision':
        return cls(DecisionKind.REJECT, reason, message)

    @property
    def needs_confirmation(self) -> bool:
        return self.kind == DecisionKind.NEEDS_CONFIRMATION


@dataclass
class Confirmations:
    """Answers an operator already gave for a submission."""
    deviation_choice: Optional[str] = None     # a StatusCode value or 'plan'
    holiday_worked: Optional[bool] = None
    zero_pause_meal: bool = False


def _same_time(a: Optional[str], b: Optional[str]) -> bool:
    return (a or None) == (b or None)


def matches_plan_block(entry: TimeEntry, info: Optional[PlanHoursInfo]) -> bool:
    """Primary block equals the plan's times and no second block was entered."""
    if info is None or not info.has_times:
        return False
    return (_same_time(entry.kommt1, info.start)
            and _same_time(entry.geht1, info.end)
            and not entry.has_second_block)


def detect_deviation(entry: TimeEntry, info: Optional[PlanHoursInfo],
                     defaults: Optional[EntryDefaults] = None) -> Decision:
    """Regular-work entries must match the plan or be reclassified/reverted."""
    if entry.code != StatusCode.RA or info is None or not info.has_times:
        return Decision.proceed()
    if defaults is None:
        defaults = compute_defaults(info)

    reasons = []
    if not _same_time(entry.kommt1, info.start) or not _same_time(entry.geht1, info.end):
        reasons.append('Zeiten')
    plan_has_second = bool(info.start2 and info.end2)
    if (entry.has_second_block or plan_has_second) and not (
            _same_time(entry.kommt2, info.start2) and _same_time(entry.geht2, info.end2)):
        reasons.append('zweiter Block')
    if entry.pause != defaults.pause:
        reasons.append('Pause')
    if not reasons:
        return Decision.proceed()

    plan_times = f"{info.start}–{info.end}"
    if plan_has_second:
        plan_times += f" und {info.start2}–{info.end2}"
    message = (
        f"Die Erfassung am {format_date_de(entry.day_date)} weicht vom Schichtplan ab "
        f"({', '.join(reasons)}; Plan {plan_times}, {defaults.pause} Min. Pause). "
        f"Bitte einen anderen Code wählen oder die Planzeiten übernehmen."
    )
    options = [c.value for c in DEVIATION_ALTERNATIVES] + [REVERT_TO_PLAN]
    return Decision.confirm('plan_deviation', message, options, defaults)


def apply_deviation_choice(entry: TimeEntry, choice: str, defaults: EntryDefaults) -> TimeEntry:
    """Apply the operator's answer to a deviation prompt."""
    if choice == REVERT_TO_PLAN:
        return entry.model_copy(update={
            'kommt1': defaults.start, 'geht1': defaults.end,
            'kommt2': defaults.start2, 'geht2': defaults.end2,
            'pause': defaults.pause,
        })
    code = parse_code(choice)
    if code not in DEVIATION_ALTERNATIVES:
        raise ValueError(f"Code {code} ist als Alternative nicht zulässig")
    return entry.model_copy(update={'code': code})


def holiday_decision(iso_date: str, holiday_name: Optional[str], has_entry: bool,
                     plan_code: Optional[StatusCode], worked: Optional[bool] = None) -> Decision:
    """Unrecorded public holidays ask whether the employee worked.

    ``worked=False`` resolves to FT, ``worked=True`` leaves the day for normal entry.
    """
    if holiday_name is None or has_entry or plan_code is not None:
        return Decision.proceed()
    if worked is None:
        return Decision.confirm(
            'holiday',
            f"Der {format_date_de(iso_date)} ist ein Feiertag ({holiday_name}). "
            f"Wurde an diesem Tag gearbeitet?",
            ('ja', 'nein'),
        )
    if worked:
        return Decision.proceed()
    return Decision.proceed(code=StatusCode.FT)


# ── Entry preparation ──────────────────────────────────────────

def _zeroed(entry: TimeEntry, **extra) -> TimeEntry:
    update = {'kommt1': None, 'geht1': None, 'kommt2': None, 'geht2': None,
              'pause': 0, 'mittag': 'Nein'}
    update.update(extra)
    return entry.model_copy(update=update)


def is_full_day_abatement(entry: TimeEntry, info: Optional[PlanHoursInfo]) -> bool:
    """Ü on the plan's exact times: a planned day absorbed by overtime credit."""
    return entry.code == StatusCode.UE and matches_plan_block(entry, info)


def classify_abatement(entry: TimeEntry, info: Optional[PlanHoursInfo]) -> Tuple[TimeEntry, bool]:
    """Return (entry, full_day). Full-day abatement clears times, pause, meal and revenue."""
    if entry.code != StatusCode.UE:
        return entry, False
    if is_full_day_abatement(entry, info):
        return _zeroed(entry, brutto=None), True
    if entry.kommt1 is None and entry.geht1 is None and not entry.has_second_block:
        return _zeroed(entry, brutto=None), True
    return entry, False


def entry_plan_hours(info: Optional[PlanHoursInfo], mandatory_pause_under6: int = 0) -> Tuple[float, int]:
    """(target hours, enforced pause) for a recorded day, including the pause policy."""
    if info is None or info.raw_hours <= HOURS_EPSILON:
        return 0.0, 0
    pause = enforced_pause_minutes(info.raw_hours, info.required_pause_minutes, mandatory_pause_under6)
    return round(max(info.raw_hours - pause / 60, 0.0), 2), pause


def prepare_entry(entry: TimeEntry, info: Optional[PlanHoursInfo],
                  profile: Optional[EmployeeProfile] = None) -> TimeEntry:
    """Normalize an entry for its code and fill the derived hour fields."""
    mandatory = profile.min_pause_under6_minutes if profile else 0
    plan_hours, enforced_pause = entry_plan_hours(info, mandatory)
    code = entry.code
    breakdown = {}

    if code == StatusCode.UE:
        entry, _ = classify_abatement(entry, info)
    elif code in (StatusCode.U, StatusCode.K, StatusCode.KK, StatusCode.KU, StatusCode.UBF):
        entry = _zeroed(entry)
    elif code == StatusCode.FT:
        worked = calculate_ist_hours(entry.kommt1, entry.geht1, entry.kommt2, entry.geht2, entry.pause)
        if worked.net_hours <= HOURS_EPSILON:
            entry = _zeroed(entry)
            breakdown['holiday_hours'] = plan_hours

    if entry.code == StatusCode.UE:
        # only the primary block counts for partial abatement
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, None, None, entry.pause)
    else:
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, entry.kommt2, entry.geht2, entry.pause)

    if code == StatusCode.U:
        breakdown['vacation_hours'] = plan_hours
    elif code == StatusCode.UH:
        breakdown['vacation_hours'] = round(plan_hours / 2, 2)
    elif code == StatusCode.K:
        breakdown['sick_hours'] = plan_hours
    elif code == StatusCode.KK:
        breakdown['child_sick_hours'] = plan_hours
    elif code == StatusCode.KR:
        breakdown['sick_hours'] = round(max(plan_hours - ist.net_hours, 0.0), 2)
    elif code == StatusCode.KKR:
        breakdown['child_sick_hours'] = round(max(plan_hours - ist.net_hours, 0.0), 2)
    elif code == StatusCode.KU:
        breakdown['short_work_hours'] = plan_hours

    stored_plan = plan_hours
    if code in (StatusCode.KU, StatusCode.UBF):
        stored_plan = 0.0

    update = {
        'ist_hours': ist.net_hours,
        'raw_hours': ist.raw_hours,
        'plan_hours': stored_plan,
        'required_pause_minutes': enforced_pause,
        'sick_hours': 0.0, 'child_sick_hours': 0.0, 'short_work_hours': 0.0,
        'vacation_hours': 0.0, 'holiday_hours': 0.0,
    }
    update.update(breakdown)
    if CODE_POLICIES[code].meal_blocked:
        update['mittag'] = 'Nein'
    return entry.model_copy(update=update)


# ── Synthetic plan days ────────────────────────────────────────

def synthesize_plan_days(plan: ShiftPlan, dates: Iterable[str], recorded_dates: Iterable[str],
                         holiday_lookup: Optional[Callable[[str], bool]] = None) -> List[TimeEntry]:
    """Virtual entries for plan-only absence days without a real entry."""
    recorded = set(recorded_dates)
    result: List[TimeEntry] = []
    for iso_date in sorted(set(dates)):
        if iso_date in recorded:
            continue
        label = plan.label(iso_date)
        if not label:
            continue
        on_holiday = bool(holiday_lookup(iso_date)) if holiday_lookup else False
        code = derive_code_from_label(label, on_holiday=on_holiday)
        if code is None:
            continue
        # absence days are listed even when the plan carries no hours
        info = plan.plan_hours(iso_date)
        hours = info.soll_hours if info is not None else 0.0
        result.append(synthetic_entry(plan.employee_id, iso_date, code, hours, label))
    return result


def synthetic_entry(employee_id: int, iso_date: str, code: StatusCode,
                    plan_hours: float, label: Optional[str] = None) -> TimeEntry:
    category_field = {
        StatusCode.U: 'vacation_hours',
        StatusCode.K: 'sick_hours',
        StatusCode.KU: 'short_work_hours',
        StatusCode.FT: 'holiday_hours',
    }.get(code)
    data = dict(
        employee_id=employee_id, day_date=iso_date, code=code, schicht=label,
        synthetic=True, plan_hours=plan_hours,
    )
    if category_field:
        data[category_field] = plan_hours
    return TimeEntry(**data)


def missing_entry_dates(plan: ShiftPlan, dates: Iterable[str], entries: Iterable[TimeEntry]) -> List[str]:
    """Planned work days in *dates* that still need a real entry.

    Days covered by any entry (synthetic ones included) and plan days whose
    label already implies an absence are not reported.
    """
    covered = {e.day_date for e in entries}
    missing = []
    for iso_date in sorted(set(dates)):
        if iso_date in covered:
            continue
        if derive_code_from_label(plan.label(iso_date)) is not None:
            continue
        info = plan.plan_hours(iso_date)
        if info is not None and info.soll_hours > SYNTHETIC_MIN_HOURS:
            missing.append(iso_date)
    return missing
