"""
Overtime and balance recomputation.

``recompute_balances`` folds an employee's full, date-ordered day history
(real and synthetic entries) into running totals. It never patches previous
results: the same input always yields the same output, so it can be called
after every mutation.
"""
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .log import get_logger
from .models import EmployeeProfile, TimeEntry
from .status_codes import StatusCode
from .time_utils import HOURS_EPSILON, calculate_ist_hours, year_month

_logger = get_logger('overtime')

FLOAT_TOLERANCE = 0.0001
# vacation on an unplanned day counts as a day of this length
DEFAULT_DAY_HOURS = 8.0

PlanProvider = Callable[[TimeEntry], float]


@dataclass
class OvertimeSettings:
    """Optional caps; None means unlimited."""
    max_overtime_hours: Optional[float] = None
    max_minus_hours: Optional[float] = None


@dataclass
class Baseline:
    """Pre-system history imported once per employee."""
    overtime_hours: float = 0.0
    minus_hours: float = 0.0
    vacation_hours: float = 0.0

    @classmethod
    def from_profile(cls, profile: Optional[EmployeeProfile]) -> 'Baseline':
        if profile is None:
            return cls()
        return cls(profile.imported_overtime, profile.imported_minus, profile.imported_vacation)

    @property
    def balance(self) -> float:
        return self.overtime_hours - self.minus_hours


@dataclass
class DayFigures:
    day_date: str
    code: str
    synthetic: bool
    plan_hours: float
    ist_hours: float
    overtime_delta: float = 0.0
    forced_overflow: float = 0.0
    unbooked_hours: float = 0.0
    sick_hours: float = 0.0
    child_sick_hours: float = 0.0
    short_work_hours: float = 0.0
    vacation_hours: float = 0.0
    holiday_hours: float = 0.0


@dataclass
class BalanceResult:
    employee_id: int
    balance_hours: float
    payout_bank_hours: float
    vacation_hours: float
    sick_hours: float
    child_sick_hours: float
    short_work_hours: float
    holiday_hours: float
    paid_out_hours: float
    days: List[DayFigures] = field(default_factory=list)
    months: List[Dict] = field(default_factory=list)

    @property
    def overtime_hours(self) -> float:
        return round(max(self.balance_hours, 0.0), 2)

    @property
    def minus_hours(self) -> float:
        return round(max(-self.balance_hours, 0.0), 2)

    def totals(self) -> Dict:
        data = asdict(self)
        data.pop('days')
        data.pop('months')
        data['overtime_hours'] = self.overtime_hours
        data['minus_hours'] = self.minus_hours
        return data


def vacation_day_fraction(fig: DayFigures) -> float:
    """Vacation hours as a share of the planned day (U = 1, UH = 0.5)."""
    if fig.vacation_hours <= 0:
        return 0.0
    denominator = fig.plan_hours if fig.plan_hours > 0 else DEFAULT_DAY_HOURS
    return fig.vacation_hours / denominator


def _resolve_plan(entry: TimeEntry, plan_provider: Optional[PlanProvider]) -> float:
    if entry.plan_hours and entry.plan_hours > 0:
        return entry.plan_hours
    if plan_provider is None:
        return 0.0
    try:
        return max(float(plan_provider(entry) or 0.0), 0.0)
    except Exception:
        # missing or broken plan data: treat the day as unplanned
        _logger.warning("Plan für MA %s am %s nicht ermittelbar, verwende 0 h",
                        entry.employee_id, entry.day_date, exc_info=True)
        return 0.0


def day_figures(entry: TimeEntry, plan_provider: Optional[PlanProvider] = None) -> Tuple[DayFigures, float]:
    """Per-day breakdown and the raw overtime delta before caps."""
    code = entry.code
    if code == StatusCode.UBF:
        return DayFigures(entry.day_date, code.value, entry.synthetic, 0.0, 0.0), 0.0

    plan = _resolve_plan(entry, plan_provider)
    if code == StatusCode.UE:
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, None, None, entry.pause).net_hours
    else:
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, entry.kommt2, entry.geht2, entry.pause).net_hours
    fig = DayFigures(entry.day_date, code.value, entry.synthetic, round(plan, 2), ist)
    delta = 0.0

    if code in (StatusCode.RA, StatusCode.UE):
        delta = ist - plan
    elif code == StatusCode.U:
        fig.vacation_hours = plan
    elif code == StatusCode.UH:
        fig.vacation_hours = round(plan / 2, 2)
        delta = ist - plan / 2
    elif code == StatusCode.K:
        fig.sick_hours = plan
    elif code == StatusCode.KK:
        fig.child_sick_hours = plan
    elif code == StatusCode.KR:
        fig.sick_hours = round(max(plan - ist, 0.0), 2)
    elif code == StatusCode.KKR:
        fig.child_sick_hours = round(max(plan - ist, 0.0), 2)
    elif code == StatusCode.KU:
        fig.short_work_hours = round(max(entry.short_work_hours, plan), 2)
        fig.plan_hours = 0.0
    elif code == StatusCode.FT:
        if ist > HOURS_EPSILON:
            delta = ist - plan
        else:
            fig.holiday_hours = plan
    return fig, delta


def _apply_delta(delta: float, balance: float, bank: float,
                 settings: OvertimeSettings) -> Tuple[float, float, float, float, float]:
    """Returns (balance, bank, booked, forced, unbooked)."""
    if delta > FLOAT_TOLERANCE:
        if settings.max_overtime_hours is None:
            return balance + delta, bank, delta, 0.0, 0.0
        room = max(0.0, settings.max_overtime_hours - balance)
        booked = min(room, delta)
        forced = delta - booked
        return balance + booked, bank + forced, booked, forced, 0.0
    if delta < -FLOAT_TOLERANCE:
        needed = -delta
        from_bank = min(bank, needed)
        bank -= from_bank
        remaining = needed - from_bank
        if settings.max_minus_hours is None:
            from_balance = remaining
        else:
            from_balance = min(max(balance + settings.max_minus_hours, 0.0), remaining)
        unbooked = remaining - from_balance
        return balance - from_balance, bank, -from_balance, -from_bank, unbooked
    return balance, bank, 0.0, 0.0, 0.0


def recompute_balances(employee_id: int, entries: Iterable[TimeEntry],
                       plan_provider: Optional[PlanProvider] = None,
                       baseline: Optional[Baseline] = None,
                       settings: Optional[OvertimeSettings] = None,
                       payouts: Optional[Dict[Tuple[int, int], float]] = None) -> BalanceResult:
    """Fold all days (real + synthetic) of one employee into balances.

    *payouts* maps (year, month) to overtime hours paid out in that month;
    they are deducted after the month's last day.
    """
    baseline = baseline or Baseline()
    settings = settings or OvertimeSettings()
    payouts = payouts or {}
    ordered = sorted(entries, key=lambda e: e.day_date)
    _logger.debug("Neuberechnung MA %s: %d Tage", employee_id, len(ordered))

    balance = baseline.balance
    bank = 0.0
    totals = defaultdict(float)
    totals['vacation_hours'] = baseline.vacation_hours
    days: List[DayFigures] = []
    monthly: Dict[Tuple[int, int], Dict] = {}

    def month_row(key: Tuple[int, int]) -> Dict:
        if key not in monthly:
            monthly[key] = {
                'year': key[0], 'month': key[1],
                'plan_hours': 0.0, 'ist_hours': 0.0, 'saldo': 0.0, 'payout': 0.0,
                'vacation_hours': 0.0, 'sick_hours': 0.0, 'child_sick_hours': 0.0,
                'short_work_hours': 0.0, 'holiday_hours': 0.0, 'vacation_days': 0.0,
                'days': 0,
            }
        return monthly[key]

    by_month: Dict[Tuple[int, int], List[TimeEntry]] = defaultdict(list)
    for entry in ordered:
        by_month[year_month(entry.day_date)].append(entry)

    for key in sorted(set(by_month) | set(payouts)):
        row = month_row(key)
        for entry in by_month.get(key, []):
            fig, delta = day_figures(entry, plan_provider)
            balance, bank, booked, forced, unbooked = _apply_delta(delta, balance, bank, settings)
            fig.overtime_delta = round(booked, 2)
            fig.forced_overflow = round(forced, 2)
            fig.unbooked_hours = round(unbooked, 2)
            days.append(fig)

            row['days'] += 1
            row['plan_hours'] += fig.plan_hours
            row['ist_hours'] += fig.ist_hours
            row['saldo'] += booked
            row['vacation_days'] += vacation_day_fraction(fig)
            for name in ('vacation_hours', 'sick_hours', 'child_sick_hours',
                         'short_work_hours', 'holiday_hours'):
                value = getattr(fig, name)
                row[name] += value
                totals[name] += value
            if unbooked:
                _logger.info("MA %s am %s: %.2f h über Minusstunden-Grenze nicht gebucht",
                             employee_id, entry.day_date, unbooked)

        paid = payouts.get(key, 0.0)
        if paid:
            balance -= paid
            totals['paid_out_hours'] += paid
            row['payout'] += paid
        row['running_saldo'] = balance

    months = []
    for key in sorted(monthly):
        row = monthly[key]
        for name, value in list(row.items()):
            if isinstance(value, float):
                row[name] = round(value, 2)
        row['difference'] = round(row['ist_hours'] - row['plan_hours'], 2)
        months.append(row)

    result = BalanceResult(
        employee_id=employee_id,
        balance_hours=round(balance, 2),
        payout_bank_hours=round(bank, 2),
        vacation_hours=round(totals['vacation_hours'], 2),
        sick_hours=round(totals['sick_hours'], 2),
        child_sick_hours=round(totals['child_sick_hours'], 2),
        short_work_hours=round(totals['short_work_hours'], 2),
        holiday_hours=round(totals['holiday_hours'], 2),
        paid_out_hours=round(totals['paid_out_hours'], 2),
        days=days,
        months=months,
    )
    _logger.info("Saldo MA %s neu berechnet: %.2f h (Auszahlungsbank %.2f h)",
                 employee_id, result.balance_hours, result.payout_bank_hours)
    return result


@dataclass
class VacationAccount:
    year: int
    entitlement_days: float
    taken_days: float
    remaining_days: float


def vacation_account(profile: EmployeeProfile, result: BalanceResult, year: int) -> VacationAccount:
    """Vacation days of *year*: entitlement (incl. last year's rest) against days taken.

    Imported days taken before the system count towards the year as well.
    """
    from_days = sum(row['vacation_days'] for row in result.months if row['year'] == year)
    taken = round(profile.imported_vacation_days + from_days, 2)
    entitlement = round(profile.vacation_days + profile.vacation_days_last_year, 2)
    return VacationAccount(year, entitlement, taken, round(max(entitlement - taken, 0.0), 2))


def settle_overtime_payout(requested_hours: float, balance_hours: float) -> float:
    """Clamp a requested overtime payout to [0, positive balance]."""
    available = max(balance_hours, 0.0)
    settled = min(max(requested_hours or 0.0, 0.0), available)
    if settled != requested_hours:
        _logger.info("Überstundenauszahlung %.2f h auf %.2f h begrenzt", requested_hours or 0.0, settled)
    return round(settled, 2)
