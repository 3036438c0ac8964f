"""
Time entry validation.

``validate()`` is a pure check of one prepared entry against its plan and the
employee's validation profile. Errors block persistence (callers surface the
first one), warnings are advisory.
"""
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .models import EmployeeProfile, TimeEntry
from .pause_law import required_pause_minutes, required_pause_with_policy
from .reconciler import is_full_day_abatement, matches_plan_block
from .shift_plan import PlanHoursInfo
from .status_codes import CODE_POLICIES, StatusCode
from .time_utils import (
    HOURS_EPSILON, calculate_ist_hours, format_date_de, month_label,
    parse_iso_date, parse_time,
)

PAUSE_TOLERANCE_MINUTES = 0.5

ZERO_PAUSE_MEAL_ERROR = 'Keine Pause erfasst, aber Verpflegung „Ja“ gewählt. Bitte bestätigen.'

ClosedLookup = Callable[[int, int, int], bool]


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    ist_hours: float = 0.0
    raw_hours: float = 0.0
    pause_minutes: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None


def _hours_de(value: float) -> str:
    return f"{value:.2f}".replace('.', ',')


def closed_month_message(year: int, month: int) -> str:
    return f"Der Monat {month_label(year, month)} ist bereits abgeschlossen."


def validate_submission_dates(employee_id: int, dates: Iterable[str],
                              is_closed: Optional[ClosedLookup] = None) -> List[str]:
    """Date checks for a whole (range) submission; any closed month blocks all of it."""
    errors: List[str] = []
    seen = set()
    for iso_date in dates:
        try:
            d = parse_iso_date(iso_date)
        except ValueError as e:
            errors.append(str(e))
            continue
        key = (d.year, d.month)
        if key in seen:
            continue
        seen.add(key)
        if is_closed is not None and is_closed(employee_id, d.year, d.month):
            errors.append(closed_month_message(d.year, d.month))
    return errors


def _check_blocks(entry: TimeEntry, errors: List[str]) -> None:
    k1, g1 = parse_time(entry.kommt1), parse_time(entry.geht1)
    k2, g2 = parse_time(entry.kommt2), parse_time(entry.geht2)
    for raw, parsed, name in ((entry.kommt1, k1, 'Kommt 1'), (entry.geht1, g1, 'Geht 1'),
                              (entry.kommt2, k2, 'Kommt 2'), (entry.geht2, g2, 'Geht 2')):
        if raw and parsed is None:
            errors.append(f"{name} muss im Format HH:MM angegeben werden.")
            return
    if (k1 is None) != (g1 is None):
        errors.append('Bitte Kommt 1 und Geht 1 vollständig eintragen.')
    if (k2 is None) != (g2 is None):
        errors.append('Bitte Kommt 2 und Geht 2 vollständig eintragen oder beide leer lassen.')
    if k1 is not None and g1 is not None and k1 >= g1:
        errors.append('Geht 1 muss nach Kommt 1 liegen.')
    if k2 is not None and g2 is not None:
        if k2 >= g2:
            errors.append('Geht 2 muss nach Kommt 2 liegen.')
        if k1 is not None and g1 is not None and g1 > k2:
            errors.append('Kommt 2 muss nach Geht 1 liegen. Bitte die Zeiten prüfen.')


def validate(entry: TimeEntry, plan_info: Optional[PlanHoursInfo],
             profile: Optional[EmployeeProfile] = None, *,
             is_closed: Optional[ClosedLookup] = None,
             zero_pause_meal_confirmed: bool = False) -> ValidationResult:
    result = ValidationResult(pause_minutes=entry.pause)
    errors, warnings = result.errors, result.warnings
    code = entry.code
    policy = CODE_POLICIES[code]
    mandatory = profile.min_pause_under6_minutes if profile else 0
    requires_meal_flag = profile.requires_meal_flag if profile else False

    # 1. date
    try:
        day = parse_iso_date(entry.day_date)
    except ValueError as e:
        errors.append(str(e))
        return result

    # 2. times
    full_day_abatement = code == StatusCode.UE and (
        is_full_day_abatement(entry, plan_info)
        or (not entry.kommt1 and not entry.geht1 and not entry.has_second_block)
    )
    _check_blocks(entry, errors)
    if policy.requires_time and not full_day_abatement:
        if not entry.kommt1 or not entry.geht1:
            errors.append(f"Für den Code {code} sind Kommt 1 und Geht 1 erforderlich.")
    if code == StatusCode.UE and entry.has_second_block:
        errors.append('Beim Überstundenabbau ist nur ein Zeitblock zulässig.')

    if code == StatusCode.UE:
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, None, None, entry.pause)
    else:
        ist = calculate_ist_hours(entry.kommt1, entry.geht1, entry.kommt2, entry.geht2, entry.pause)
    result.ist_hours, result.raw_hours = ist.net_hours, ist.raw_hours

    if code in (StatusCode.RA, StatusCode.KR, StatusCode.KKR) and not errors \
            and ist.net_hours <= HOURS_EPSILON:
        errors.append('Kein gültiger Arbeitszeitraum erfasst. Bitte Kommt- und Gehtzeiten '
                      'eintragen oder einen passenden Code wählen (z. B. U, KR).')

    plan_soll = plan_info.soll_hours if plan_info else 0.0
    if code == StatusCode.UH and plan_soll > 0 and ist.net_hours > plan_soll / 2 + HOURS_EPSILON:
        errors.append('Bei halbem Urlaub darf maximal die Hälfte der Sollzeit gearbeitet werden. '
                      'Bitte Zeiten oder Code anpassen.')

    # 3. residual sick codes need times that differ from the plan
    if code in (StatusCode.KR, StatusCode.KKR) and matches_plan_block(entry, plan_info):
        full_code = StatusCode.K if code == StatusCode.KR else StatusCode.KK
        errors.append(f"Der Code {code} erfordert vom Schichtplan abweichende Zeiten. "
                      f"Für einen ganzen Tag bitte {full_code} verwenden.")

    # 4. pause
    if policy.requires_time and ist.raw_hours > HOURS_EPSILON:
        legal = required_pause_minutes(ist.raw_hours)
        with_policy = required_pause_with_policy(ist.raw_hours, mandatory)
        if legal >= 30 and entry.pause + PAUSE_TOLERANCE_MINUTES < legal:
            errors.append(f"Bei {_hours_de(ist.raw_hours)} h Arbeitszeit sind gemäß § 4 ArbZG "
                          f"mindestens {legal} Minuten Pause erforderlich.")
        elif with_policy > legal and entry.pause + PAUSE_TOLERANCE_MINUTES < with_policy:
            errors.append(f"Für Dienste mit gesetzlicher Pause sind mindestens {with_policy} "
                          f"Minuten hinterlegt (§ 4 ArbZG).")
        if code == StatusCode.RA and plan_info and plan_info.required_pause_minutes \
                and entry.pause + PAUSE_TOLERANCE_MINUTES < plan_info.required_pause_minutes:
            errors.append(f"Der Schichtplan verlangt mindestens {plan_info.required_pause_minutes} "
                          f"Minuten Pause, erfasst sind jedoch nur {entry.pause} Minuten.")

    # 5. meal flag
    if entry.mittag == 'Ja' and policy.meal_blocked:
        errors.append(f"Für den Code {code} kann keine Verpflegung erfasst werden.")
    elif entry.mittag == 'Ja' and entry.pause == 0:
        if zero_pause_meal_confirmed:
            warnings.append('Keine Pause erfasst, Verpflegung ist jedoch auf „Ja“ gesetzt.')
        else:
            errors.append(ZERO_PAUSE_MEAL_ERROR)
    elif entry.mittag == 'Ja' and entry.pause < 30:
        warnings.append('Verpflegung wurde bestätigt, die erfasste Pause liegt jedoch unter 30 Minuten.')
    if requires_meal_flag and not policy.meal_blocked and ist.raw_hours > 6 \
            and entry.mittag != 'Ja':
        warnings.append('Mehr als 6 Stunden erfasst, „Verpflegung“ ist aber nicht gesetzt '
                        '(Sachbezug Verpflegung aktiviert).')

    if code == StatusCode.RA and plan_soll > 0 and ist.net_hours + HOURS_EPSILON < plan_soll:
        warnings.append(f"Es wurden {_hours_de(ist.net_hours)} h erfasst, "
                        f"geplant waren {_hours_de(plan_soll)} h.")

    # 6. monthly closing
    if is_closed is not None and is_closed(entry.employee_id, day.year, day.month):
        errors.append(closed_month_message(day.year, day.month))

    return result


def format_range_error(iso_date: str, message: str) -> str:
    return f"{format_date_de(iso_date)}: {message}"
