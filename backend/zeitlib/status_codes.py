"""
Closed set of day status codes and their fixed policies.

Adding a code means adding one ``StatusCode`` member and one ``CODE_POLICIES``
entry; the validator, reconciler and overtime fold dispatch on the policy.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .errors import UnknownStatusCode


class StatusCode(str, Enum):
    RA = 'RA'     # Regelarbeit
    UE = 'Ü'      # Überstundenabbau
    K = 'K'       # krank
    KK = 'KK'     # Kind krank
    KR = 'KR'     # krank, Resttag
    KKR = 'KKR'   # Kind krank, Resttag
    KU = 'KU'     # Kurzarbeit
    U = 'U'       # Urlaub
    UH = 'UH'     # halber Urlaubstag
    FT = 'FT'     # Feiertag
    UBF = 'UBF'   # unbezahlt frei

    def __str__(self) -> str:
        return self.value


class Category(str, Enum):
    WORK = 'work'
    OVERTIME = 'overtime'
    SICK = 'sick'
    CHILD_SICK = 'child_sick'
    SHORT_WORK = 'short_work'
    VACATION = 'vacation'
    HOLIDAY = 'holiday'
    UNPAID = 'unpaid'


@dataclass(frozen=True)
class CodePolicy:
    code: StatusCode
    label: str
    category: Category
    requires_time: bool = False
    meal_blocked: bool = False
    full_day_zero: bool = False
    range_eligible: bool = False


_P = CodePolicy
CODE_POLICIES: Dict[StatusCode, CodePolicy] = {
    StatusCode.RA:  _P(StatusCode.RA,  'Regelarbeit',        Category.WORK,       requires_time=True),
    StatusCode.UE:  _P(StatusCode.UE,  'Überstundenabbau',   Category.OVERTIME,   requires_time=True),
    StatusCode.K:   _P(StatusCode.K,   'Krank',              Category.SICK,       meal_blocked=True, full_day_zero=True, range_eligible=True),
    StatusCode.KK:  _P(StatusCode.KK,  'Kind krank',         Category.CHILD_SICK, meal_blocked=True, full_day_zero=True, range_eligible=True),
    StatusCode.KR:  _P(StatusCode.KR,  'Krank (Rest)',       Category.SICK,       requires_time=True, meal_blocked=True, range_eligible=True),
    StatusCode.KKR: _P(StatusCode.KKR, 'Kind krank (Rest)',  Category.CHILD_SICK, requires_time=True, meal_blocked=True, range_eligible=True),
    StatusCode.KU:  _P(StatusCode.KU,  'Kurzarbeit',         Category.SHORT_WORK, meal_blocked=True, full_day_zero=True, range_eligible=True),
    StatusCode.U:   _P(StatusCode.U,   'Urlaub',             Category.VACATION,   meal_blocked=True, full_day_zero=True, range_eligible=True),
    StatusCode.UH:  _P(StatusCode.UH,  'Halber Urlaubstag',  Category.VACATION,   meal_blocked=True, range_eligible=True),
    StatusCode.FT:  _P(StatusCode.FT,  'Feiertag',           Category.HOLIDAY,    meal_blocked=True, full_day_zero=True),
    StatusCode.UBF: _P(StatusCode.UBF, 'Unbezahlt frei',     Category.UNPAID,     meal_blocked=True, full_day_zero=True),
}

_ALIASES = {'UE': StatusCode.UE, 'Ü': StatusCode.UE}


def parse_code(raw: Optional[str]) -> StatusCode:
    """Case-insensitive code lookup; empty input means regular work."""
    if isinstance(raw, StatusCode):
        return raw
    value = (raw or '').strip().upper()
    if not value:
        return StatusCode.RA
    if value in _ALIASES:
        return _ALIASES[value]
    try:
        return StatusCode(value)
    except ValueError:
        raise UnknownStatusCode(f"Unbekannter Code: {raw}")


def policy_for(code) -> CodePolicy:
    return CODE_POLICIES[parse_code(code)]
