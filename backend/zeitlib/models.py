"""Engine-level records: time entries, employee validation profiles, bonus schemes."""
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .status_codes import StatusCode, parse_code
from .time_utils import parse_iso_date


class TimeEntry(BaseModel):
    """One day of one employee. Derived hour fields are filled by the reconciler."""
    employee_id: int = Field(..., gt=0)
    day_date: str
    kommt1: Optional[str] = None
    geht1: Optional[str] = None
    kommt2: Optional[str] = None
    geht2: Optional[str] = None
    pause: int = Field(0, ge=0, description="Pause in Minuten, 0 = keine")
    code: StatusCode = StatusCode.RA
    brutto: Optional[Decimal] = None
    bemerkungen: Optional[str] = None
    mittag: Literal['Ja', 'Nein'] = 'Nein'
    schicht: Optional[str] = None
    synthetic: bool = False

    # derived
    ist_hours: float = 0.0
    raw_hours: float = 0.0
    plan_hours: float = 0.0
    required_pause_minutes: int = 0
    sick_hours: float = 0.0
    child_sick_hours: float = 0.0
    short_work_hours: float = 0.0
    vacation_hours: float = 0.0
    holiday_hours: float = 0.0
    overtime_delta: float = 0.0

    @field_validator('day_date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_iso_date(v)
        return v

    @field_validator('code', mode='before')
    @classmethod
    def validate_code(cls, v) -> StatusCode:
        return parse_code(v)

    @property
    def has_second_block(self) -> bool:
        return bool(self.kommt2 or self.geht2)


class BonusTier(BaseModel):
    threshold: Decimal = Field(..., ge=0)
    percent: Decimal = Field(..., ge=0, le=100)


class BonusScheme(BaseModel):
    scheme_type: Literal['linear', 'stufen'] = 'linear'
    linear_percent: Decimal = Field(Decimal('0'), ge=0, le=100)
    target_threshold: Decimal = Field(Decimal('0'), ge=0)
    tiers: List[BonusTier] = Field(default_factory=list)


class EmployeeProfile(BaseModel):
    """Per-employee settings the rules depend on."""
    employee_id: int = Field(..., gt=0)
    name: str = ''
    federal_state: Optional[str] = None
    min_pause_under6_minutes: int = Field(0, ge=0)
    requires_meal_flag: bool = False
    entry_date: Optional[str] = None
    branch_ids: List[int] = Field(default_factory=list)
    schicht: Optional[str] = None
    imported_overtime: float = 0.0
    imported_minus: float = 0.0
    imported_vacation: float = 0.0
    imported_vacation_days: float = Field(0.0, ge=0)
    vacation_days: float = Field(0.0, ge=0)
    vacation_days_last_year: float = Field(0.0, ge=0)
    imported_bonus_earned: Decimal = Decimal('0')
    max_overtime_hours: Optional[float] = Field(None, ge=0)
    max_minus_hours: Optional[float] = Field(None, ge=0)
    bonus: BonusScheme = Field(default_factory=BonusScheme)

    @field_validator('entry_date')
    @classmethod
    def validate_entry_date(cls, v: Optional[str]) -> Optional[str]:
        if v:
            parse_iso_date(v)
        return v or None
