"""Normalization of the flat time-entry form payload."""
from decimal import Decimal, InvalidOperation
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import TimeEntry
from .status_codes import CODE_POLICIES, StatusCode, parse_code
from .time_utils import date_range, normalize_time_input, parse_iso_date, pause_to_minutes

RANGE_ELIGIBLE = [c.value for c, p in CODE_POLICIES.items() if p.range_eligible]


class TimeEntryForm(BaseModel):
    employee_id: int = Field(..., gt=0)
    day_date: str
    range_end_date: Optional[str] = None
    kommt1: Optional[str] = None
    geht1: Optional[str] = None
    kommt2: Optional[str] = None
    geht2: Optional[str] = None
    pause: int = Field(0, ge=0, le=180)
    code: StatusCode = StatusCode.RA
    mittag: Literal['Ja', 'Nein'] = 'Nein'
    brutto: Optional[Decimal] = None
    bemerkungen: Optional[str] = Field(None, max_length=1000)

    @field_validator('day_date', mode='before')
    @classmethod
    def validate_date(cls, v):
        if not isinstance(v, str):
            raise ValueError("Datum muss ein gültiges Datum im Format YYYY-MM-DD sein")
        parse_iso_date(v)
        return v.strip()

    @field_validator('range_end_date', mode='before')
    @classmethod
    def validate_range_end(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        parse_iso_date(v)
        return v.strip()

    @field_validator('kommt1', 'geht1', 'kommt2', 'geht2', mode='before')
    @classmethod
    def validate_time(cls, v):
        if v is None or not str(v).strip():
            return None
        normalized = normalize_time_input(str(v))
        if normalized is None:
            raise ValueError("Uhrzeit muss im Format HH:MM angegeben werden")
        return normalized

    @field_validator('pause', mode='before')
    @classmethod
    def validate_pause(cls, v):
        return pause_to_minutes(v)

    @field_validator('code', mode='before')
    @classmethod
    def validate_code(cls, v):
        return parse_code(v)

    @field_validator('mittag', mode='before')
    @classmethod
    def validate_mittag(cls, v):
        return 'Ja' if str(v or '').strip().lower() in ('ja', 'yes', 'true', '1') else 'Nein'

    @field_validator('brutto', mode='before')
    @classmethod
    def validate_brutto(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if isinstance(v, (int, float, Decimal)):
            return Decimal(str(v))
        raw = str(v).strip().replace(' ', '').replace('€', '')
        if ',' in raw:
            # German notation: 1.234,56
            raw = raw.replace('.', '').replace(',', '.')
        try:
            value = Decimal(raw)
        except InvalidOperation:
            raise ValueError("Umsatz muss eine Zahl sein")
        if value < 0:
            raise ValueError("Umsatz darf nicht negativ sein")
        return value

    @field_validator('bemerkungen', mode='before')
    @classmethod
    def validate_bemerkungen(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode='after')
    def validate_range(self) -> 'TimeEntryForm':
        if self.range_end_date and self.range_end_date != self.day_date \
                and not CODE_POLICIES[self.code].range_eligible:
            raise ValueError(f"Ein Zeitraum ist nur für die Codes {', '.join(RANGE_ELIGIBLE)} möglich.")
        return self

    @property
    def is_range(self) -> bool:
        return bool(self.range_end_date) and self.range_end_date != self.day_date

    def dates(self) -> List[str]:
        """Affected dates, ascending (a reversed range is swapped)."""
        return date_range(self.day_date, self.range_end_date if self.is_range else None)

    def to_entry(self, day_date: Optional[str] = None) -> TimeEntry:
        return TimeEntry(
            employee_id=self.employee_id,
            day_date=day_date or self.day_date,
            kommt1=self.kommt1, geht1=self.geht1,
            kommt2=self.kommt2, geht2=self.geht2,
            pause=self.pause, code=self.code, mittag=self.mittag,
            brutto=self.brutto, bemerkungen=self.bemerkungen,
        )
