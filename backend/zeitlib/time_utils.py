"""
Time and date helpers: HH:MM parsing, pause strings, block spans and the
actual-hours (Ist) calculation.
"""
import re
from datetime import date, datetime, timedelta
from typing import List, NamedTuple, Optional, Tuple

from .pause_law import required_pause_minutes

MAX_PAUSE_MINUTES = 180
HOURS_EPSILON = 0.01

_NO_PAUSE_WORDS = {'', 'none', 'keine', 'kein', '0', '0min', '0min.', '0 min', '0 minuten'}

MONTH_NAMES_DE = [
    'Januar', 'Februar', 'März', 'April', 'Mai', 'Juni',
    'Juli', 'August', 'September', 'Oktober', 'November', 'Dezember',
]

_DATE_ERROR = "Datum muss ein gültiges Datum im Format YYYY-MM-DD sein"


# ── Times ──────────────────────────────────────────────────────

def parse_time(value: Optional[str]) -> Optional[int]:
    """Return minutes since midnight for 'HH:MM', None for empty or malformed input."""
    if not value:
        return None
    parts = value.strip().split(':')
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def is_valid_time(value: Optional[str]) -> bool:
    return parse_time(value) is not None


def normalize_time_input(raw: Optional[str]) -> Optional[str]:
    """'8:00' -> '08:00', '800' -> '08:00', '1530' -> '15:30'. Returns None if unusable."""
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None
    if re.fullmatch(r'\d{1,2}:\d{2}', raw):
        value = raw.rjust(5, '0')
    elif re.fullmatch(r'\d{3,4}', raw):
        padded = raw.rjust(4, '0')
        value = f"{padded[:2]}:{padded[2:]}"
    else:
        return None
    return value if is_valid_time(value) else None


def span_hours(start: Optional[str], end: Optional[str]) -> float:
    """Duration between two HH:MM values; end <= start wraps over midnight."""
    s = parse_time(start)
    e = parse_time(end)
    if s is None or e is None:
        return 0.0
    if e <= s:
        e += 24 * 60
    return (e - s) / 60


def block_hours(kommt1: Optional[str], geht1: Optional[str],
                kommt2: Optional[str] = None, geht2: Optional[str] = None) -> float:
    return span_hours(kommt1, geht1) + span_hours(kommt2, geht2)


# ── Pause ──────────────────────────────────────────────────────

def pause_to_minutes(value) -> int:
    """Pause field ('30', '30min.', 'keine', None, 45) -> minutes, clamped to 0..180."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(min(max(round(value), 0), MAX_PAUSE_MINUTES))
    normalized = str(value).strip().lower()
    if normalized in _NO_PAUSE_WORDS:
        return 0
    digits = ''.join(ch for ch in normalized if ch.isdigit())
    if not digits:
        return 0
    return min(max(int(digits), 0), MAX_PAUSE_MINUTES)


class IstResult(NamedTuple):
    net_hours: float
    raw_hours: float
    pause_minutes: int


def calculate_ist_hours(kommt1: Optional[str], geht1: Optional[str],
                        kommt2: Optional[str], geht2: Optional[str],
                        pause) -> IstResult:
    """Net worked hours: raw span of both blocks minus max(legal pause, entered pause)."""
    raw = block_hours(kommt1, geht1, kommt2, geht2)
    pause_min = max(required_pause_minutes(raw), pause_to_minutes(pause))
    net = max(raw - pause_min / 60, 0.0)
    return IstResult(round(net, 2), round(raw, 2), pause_min)


# ── Dates ──────────────────────────────────────────────────────

def parse_iso_date(value) -> date:
    """Parse 'YYYY-MM-DD' (or pass a date through). Raises ValueError with a German message."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not re.fullmatch(r'\d{4}-\d{2}-\d{2}', value.strip()):
        raise ValueError(_DATE_ERROR)
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(_DATE_ERROR)


def iso(d: date) -> str:
    return d.strftime('%Y-%m-%d')


def date_range(start: str, end: Optional[str] = None) -> List[str]:
    """Inclusive list of ISO dates, ascending. A reversed range is swapped."""
    first = parse_iso_date(start)
    last = parse_iso_date(end) if end else first
    if last < first:
        first, last = last, first
    days = (last - first).days
    return [iso(first + timedelta(days=i)) for i in range(days + 1)]


def year_month(iso_date: str) -> Tuple[int, int]:
    d = parse_iso_date(iso_date)
    return d.year, d.month


def month_bounds(year: int, month: int) -> Tuple[str, str]:
    first = date(year, month, 1)
    nxt = date(year + (month == 12), month % 12 + 1, 1)
    return iso(first), iso(nxt - timedelta(days=1))


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES_DE[month - 1]} {year}"


def format_date_de(iso_date: str) -> str:
    """'2025-01-28' -> '28.01.2025'."""
    return parse_iso_date(iso_date).strftime('%d.%m.%Y')
