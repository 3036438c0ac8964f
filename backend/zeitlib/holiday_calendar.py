"""
Public holiday lookup per region, backed by the ``holidays`` package.

Regions are either a country ('DE', 'AT', 'CH') or a subdivision in
'DE-BY' form; a bare state code like 'BY' is taken as German.
"""
from typing import Dict, NamedTuple, Optional, Tuple

import holidays

from .log import get_logger
from .time_utils import parse_iso_date

_logger = get_logger('holidays')

DEFAULT_COUNTRY = 'DE'
COUNTRY_CODES = {'DE', 'AT', 'CH'}

# (country, subdiv or None, year) -> holidays.HolidayBase
_CALENDAR_CACHE: Dict[Tuple[str, Optional[str], int], holidays.HolidayBase] = {}


class HolidayInfo(NamedTuple):
    is_holiday: bool
    name: Optional[str] = None


def normalize_region(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    upper = value.strip().upper()
    if '-' in upper or upper in COUNTRY_CODES:
        return upper
    return f"{DEFAULT_COUNTRY}-{upper}"


def split_region(region: Optional[str]) -> Tuple[str, Optional[str]]:
    normalized = normalize_region(region)
    if not normalized:
        return DEFAULT_COUNTRY, None
    if '-' not in normalized:
        return normalized, None
    country, subdiv = normalized.split('-', 1)
    return country or DEFAULT_COUNTRY, subdiv or None


def _calendar(country: str, subdiv: Optional[str], year: int) -> holidays.HolidayBase:
    key = (country, subdiv, year)
    cached = _CALENDAR_CACHE.get(key)
    if cached is not None:
        return cached
    try:
        cal = holidays.country_holidays(country, subdiv=subdiv, years=year)
    except NotImplementedError:
        if subdiv is None:
            raise
        _logger.warning("Unbekannte Region %s-%s, verwende nationale Feiertage", country, subdiv)
        cal = _calendar(country, None, year)
    _CALENDAR_CACHE[key] = cal
    return cal


def is_holiday(iso_date: str, region: Optional[str] = None) -> HolidayInfo:
    """Public holiday check: regional calendar first, then the national one."""
    day = parse_iso_date(iso_date)
    country, subdiv = split_region(region)
    name = _calendar(country, subdiv, day.year).get(day)
    if name:
        return HolidayInfo(True, name)
    if subdiv:
        name = _calendar(country, None, day.year).get(day)
        if name:
            return HolidayInfo(True, name)
    return HolidayInfo(False)
