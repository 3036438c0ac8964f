"""
Shared test fixtures for the zeitlib engine tests.
"""
import os
import sys

import pytest

# ── Python path setup ──────────────────────────────────────────────────────────
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from zeitlib.config import Settings  # noqa: E402
from zeitlib.database import ZeitDatabase  # noqa: E402
from zeitlib.holiday_calendar import HolidayInfo  # noqa: E402
from zeitlib.models import EmployeeProfile  # noqa: E402
from zeitlib.shift_plan import ShiftPlanDay, ShiftPlanSegment  # noqa: E402


# ── Holiday stubs ──────────────────────────────────────────────────────────────

def holidays_from(mapping: dict):
    """Holiday lookup backed by a plain {iso_date: name} dict."""
    def lookup(iso_date, region=None):
        name = mapping.get(iso_date)
        return HolidayInfo(name is not None, name)
    return lookup


def no_holidays(iso_date, region=None):
    return HolidayInfo(False)


def plan_day(iso_date, start=None, end=None, pause=0, label=None, mode='available'):
    return ShiftPlanDay(iso_date=iso_date, segments=[ShiftPlanSegment(
        mode=mode, start=start, end=end, required_pause_minutes=pause, label=label,
    )])


# ── Fixtures ───────────────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=str(tmp_path / 'data'), log_file=str(tmp_path / 'zeit.log'))


@pytest.fixture
def db(settings):
    """Function-scoped empty JSON store."""
    return ZeitDatabase(settings.db_path)


@pytest.fixture
def profile(db):
    p = EmployeeProfile(employee_id=7, name='Anna Beispiel', federal_state='DE-BY')
    db.save_profile(p)
    return p
