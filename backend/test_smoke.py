"""
Smoke tests for the zeitlib service layer.
These tests run the services against a MagicMock store, so they need no data
directory and only check call flow and result shapes.
"""
import os
import sys
from decimal import Decimal
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from zeitlib.config import Settings
from zeitlib.forms import TimeEntryForm
from zeitlib.holiday_calendar import HolidayInfo
from zeitlib.models import EmployeeProfile
from zeitlib.services import BonusService, MonthlyClosingService, TimeEntryService
from zeitlib.shift_plan import ShiftPlan


# ── Helpers ───────────────────────────────────────────────────────────────────

def mock_db_factory(overrides: dict = None):
    """Build a mock ZeitDatabase with sensible defaults."""
    db = MagicMock()
    defaults = {
        'get_profile': lambda eid: EmployeeProfile(employee_id=eid),
        'get_shift_plan': lambda eid, *a, **kw: ShiftPlan(eid),
        'list_time_entries': lambda eid, *a, **kw: [],
        'get_time_entry': lambda eid, d: None,
        'is_closed': lambda eid, y, m: False,
        'get_overtime_payouts': lambda eid: {},
        'get_closing': lambda eid, y, m: None,
        'get_bonus_entry': lambda eid, y, m: None,
    }
    if overrides:
        defaults.update(overrides)
    for method, ret in defaults.items():
        if callable(ret):
            getattr(db, method).side_effect = ret
        else:
            getattr(db, method).return_value = ret
    return db


def no_holidays(iso_date, region=None):
    return HolidayInfo(False)


def entry_service(db):
    return TimeEntryService(db, no_holidays, Settings())


# ── Tests ─────────────────────────────────────────────────────────────────────

class TestSubmit:
    def test_sick_day_is_saved(self):
        db = mock_db_factory()
        r = entry_service(db).submit(TimeEntryForm(employee_id=3, day_date='2025-03-10', code='K'))
        assert r.status == 'success'
        assert db.upsert_time_entry.call_count == 1
        db.save_balance.assert_called_once()

    def test_result_shape(self):
        db = mock_db_factory()
        data = entry_service(db).submit(
            TimeEntryForm(employee_id=3, day_date='2025-03-10', kommt1='08:00', geht1='12:00')
        ).as_dict()
        assert set(data) >= {'status', 'message'}

    def test_closed_month_writes_nothing(self):
        db = mock_db_factory({'is_closed': True})
        r = entry_service(db).submit(TimeEntryForm(employee_id=3, day_date='2025-03-10', code='K'))
        assert r.status == 'error'
        assert 'abgeschlossen' in r.message
        db.upsert_time_entry.assert_not_called()

    def test_unexpected_error_is_sanitized(self):
        def boom(*a, **kw):
            raise RuntimeError('disk on fire')
        db = mock_db_factory({'get_shift_plan': boom})
        r = entry_service(db).submit(TimeEntryForm(employee_id=3, day_date='2025-03-10', code='K'))
        assert r.status == 'error'
        assert r.message == 'Interner Fehler. Bitte versuche es erneut.'
        assert 'disk' not in r.message


class TestRemove:
    def test_delete_called(self):
        db = mock_db_factory({'get_time_entry': MagicMock()})
        r = entry_service(db).remove_entry(3, '2025-03-10')
        assert r.status == 'success'
        db.delete_time_entry.assert_called_once_with(3, '2025-03-10')


class TestClosing:
    def test_already_closed_is_not_rewritten(self):
        record = {'employee_id': 3, 'year': 2025, 'month': 1, 'status': 'closed',
                  'closed_at': '2025-02-01T08:00:00', 'closed_by': 'admin'}
        db = mock_db_factory({'get_closing': record})
        assert MonthlyClosingService(db).close_month(3, 2025, 1, 'planer') == record
        db.set_closing.assert_not_called()


class TestBonus:
    def test_summary_without_revenue(self):
        db = mock_db_factory()
        summary = BonusService(db).summary(3, 2025, 1)
        assert summary.available == Decimal('0.00')
        assert summary.as_dict()['payout'] == '0'
