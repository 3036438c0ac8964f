"""
JSON-file storage for profiles, time entries, shift plans, monthly closings,
the bonus ledger and overtime payouts.

One file per table under ``db_path``. Reads go through a process-wide mtime
cache; writes take an exclusive lock, re-read the table and replace the file
atomically, so every single-row operation is independently retryable.
"""
import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import StorageError, SyntheticEntryError
from .log import get_logger
from .models import EmployeeProfile, TimeEntry
from .shift_plan import ShiftPlan, ShiftPlanDay, WeeklyPattern
from .types import ClosingRecord, BonusLedgerRecord, Row, RowList

_logger = get_logger('database')

# ── Global cross-instance table cache ───────────────────────────
# Maps (db_path, table_name) → (mtime, rows)
_GLOBAL_JSON_CACHE: Dict[tuple, tuple] = {}

TABLES = (
    'profiles', 'time_entries', 'shift_plan', 'weekly_patterns',
    'closings', 'bonus_ledger', 'overtime_payouts', 'balances',
)


class ZeitDatabase:
    def __init__(self, db_path: str):
        self.db_path = db_path
        os.makedirs(db_path, exist_ok=True)

    def _table(self, name: str) -> str:
        if name not in TABLES:
            raise StorageError(f"Unbekannte Tabelle: {name}")
        return os.path.join(self.db_path, f"{name}.json")

    def _load(self, path: str) -> RowList:
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Datei {os.path.basename(path)} ist nicht lesbar: {e}") from e

    def _read(self, name: str) -> RowList:
        """Read a table, using the global mtime-based cache."""
        path = self._table(name)
        key = (self.db_path, name)
        try:
            mtime = os.path.getmtime(path)
        except OSError:
            mtime = 0.0

        cached = _GLOBAL_JSON_CACHE.get(key)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        data = self._load(path)
        _GLOBAL_JSON_CACHE[key] = (mtime, data)
        return data

    def _invalidate_cache(self, name: str) -> None:
        """Drop a table from the cache; mtime granularity can hide fast rewrites."""
        _GLOBAL_JSON_CACHE.pop((self.db_path, name), None)

    @contextmanager
    def _exclusive(self):
        """Exclusive POSIX lock on the data directory's lock file."""
        lock_path = os.path.join(self.db_path, '.lock')
        with open(lock_path, 'a+') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def _modify(self, name: str, fn: Callable[[RowList], Any]) -> Any:
        """Read-modify-write one table under the lock. *fn* mutates the rows in place."""
        path = self._table(name)
        with self._exclusive():
            rows = self._load(path)
            result = fn(rows)
            fd, tmp = tempfile.mkstemp(dir=self.db_path, prefix=f".{name}.", suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(rows, f, ensure_ascii=False, indent=2)
                os.replace(tmp, path)
            except OSError as e:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                _logger.error("Schreiben von %s fehlgeschlagen: %s", path, e)
                raise StorageError(f"Schreiben von {name} fehlgeschlagen: {e}") from e
            self._invalidate_cache(name)
        return result

    @staticmethod
    def _find(rows: RowList, **match) -> Tuple[Optional[int], Optional[Row]]:
        for idx, row in enumerate(rows):
            if all(row.get(k) == v for k, v in match.items()):
                return idx, row
        return None, None

    def _upsert(self, name: str, record: Row, *keys: str) -> Row:
        def apply(rows: RowList) -> Row:
            idx, _ = self._find(rows, **{k: record[k] for k in keys})
            if idx is None:
                rows.append(record)
            else:
                rows[idx] = record
            return record
        return self._modify(name, apply)

    def _delete(self, name: str, **match) -> bool:
        def apply(rows: RowList) -> bool:
            before = len(rows)
            rows[:] = [r for r in rows if not all(r.get(k) == v for k, v in match.items())]
            return len(rows) != before
        return self._modify(name, apply)

    # ── Employee profiles ──────────────────────────────────────

    def get_profile(self, employee_id: int) -> Optional[EmployeeProfile]:
        _, row = self._find(self._read('profiles'), employee_id=employee_id)
        return EmployeeProfile.model_validate(row) if row else None

    def save_profile(self, profile: EmployeeProfile) -> EmployeeProfile:
        self._upsert('profiles', profile.model_dump(mode='json'), 'employee_id')
        return profile

    # ── Time entries ───────────────────────────────────────────

    def get_time_entry(self, employee_id: int, day_date: str) -> Optional[TimeEntry]:
        _, row = self._find(self._read('time_entries'), employee_id=employee_id, day_date=day_date)
        return TimeEntry.model_validate(row) if row else None

    def list_time_entries(self, employee_id: int, date_from: Optional[str] = None,
                          date_to: Optional[str] = None) -> List[TimeEntry]:
        result = []
        for row in self._read('time_entries'):
            if row.get('employee_id') != employee_id:
                continue
            d = row.get('day_date', '')
            if date_from and d < date_from:
                continue
            if date_to and d > date_to:
                continue
            result.append(TimeEntry.model_validate(row))
        return sorted(result, key=lambda e: e.day_date)

    def upsert_time_entry(self, entry: TimeEntry) -> TimeEntry:
        """Insert or replace the entry for (employee_id, day_date)."""
        if entry.synthetic:
            raise SyntheticEntryError("Aus dem Schichtplan abgeleitete Tage können nicht gespeichert werden.")
        self._upsert('time_entries', entry.model_dump(mode='json'), 'employee_id', 'day_date')
        return entry

    def delete_time_entry(self, employee_id: int, day_date: str) -> bool:
        return self._delete('time_entries', employee_id=employee_id, day_date=day_date)

    def update_day_figures(self, employee_id: int, figures: Dict[str, Dict[str, float]]) -> int:
        """Store recomputed per-day fields ({day_date: {field: value}}) on real entries."""
        def apply(rows: RowList) -> int:
            changed = 0
            for row in rows:
                if row.get('employee_id') != employee_id:
                    continue
                update = figures.get(row.get('day_date'))
                if update:
                    row.update(update)
                    changed += 1
            return changed
        return self._modify('time_entries', apply)

    # ── Shift plan ─────────────────────────────────────────────

    def get_shift_plan(self, employee_id: int, date_from: Optional[str] = None,
                       date_to: Optional[str] = None) -> ShiftPlan:
        """Daily plan of one employee. The range only filters days; the weekly
        fallback stays disabled as soon as the employee has any daily entry."""
        all_days = [r for r in self._read('shift_plan') if r.get('employee_id') == employee_id]
        days = [
            ShiftPlanDay(iso_date=r['iso_date'], segments=r.get('segments', []))
            for r in all_days
            if (not date_from or r['iso_date'] >= date_from) and (not date_to or r['iso_date'] <= date_to)
        ]
        weekly = None
        if not all_days:
            _, row = self._find(self._read('weekly_patterns'), employee_id=employee_id)
            if row:
                weekly = WeeklyPattern.model_validate(row.get('pattern', {}))
        profile = self.get_profile(employee_id)
        plan = ShiftPlan(employee_id, days, weekly, profile.schicht if profile else None)
        return plan

    def save_plan_day(self, employee_id: int, day: ShiftPlanDay) -> ShiftPlanDay:
        record = {'employee_id': employee_id, 'iso_date': day.iso_date,
                  'segments': [s.model_dump(mode='json') for s in day.segments]}
        self._upsert('shift_plan', record, 'employee_id', 'iso_date')
        return day

    def delete_plan_day(self, employee_id: int, iso_date: str) -> bool:
        return self._delete('shift_plan', employee_id=employee_id, iso_date=iso_date)

    def save_weekly_pattern(self, employee_id: int, pattern: WeeklyPattern) -> WeeklyPattern:
        self._upsert('weekly_patterns',
                     {'employee_id': employee_id, 'pattern': pattern.model_dump(mode='json')},
                     'employee_id')
        return pattern

    # ── Monthly closings ───────────────────────────────────────

    def get_closing(self, employee_id: int, year: int, month: int) -> Optional[ClosingRecord]:
        _, row = self._find(self._read('closings'), employee_id=employee_id, year=year, month=month)
        return dict(row) if row else None

    def is_closed(self, employee_id: int, year: int, month: int) -> bool:
        row = self.get_closing(employee_id, year, month)
        return bool(row and row.get('status') == 'closed')

    def set_closing(self, employee_id: int, year: int, month: int, status: str,
                    closed_by: Optional[str] = None) -> ClosingRecord:
        record = {
            'employee_id': employee_id, 'year': year, 'month': month, 'status': status,
            'closed_at': datetime.now().isoformat(timespec='seconds') if status == 'closed' else None,
            'closed_by': closed_by if status == 'closed' else None,
        }
        return self._upsert('closings', record, 'employee_id', 'year', 'month')

    def list_closings(self, employee_id: int) -> List[ClosingRecord]:
        rows = [dict(r) for r in self._read('closings') if r.get('employee_id') == employee_id]
        return sorted(rows, key=lambda r: (r['year'], r['month']), reverse=True)

    # ── Bonus ledger ───────────────────────────────────────────

    def get_bonus_entry(self, employee_id: int, year: int, month: int) -> Optional[BonusLedgerRecord]:
        _, row = self._find(self._read('bonus_ledger'), employee_id=employee_id, year=year, month=month)
        return dict(row) if row else None

    def upsert_bonus_entry(self, employee_id: int, year: int, month: int,
                           payout: Decimal, carry_over: Decimal) -> BonusLedgerRecord:
        record = {'employee_id': employee_id, 'year': year, 'month': month,
                  'payout': str(payout), 'carry_over': str(carry_over)}
        return self._upsert('bonus_ledger', record, 'employee_id', 'year', 'month')

    def list_bonus_history(self, employee_id: int, year: Optional[int] = None) -> List[BonusLedgerRecord]:
        rows = [dict(r) for r in self._read('bonus_ledger')
                if r.get('employee_id') == employee_id and (year is None or r.get('year') == year)]
        return sorted(rows, key=lambda r: (r['year'], r['month']))

    # ── Overtime payouts & balances ────────────────────────────

    def get_overtime_payouts(self, employee_id: int) -> Dict[Tuple[int, int], float]:
        return {
            (r['year'], r['month']): float(r.get('hours', 0) or 0)
            for r in self._read('overtime_payouts') if r.get('employee_id') == employee_id
        }

    def set_overtime_payout(self, employee_id: int, year: int, month: int, hours: float) -> Row:
        record = {'employee_id': employee_id, 'year': year, 'month': month, 'hours': hours}
        return self._upsert('overtime_payouts', record, 'employee_id', 'year', 'month')

    def get_balance(self, employee_id: int) -> Optional[Row]:
        _, row = self._find(self._read('balances'), employee_id=employee_id)
        return dict(row) if row else None

    def save_balance(self, employee_id: int, totals: Dict[str, Any]) -> Row:
        record = dict(totals)
        record['employee_id'] = employee_id
        record['updated_at'] = datetime.now().isoformat(timespec='seconds')
        return self._upsert('balances', record, 'employee_id')
