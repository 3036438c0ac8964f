"""
Service layer: the operations a form handler, CLI or test calls.

Each mutation is processed to completion (validate, persist, recompute)
before it returns an ``ActionResult``. Confirmation prompts come back as
``status='confirm'`` with the pending ``Decision``; the caller resubmits
with the operator's answer in ``Confirmations``.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .bonus import ZERO, BonusEngine, BonusSettlement, to_decimal
from .config import Settings, get_settings
from .database import ZeitDatabase
from .errors import ShiftPlanError, StorageError, SyntheticEntryError, ZeitError
from .forms import TimeEntryForm
from .holiday_calendar import HolidayInfo, is_holiday
from .log import get_logger, setup_logging
from .models import EmployeeProfile, TimeEntry
from .overtime import (
    Baseline, BalanceResult, OvertimeSettings, VacationAccount, recompute_balances,
    settle_overtime_payout, vacation_account,
)
from .reconciler import (
    Confirmations, Decision, EntryDefaults, apply_deviation_choice, compute_defaults,
    detect_deviation, holiday_decision, missing_entry_dates, prepare_entry,
    synthesize_plan_days,
)
from .shift_plan import ShiftPlan, ShiftPlanDay, WeeklyPattern, derive_code_from_label, normalize_segments
from .status_codes import Category, CODE_POLICIES, StatusCode
from .time_utils import format_date_de, month_bounds, month_label, year_month
from .validator import (
    ZERO_PAUSE_MEAL_ERROR, format_range_error, validate, validate_submission_dates,
)

_logger = get_logger('services')

HolidayLookup = Callable[[str, Optional[str]], HolidayInfo]

_INTERNAL_ERROR = "Interner Fehler. Bitte versuche es erneut."

DERIVED_FIELDS = {
    'ist_hours', 'raw_hours', 'plan_hours', 'required_pause_minutes', 'sick_hours',
    'child_sick_hours', 'short_work_hours', 'vacation_hours', 'holiday_hours',
}


@dataclass
class ActionResult:
    status: str                      # success | error | confirm
    message: str
    warnings: List[str] = field(default_factory=list)
    decision: Optional[Decision] = None
    saved_dates: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, message: str, warnings: Optional[List[str]] = None,
                saved_dates: Optional[List[str]] = None) -> 'ActionResult':
        return cls('success', message, list(warnings or []), saved_dates=list(saved_dates or []))

    @classmethod
    def error(cls, message: str, saved_dates: Optional[List[str]] = None) -> 'ActionResult':
        return cls('error', message, saved_dates=list(saved_dates or []))

    @classmethod
    def confirm(cls, decision: Decision) -> 'ActionResult':
        return cls('confirm', decision.message, decision=decision)

    @property
    def ok(self) -> bool:
        return self.status == 'success'

    def as_dict(self) -> dict:
        data = {'status': self.status, 'message': self.message}
        if self.warnings:
            data['warnings'] = self.warnings
        if self.decision is not None:
            data['reason'] = self.decision.reason
            data['options'] = list(self.decision.options)
        return data


def _closed_edit_message(year: int, month: int) -> str:
    return f"Der Monat {month_label(year, month)} ist abgeschlossen und kann nicht bearbeitet werden."


class _BaseService:
    def __init__(self, db: ZeitDatabase, holiday_lookup: Optional[HolidayLookup] = None,
                 settings: Optional[Settings] = None):
        self.db = db
        self.holiday_lookup = holiday_lookup or is_holiday
        self.settings = settings or get_settings()

    def _profile(self, employee_id: int) -> EmployeeProfile:
        return self.db.get_profile(employee_id) or EmployeeProfile(employee_id=employee_id)

    def _region(self, profile: EmployeeProfile) -> str:
        return profile.federal_state or self.settings.default_region

    def _holiday_name(self, iso_date: str, region: str) -> Optional[str]:
        info = self.holiday_lookup(iso_date, region)
        return info.name if info.is_holiday else None

    def recompute(self, employee_id: int) -> BalanceResult:
        """Rebuild balances from the full history (real + synthetic days)."""
        profile = self._profile(employee_id)
        region = self._region(profile)
        plan = self.db.get_shift_plan(employee_id)
        # the plan may have changed since an entry was saved
        entries = [prepare_entry(e, plan.plan_hours(e.day_date), profile)
                   for e in self.db.list_time_entries(employee_id)]
        synthetic = synthesize_plan_days(
            plan, plan.days.keys(), [e.day_date for e in entries],
            lambda d: self._holiday_name(d, region) is not None,
        )

        def plan_provider(entry: TimeEntry) -> float:
            info = plan.plan_hours(entry.day_date)
            return info.soll_hours if info else 0.0

        caps = OvertimeSettings(
            max_overtime_hours=profile.max_overtime_hours
            if profile.max_overtime_hours is not None else self.settings.max_overtime_hours,
            max_minus_hours=profile.max_minus_hours
            if profile.max_minus_hours is not None else self.settings.max_minus_hours,
        )
        result = recompute_balances(
            employee_id, entries + synthetic, plan_provider,
            Baseline.from_profile(profile), caps, self.db.get_overtime_payouts(employee_id),
        )
        deltas = {fig.day_date: fig.overtime_delta for fig in result.days if not fig.synthetic}
        self.db.update_day_figures(employee_id, {
            e.day_date: dict(e.model_dump(include=DERIVED_FIELDS), overtime_delta=deltas.get(e.day_date, 0.0))
            for e in entries
        })
        self.db.save_balance(employee_id, result.totals())
        return result


# ── Time entries ───────────────────────────────────────────────

class TimeEntryService(_BaseService):

    def defaults_for(self, employee_id: int, iso_date: str, user_overrode_pause: bool = False,
                     current_pause: Optional[int] = None) -> EntryDefaults:
        profile = self._profile(employee_id)
        plan = self.db.get_shift_plan(employee_id)
        return compute_defaults(plan, iso_date, profile.requires_meal_flag,
                                profile.min_pause_under6_minutes, user_overrode_pause, current_pause)

    def submit(self, form: TimeEntryForm, confirmations: Optional[Confirmations] = None) -> ActionResult:
        try:
            return self._submit(form, confirmations or Confirmations())
        except (ZeitError, ValueError) as e:
            return ActionResult.error(str(e))
        except Exception:
            _logger.exception("Speichern fehlgeschlagen: MA %s, %s", form.employee_id, form.day_date)
            return ActionResult.error(_INTERNAL_ERROR)

    def _submit(self, form: TimeEntryForm, confirmations: Confirmations) -> ActionResult:
        employee_id = form.employee_id
        dates = form.dates()

        # every affected month must be open before anything is written
        date_errors = validate_submission_dates(employee_id, dates, self.db.is_closed)
        if date_errors:
            return ActionResult.error(date_errors[0])

        profile = self._profile(employee_id)
        region = self._region(profile)
        plan = self.db.get_shift_plan(employee_id)

        if not form.is_range:
            return self._submit_day(form.to_entry(), plan, profile, region, confirmations)

        prepared: List[TimeEntry] = []
        warnings: List[str] = []
        holiday_days = 0
        for iso_date in dates:
            entry = form.to_entry(iso_date)
            if entry.code == StatusCode.U and self._holiday_name(iso_date, region):
                entry = entry.model_copy(update={'code': StatusCode.FT})
                holiday_days += 1
            info = plan.plan_hours(iso_date)
            entry = prepare_entry(entry, info, profile)
            result = validate(entry, info, profile, is_closed=self.db.is_closed,
                              zero_pause_meal_confirmed=confirmations.zero_pause_meal)
            if result.errors:
                return ActionResult.error(format_range_error(iso_date, result.errors[0]))
            if result.warnings and not warnings:
                warnings.append(f"Hinweis: {result.warnings[0]}")
            prepared.append(entry)

        saved: List[str] = []
        for entry in prepared:
            try:
                self.db.upsert_time_entry(entry)
            except StorageError as e:
                _logger.error("Zeitraum abgebrochen bei %s: %s", entry.day_date, e)
                if saved:
                    self.recompute(employee_id)
                return ActionResult.error(format_range_error(entry.day_date, str(e)), saved)
            saved.append(entry.day_date)
        self.recompute(employee_id)

        message = (f"Zeitraum {format_date_de(dates[0])} – {format_date_de(dates[-1])} "
                   f"wurde gespeichert.")
        if holiday_days:
            message += f" {holiday_days} Feiertag(e) wurden als FT erfasst."
        return ActionResult.success(message, warnings, saved)

    def _submit_day(self, entry: TimeEntry, plan: ShiftPlan, profile: EmployeeProfile,
                    region: str, confirmations: Confirmations) -> ActionResult:
        iso_date = entry.day_date
        info = plan.plan_hours(iso_date)
        holiday_name = self._holiday_name(iso_date, region)

        if entry.code == StatusCode.U and holiday_name:
            entry = entry.model_copy(update={'code': StatusCode.FT})

        category = CODE_POLICIES[entry.code].category
        if category in (Category.WORK, Category.OVERTIME):
            existing = self.db.get_time_entry(entry.employee_id, iso_date)
            plan_code = derive_code_from_label(plan.label(iso_date), on_holiday=bool(holiday_name))
            decision = holiday_decision(iso_date, holiday_name, existing is not None, plan_code,
                                        confirmations.holiday_worked)
            if decision.needs_confirmation:
                return ActionResult.confirm(decision)
            if decision.code == StatusCode.FT:
                entry = entry.model_copy(update={'code': StatusCode.FT, 'kommt1': None, 'geht1': None,
                                                 'kommt2': None, 'geht2': None})

        if entry.code == StatusCode.RA:
            defaults = compute_defaults(info, iso_date, profile.requires_meal_flag,
                                        profile.min_pause_under6_minutes)
            decision = detect_deviation(entry, info, defaults)
            if decision.needs_confirmation:
                if not confirmations.deviation_choice:
                    return ActionResult.confirm(decision)
                entry = apply_deviation_choice(entry, confirmations.deviation_choice, defaults)

        entry = prepare_entry(entry, info, profile)
        result = validate(entry, info, profile, is_closed=self.db.is_closed,
                          zero_pause_meal_confirmed=confirmations.zero_pause_meal)
        if result.errors == [ZERO_PAUSE_MEAL_ERROR]:
            return ActionResult.confirm(
                Decision.confirm('zero_pause_meal', ZERO_PAUSE_MEAL_ERROR, ('ja', 'nein')))
        if result.errors:
            return ActionResult.error(result.errors[0])

        self.db.upsert_time_entry(entry)
        self.recompute(entry.employee_id)
        _logger.info("Eintrag gespeichert: MA %s, %s, Code %s", entry.employee_id, iso_date, entry.code)
        return ActionResult.success(f"Eintrag am {format_date_de(iso_date)} wurde gespeichert.",
                                    result.warnings, [iso_date])

    def resolve_holiday(self, employee_id: int, iso_date: str, worked: bool) -> ActionResult:
        """Answer the holiday prompt without a full form: 'no' records FT."""
        year, month = year_month(iso_date)
        if self.db.is_closed(employee_id, year, month):
            return ActionResult.error(_closed_edit_message(year, month))
        if worked:
            return ActionResult.success(f"Der {format_date_de(iso_date)} kann normal erfasst werden.")
        profile = self._profile(employee_id)
        plan = self.db.get_shift_plan(employee_id)
        entry = prepare_entry(TimeEntry(employee_id=employee_id, day_date=iso_date, code=StatusCode.FT),
                              plan.plan_hours(iso_date), profile)
        self.db.upsert_time_entry(entry)
        self.recompute(employee_id)
        return ActionResult.success(f"Eintrag am {format_date_de(iso_date)} wurde gespeichert.",
                                    saved_dates=[iso_date])

    def remove_entry(self, employee_id: int, iso_date: str) -> ActionResult:
        year, month = year_month(iso_date)
        if self.db.is_closed(employee_id, year, month):
            return ActionResult.error(_closed_edit_message(year, month))
        try:
            if self.db.get_time_entry(employee_id, iso_date) is None:
                if any(e.day_date == iso_date for e in self._synthetic(employee_id, iso_date, iso_date)):
                    raise SyntheticEntryError("Aus dem Schichtplan abgeleitete Tage können nicht gelöscht werden.")
                return ActionResult.error(f"Kein Eintrag am {format_date_de(iso_date)} vorhanden.")
            self.db.delete_time_entry(employee_id, iso_date)
        except ZeitError as e:
            return ActionResult.error(str(e))
        self.recompute(employee_id)
        return ActionResult.success(f"Eintrag am {format_date_de(iso_date)} wurde gelöscht.")

    def _synthetic(self, employee_id: int, date_from: str, date_to: str,
                   entries: Optional[List[TimeEntry]] = None) -> List[TimeEntry]:
        profile = self._profile(employee_id)
        region = self._region(profile)
        plan = self.db.get_shift_plan(employee_id, date_from, date_to)
        if entries is None:
            entries = self.db.list_time_entries(employee_id, date_from, date_to)
        return synthesize_plan_days(
            plan, plan.days.keys(), [e.day_date for e in entries],
            lambda d: self._holiday_name(d, region) is not None,
        )

    def list_entries(self, employee_id: int, year: int, month: int) -> List[TimeEntry]:
        """Real entries of a month merged with plan-derived synthetic days."""
        first, last = month_bounds(year, month)
        entries = self.db.list_time_entries(employee_id, first, last)
        combined = entries + self._synthetic(employee_id, first, last, entries)
        return sorted(combined, key=lambda e: e.day_date)

    def missing_dates(self, employee_id: int, year: int, month: int) -> List[str]:
        first, last = month_bounds(year, month)
        plan = self.db.get_shift_plan(employee_id, first, last)
        return missing_entry_dates(plan, plan.days.keys(), self.list_entries(employee_id, year, month))

    def pay_out_overtime(self, employee_id: int, year: int, month: int, requested_hours: float) -> Dict:
        """Book an overtime payout for a month, clamped to the available balance."""
        already = self.db.get_overtime_payouts(employee_id).get((year, month), 0.0)
        balance = self.recompute(employee_id).balance_hours + already
        hours = settle_overtime_payout(requested_hours, balance)
        self.db.set_overtime_payout(employee_id, year, month, hours)
        result = self.recompute(employee_id)
        return {'employee_id': employee_id, 'year': year, 'month': month,
                'hours': hours, 'balance_hours': result.balance_hours}

    def vacation_account(self, employee_id: int, year: int) -> VacationAccount:
        """Vacation days taken and left in *year*, planned vacation days included."""
        result = self.recompute(employee_id)
        return vacation_account(self._profile(employee_id), result, year)


# ── Shift plan ─────────────────────────────────────────────────

class ShiftPlanService(_BaseService):

    def save_day(self, employee_id: int, iso_date: str, segments: List[dict]) -> ActionResult:
        try:
            year, month = year_month(iso_date)
        except ValueError as e:
            return ActionResult.error(str(e))
        if self.db.is_closed(employee_id, year, month):
            return ActionResult.error(_closed_edit_message(year, month))
        profile = self._profile(employee_id)
        try:
            normalized = normalize_segments(iso_date, segments, profile.branch_ids)
        except ShiftPlanError as e:
            return ActionResult.error(str(e))
        if normalized:
            self.db.save_plan_day(employee_id, ShiftPlanDay(iso_date=iso_date, segments=normalized))
        else:
            self.db.delete_plan_day(employee_id, iso_date)
        self.recompute(employee_id)
        return ActionResult.success(f"Schichtplan für {format_date_de(iso_date)} wurde gespeichert.")

    def save_weekly_pattern(self, employee_id: int, pattern: WeeklyPattern) -> ActionResult:
        self.db.save_weekly_pattern(employee_id, pattern)
        self.recompute(employee_id)
        return ActionResult.success("Wochenplan wurde gespeichert.")

    def clear_range(self, employee_id: int, date_from: str, date_to: str) -> ActionResult:
        plan = self.db.get_shift_plan(employee_id, date_from, date_to)
        closed = validate_submission_dates(employee_id, sorted(plan.days), self.db.is_closed)
        if closed:
            return ActionResult.error(closed[0])
        for iso_date in sorted(plan.days):
            self.db.delete_plan_day(employee_id, iso_date)
        self.recompute(employee_id)
        return ActionResult.success(f"{len(plan.days)} Plantage wurden gelöscht.")


# ── Monthly closing ────────────────────────────────────────────

class MonthlyClosingService:
    def __init__(self, db: ZeitDatabase):
        self.db = db

    def is_closed(self, employee_id: int, year: int, month: int) -> bool:
        return self.db.is_closed(employee_id, year, month)

    def close_month(self, employee_id: int, year: int, month: int, closed_by: str) -> Dict:
        existing = self.db.get_closing(employee_id, year, month)
        if existing and existing.get('status') == 'closed':
            return existing
        record = self.db.set_closing(employee_id, year, month, 'closed', closed_by)
        _logger.info("Monat %02d.%d für MA %s abgeschlossen von %s", month, year, employee_id, closed_by)
        return record

    def reopen_month(self, employee_id: int, year: int, month: int) -> Dict:
        record = self.db.set_closing(employee_id, year, month, 'open')
        _logger.info("Monat %02d.%d für MA %s wieder geöffnet", month, year, employee_id)
        return record

    def closing_history(self, employee_id: int) -> List[Dict]:
        return self.db.list_closings(employee_id)


# ── Bonus ──────────────────────────────────────────────────────

class BonusService:
    def __init__(self, db: ZeitDatabase):
        self.db = db
        self.engine = BonusEngine(db)

    def _profile(self, employee_id: int) -> EmployeeProfile:
        return self.db.get_profile(employee_id) or EmployeeProfile(employee_id=employee_id)

    def monthly_gross(self, employee_id: int, year: int, month: int) -> Decimal:
        first, last = month_bounds(year, month)
        return sum((to_decimal(e.brutto) for e in self.db.list_time_entries(employee_id, first, last)), ZERO)

    def summary(self, employee_id: int, year: int, month: int) -> BonusSettlement:
        return self.engine.evaluate(self._profile(employee_id), year, month,
                                    self.monthly_gross(employee_id, year, month))

    def save_payout(self, employee_id: int, year: int, month: int, requested) -> BonusSettlement:
        settlement = self.engine.save_payout(self._profile(employee_id), year, month,
                                             self.monthly_gross(employee_id, year, month), requested)
        _logger.info("Bonus MA %s %02d.%d: Auszahlung %s, Übertrag %s",
                     employee_id, month, year, settlement.payout, settlement.carry_over)
        return settlement

    def history(self, employee_id: int, year: int) -> List[BonusSettlement]:
        gross = {m: self.monthly_gross(employee_id, year, m) for m in range(1, 13)}
        return self.engine.history(self._profile(employee_id), year, gross)


class Services:
    """The four services bound to one store."""

    def __init__(self, db: ZeitDatabase, settings: Optional[Settings] = None,
                 holiday_lookup: Optional[HolidayLookup] = None):
        self.db = db
        self.time_entries = TimeEntryService(db, holiday_lookup, settings)
        self.shift_plan = ShiftPlanService(db, holiday_lookup, settings)
        self.closings = MonthlyClosingService(db)
        self.bonus = BonusService(db)


def create_services(settings: Optional[Settings] = None) -> Services:
    """Configure logging and open the store at ``settings.db_path``."""
    settings = settings or get_settings()
    setup_logging(settings.log_file, settings.log_level)
    _logger.info("Zeiterfassung gestartet, Datenverzeichnis %s", settings.db_path)
    return Services(ZeitDatabase(settings.db_path), settings)
