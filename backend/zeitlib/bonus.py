"""
Revenue-share bonus.

Net revenue is gross / 1.19. The linear scheme pays a percentage of the net
revenue above a target; the stepped scheme ("stufen") pays each tier's
percentage on the band between its threshold and the next one.

Unpaid bonus carries over: ``available = calculated + previous carry``,
payouts are clamped to ``[0, available]`` and the remainder is stored as the
month's carry in the ledger.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Protocol

from .log import get_logger
from .models import BonusScheme, BonusTier, EmployeeProfile
from .time_utils import parse_iso_date, previous_month

_logger = get_logger('bonus')

VAT_RATE = Decimal('0.19')
CENT = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value) -> Decimal:
    """Accepts Decimal, int, float or a string with comma or dot."""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip().replace(',', '.'))
    except InvalidOperation:
        raise ValueError(f"Ungültiger Betrag: {value}")


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def net_revenue(gross) -> Decimal:
    return to_decimal(gross) / (Decimal('1') + VAT_RATE)


def linear_bonus(net, target, percent) -> Decimal:
    surplus = to_decimal(net) - to_decimal(target)
    if surplus <= 0:
        return ZERO
    return surplus * to_decimal(percent) / Decimal('100')


def tiered_bonus(net, tiers: Iterable[BonusTier]) -> Decimal:
    """Marginal tiers: each band earns its own rate, the last band is open-ended."""
    net = to_decimal(net)
    ordered = sorted(tiers, key=lambda t: t.threshold)
    if not ordered or net <= 0:
        return ZERO
    bonus = ZERO
    for index, tier in enumerate(ordered):
        if net <= tier.threshold:
            break
        upper = net
        if index + 1 < len(ordered):
            upper = min(net, ordered[index + 1].threshold)
        portion = upper - tier.threshold
        if portion > 0:
            bonus += portion * tier.percent / Decimal('100')
    return bonus


def calculate_bonus(net, scheme: BonusScheme) -> Decimal:
    if scheme.scheme_type == 'stufen' and scheme.tiers:
        return round_money(tiered_bonus(net, scheme.tiers))
    return round_money(linear_bonus(net, scheme.target_threshold, scheme.linear_percent))


def settle_payout(requested, available) -> tuple:
    """(payout, carry_over) with payout clamped to [0, available]."""
    available = round_money(available)
    requested = to_decimal(requested)
    payout = min(max(requested, ZERO), max(available, ZERO))
    payout = round_money(payout)
    carry = round_money(max(available - payout, ZERO))
    if payout != requested:
        _logger.info("Bonusauszahlung %s auf %s begrenzt (verfügbar %s)", requested, payout, available)
    return payout, carry


class BonusLedger(Protocol):
    def get_bonus_entry(self, employee_id: int, year: int, month: int) -> Optional[dict]: ...

    def upsert_bonus_entry(self, employee_id: int, year: int, month: int,
                           payout: Decimal, carry_over: Decimal) -> dict: ...


@dataclass
class BonusSettlement:
    employee_id: int
    year: int
    month: int
    gross_revenue: Decimal
    net_revenue: Decimal
    calculated: Decimal
    previous_carry: Decimal
    available: Decimal
    payout: Decimal = ZERO
    carry_over: Decimal = ZERO

    def as_dict(self) -> dict:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in self.__dict__.items()}


class BonusEngine:
    def __init__(self, ledger: BonusLedger):
        self.ledger = ledger

    def previous_carry(self, profile: EmployeeProfile, year: int, month: int) -> Decimal:
        prev_year, prev_month = previous_month(year, month)
        prev = self.ledger.get_bonus_entry(profile.employee_id, prev_year, prev_month)
        if prev is not None:
            return round_money(prev.get('carry_over', 0))
        if profile.entry_date:
            entry = parse_iso_date(profile.entry_date)
            if entry.year == year and entry.month == month:
                return round_money(profile.imported_bonus_earned)
        return ZERO

    def evaluate(self, profile: EmployeeProfile, year: int, month: int, gross_revenue) -> BonusSettlement:
        """Available bonus for a month, without writing anything."""
        gross = to_decimal(gross_revenue)
        net = net_revenue(gross)
        calculated = calculate_bonus(net, profile.bonus)
        carry = self.previous_carry(profile, year, month)
        stored = self.ledger.get_bonus_entry(profile.employee_id, year, month)
        available = round_money(carry + calculated)
        settlement = BonusSettlement(
            employee_id=profile.employee_id, year=year, month=month,
            gross_revenue=round_money(gross), net_revenue=round_money(net),
            calculated=calculated, previous_carry=carry, available=available,
        )
        if stored is not None:
            settlement.payout = round_money(stored.get('payout', 0))
            settlement.carry_over = round_money(stored.get('carry_over', 0))
        else:
            settlement.carry_over = available
        return settlement

    def save_payout(self, profile: EmployeeProfile, year: int, month: int,
                    gross_revenue, requested_payout) -> BonusSettlement:
        # previous carry is read before the write for this month
        settlement = self.evaluate(profile, year, month, gross_revenue)
        payout, carry = settle_payout(requested_payout, settlement.available)
        self.ledger.upsert_bonus_entry(profile.employee_id, year, month, payout, carry)
        settlement.payout = payout
        settlement.carry_over = carry
        return settlement

    def history(self, profile: EmployeeProfile, year: int, gross_by_month: dict) -> List[BonusSettlement]:
        """Settlements for the months of *year* that have revenue or a ledger row."""
        rows = []
        for month in range(1, 13):
            gross = gross_by_month.get(month, ZERO)
            stored = self.ledger.get_bonus_entry(profile.employee_id, year, month)
            if stored is None and not to_decimal(gross):
                continue
            rows.append(self.evaluate(profile, year, month, gross))
        return rows
