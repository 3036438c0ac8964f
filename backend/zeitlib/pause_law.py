"""
Statutory break rules (§ 4 ArbZG).

More than 6 hours of work require 30 minutes of rest, more than 9 hours
require 45 minutes. A per-employee "mandatory pause" setting may raise an
existing requirement, but never introduces one on its own.
"""
from typing import Optional

# Tolerance around the 6h/9h thresholds, so that e.g. 6:00 computed as
# 6.0000000001 does not flip to 30 minutes while 6:01 (6.0167) still does.
PAUSE_EPSILON_HOURS = 0.005

LEGAL_STEPS = (
    (9.0, 45),
    (6.0, 30),
)


def required_pause_minutes(hours: float) -> int:
    """Legal minimum break in minutes for *hours* of work (both blocks summed)."""
    if not hours or hours <= 0:
        return 0
    for threshold, minutes in LEGAL_STEPS:
        if hours > threshold + PAUSE_EPSILON_HOURS:
            return minutes
    return 0


def required_pause_with_policy(hours: float, mandatory_pause_minutes: Optional[int] = None) -> int:
    """Legal minimum raised to the employee's mandatory pause setting.

    The setting only applies when the law already asks for a break (>= 30 min).
    """
    legal = required_pause_minutes(hours)
    if legal >= 30 and mandatory_pause_minutes and mandatory_pause_minutes > legal:
        return int(mandatory_pause_minutes)
    return legal


def enforced_pause_minutes(
    hours: float,
    plan_pause_minutes: Optional[int] = 0,
    mandatory_pause_minutes: Optional[int] = None,
) -> int:
    """Pause the entry has to carry: max(plan pause, legal pause, policy)."""
    policy = required_pause_with_policy(hours, mandatory_pause_minutes)
    return max(int(plan_pause_minutes or 0), policy)
