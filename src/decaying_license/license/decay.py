"""
Decay Calculator - pure functions of terms, record and time

No state of its own: every figure is recomputed from timestamps on demand,
so "how much has decayed" and "how much tax is owed" can never drift from
the clock.
"""

from datetime import datetime

from decaying_license.kernel.policy import (
    BPS,
    SECONDS_PER_YEAR,
    LicensePolicy,
    default_license_policy,
)
from decaying_license.kernel.time import elapsed_seconds
from decaying_license.license.models import LicenseState, Record, Terms


def get_decayed_shares(terms: Terms, record: Record | None, now: datetime) -> int:
    """
    Basis points of the license that have decayed back toward the licensor

    Linear in tenure: 10000 * rate * elapsed // period. Not clamped at 10000 -
    callers treat anything at or above BPS as fully decayed, and the excess
    shows how far past full decay a license has drifted.

    Returns:
        0 when unlicensed, otherwise the decayed bps
    """
    if record is None:
        return 0
    elapsed = elapsed_seconds(record.licensed_at, now)
    return BPS * terms.rate * elapsed // terms.period


def patronage_owed(
    terms: Terms,
    record: Record | None,
    now: datetime,
    basis: str = "period",
) -> int:
    """
    Patronage accrued since the last collection, uncapped by the deposit

    Args:
        basis: "period" charges the full price once per period;
            "year" charges rate/10000 of the price once per year

    Returns:
        0 when unlicensed, otherwise the value owed
    """
    if record is None:
        return 0
    elapsed = elapsed_seconds(record.collected_at, now)
    if basis == "year":
        return record.price * terms.rate * elapsed // (BPS * SECONDS_PER_YEAR)
    return record.price * elapsed // terms.period


def is_fully_decayed(terms: Terms, record: Record | None, now: datetime) -> bool:
    """True once 10000 bps have decayed (never true for an unlicensed license)"""
    return record is not None and get_decayed_shares(terms, record, now) >= BPS


def use_cycle_elapsed(
    terms: Terms,
    record: Record,
    now: datetime,
    policy: LicensePolicy = default_license_policy,
) -> bool:
    """True once now > licensed_at + period // use_cycle_divisor"""
    tenure = elapsed_seconds(record.licensed_at, now)
    return tenure > policy.use_cycle_seconds(terms.period)


def license_state(
    terms: Terms,
    record: Record | None,
    now: datetime,
    policy: LicensePolicy = default_license_policy,
) -> LicenseState:
    """Where a license sits in its lifecycle at a given instant"""
    if record is None:
        return LicenseState.UNLICENSED
    if not use_cycle_elapsed(terms, record, now, policy):
        return LicenseState.IN_USE_CYCLE
    if policy.resale_threshold == "full_decay" and not is_fully_decayed(
        terms, record, now
    ):
        return LicenseState.DECAYING
    return LicenseState.READY
