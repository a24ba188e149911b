"""
License Invariants

Pure validation functions that enforce the mechanism's rules. Handlers call
these before deciding anything, so an operation that violates a rule fails
before a single event or transfer is planned.
"""

from datetime import datetime

from decaying_license.kernel.errors import (
    InvalidAmount,
    InvalidBid,
    InvalidLicense,
    InvalidPrice,
    InvalidTerms,
    LicenseInUse,
    NothingToCollect,
    ReadyToLicense,
    Unauthorized,
)
from decaying_license.kernel.policy import BPS, LicensePolicy
from decaying_license.kernel.time import elapsed_seconds
from decaying_license.license.decay import get_decayed_shares
from decaying_license.license.models import Bid, LicenseEntry, Record, Terms


# ============================================================================
# Terms
# ============================================================================


def validate_license_exists(entry: LicenseEntry | None, license_id: int) -> LicenseEntry:
    """
    Raises:
        InvalidLicense: If the id has no terms
    """
    if entry is None:
        raise InvalidLicense(license_id, "no terms drafted")
    return entry


def validate_new_terms(price: int, content: str) -> None:
    """
    A fresh license needs a positive price floor and some content

    Raises:
        InvalidLicense: If price is zero or content is empty
    """
    if price <= 0:
        raise InvalidLicense(None, "price must be positive")
    if not content or not content.strip():
        raise InvalidLicense(None, "content must not be empty")


def validate_rate_and_period(rate: int, period: int) -> None:
    """
    Raises:
        InvalidTerms: If period is not positive or rate is outside 0..period
    """
    if period <= 0 or rate < 0 or rate > period:
        raise InvalidTerms(rate, period)


def validate_schedule_unlocked(
    prior: Terms, record: Record | None, rate: int, period: int
) -> None:
    """
    Bidders claim shares against the decay schedule in force, so the
    schedule is frozen while any claimed share is outstanding.

    Raises:
        InvalidTerms: If rate or period changes while record.bidder_shares > 0
    """
    if (rate, period) == (prior.rate, prior.period):
        return
    if record is not None and record.bidder_shares > 0:
        raise InvalidTerms(
            rate,
            period,
            f"decay schedule is locked while bids claim {record.bidder_shares} bps",
        )


def validate_licensor(terms: Terms, caller: str) -> None:
    """
    Raises:
        Unauthorized: If caller did not draft these terms
    """
    if caller != terms.licensor:
        raise Unauthorized(caller, "licensor", terms.license_id)


# ============================================================================
# Prices & amounts
# ============================================================================


def validate_price_floor(price: int, terms: Terms) -> None:
    """
    Raises:
        InvalidPrice: If price is below the terms floor
    """
    if price < terms.price:
        raise InvalidPrice(price, terms.price)


def validate_payment_covers(value: int, price: int) -> None:
    """
    Direct allocation must be paid in full up front

    Raises:
        InvalidAmount: If attached value is below the price
    """
    if value < price:
        raise InvalidAmount(value, price)


def validate_positive_amount(value: int) -> None:
    """
    Raises:
        InvalidAmount: If value is zero or negative
    """
    if value <= 0:
        raise InvalidAmount(value, 1, f"Attached value must be positive, got {value}")


# ============================================================================
# Lifecycle gates
# ============================================================================


def validate_decay_open(
    terms: Terms, record: Record | None, now: datetime
) -> Record:
    """
    Bids and deposits need a held license that has not fully decayed

    Once nothing is held, or all of it has decayed, only a direct license()
    call applies.

    Raises:
        ReadyToLicense: If the license is unlicensed or fully decayed
    """
    if record is None or get_decayed_shares(terms, record, now) >= BPS:
        raise ReadyToLicense(terms.license_id)
    return record


def validate_resale_eligible(
    terms: Terms, record: Record, now: datetime, policy: LicensePolicy
) -> None:
    """
    Forced resale waits out the protected use cycle and, under the
    full-decay policy, complete decay

    Raises:
        LicenseInUse: If resale is not yet eligible
    """
    tenure = elapsed_seconds(record.licensed_at, now)
    use_cycle = policy.use_cycle_seconds(terms.period)
    if tenure <= use_cycle:
        raise LicenseInUse(
            terms.license_id,
            f"protected use cycle runs {use_cycle}s, {tenure}s elapsed",
        )

    if policy.resale_threshold == "full_decay":
        decayed = get_decayed_shares(terms, record, now)
        if decayed < BPS:
            raise LicenseInUse(
                terms.license_id, f"{decayed} of {BPS} bps decayed"
            )


def validate_collectable(license_id: int, record: Record | None, owed: int) -> Record:
    """
    Returns:
        The record patronage is collected from

    Raises:
        NothingToCollect: If unlicensed or no patronage has accrued
    """
    if record is None or owed <= 0:
        raise NothingToCollect(license_id)
    return record


# ============================================================================
# Bids
# ============================================================================


def validate_bid_slot(bids: list[Bid], bid_id: int) -> Bid:
    """
    Raises:
        InvalidBid: If no bid occupies the slot
    """
    if bid_id < 0 or bid_id >= len(bids):
        raise InvalidBid(f"No bid in slot {bid_id}")
    return bids[bid_id]


def validate_bid_owner(bid: Bid, caller: str, license_id: int) -> None:
    """
    Raises:
        Unauthorized: If caller did not place the bid
    """
    if bid.bidder != caller:
        raise Unauthorized(caller, f"bidder in slot {bid.bid_id}", license_id)


def validate_licensee(record: Record, caller: str, license_id: int) -> None:
    """
    Raises:
        Unauthorized: If caller does not hold the license
    """
    if record.licensee != caller:
        raise Unauthorized(caller, "licensee", license_id)


def validate_bidder_shares(record: Record, decayed: int) -> None:
    """
    Claimed decay can never exceed what has actually decayed

    Raises:
        InvalidBid: If the record claims more than has decayed
    """
    if record.bidder_shares > decayed:
        raise InvalidBid(
            f"Bids claim {record.bidder_shares} bps but only {decayed} bps decayed"
        )
