"""
Test Helper Functions - Builders and Assertions

Reusable builders for terms, records and bids, the reference scenario
constants, and the escrow conservation assertion most engine tests end with.
"""

from datetime import datetime

from decaying_license.engine import LicenseEngine
from decaying_license.kernel.ledger import InMemoryLedger
from decaying_license.kernel.time import EPOCH, from_epoch_seconds
from decaying_license.license.models import Bid, LicenseEntry, Record, Terms

# Reference scenario: rate 2 over a one week period
PRICE = 1_000_000
RATE = 2
PERIOD = 604_800
CONTENT = "TEST"

USE_CYCLE_END = PERIOD // 3  # 201_600
FULL_DECAY_AT = PERIOD // RATE  # 302_400

STARTING_BALANCE = 10_000_000


def at(seconds: int) -> datetime:
    """Scenario instant, in seconds since the epoch"""
    return from_epoch_seconds(seconds)


def make_terms(
    license_id: int = 1,
    licensor: str = "alice",
    price: int = PRICE,
    rate: int = RATE,
    period: int = PERIOD,
    content: str = CONTENT,
) -> Terms:
    """Builder for terms with the reference scenario defaults"""
    return Terms(
        license_id=license_id,
        licensor=licensor,
        price=price,
        rate=rate,
        period=period,
        content=content,
        drafted_at=EPOCH,
    )


def make_record(
    licensee: str = "bob",
    price: int = PRICE,
    deposit: int = 0,
    licensed_at: int = 0,
    collected_at: int | None = None,
    bidder_shares: int = 0,
) -> Record:
    """Builder for a record; times are epoch seconds"""
    return Record(
        licensee=licensee,
        price=price,
        deposit=deposit,
        licensed_at=at(licensed_at),
        collected_at=at(licensed_at if collected_at is None else collected_at),
        bidder_shares=bidder_shares,
    )


def make_bid(
    bid_id: int,
    bidder: str,
    price: int = 1_500_000,
    shares: int = 330,
    deposit: int | None = None,
) -> Bid:
    """Builder for a bid; deposit defaults to the escrow its shares require"""
    return Bid(
        bid_id=bid_id,
        bidder=bidder,
        shares=shares,
        price=price,
        deposit=price * shares // 10_000 if deposit is None else deposit,
    )


def make_entry(
    record: Record | None = None,
    bids: list[Bid] | None = None,
    version: int = 1,
    **terms_overrides,
) -> LicenseEntry:
    """Builder for a registry entry"""
    return LicenseEntry(
        terms=make_terms(**terms_overrides),
        record=record,
        bids=bids or [],
        version=version,
    )


def draft_reference(engine: LicenseEngine, caller: str = "alice") -> int:
    """Draft the reference terms and return the new license id"""
    terms = engine.draft(None, PRICE, RATE, PERIOD, CONTENT, caller=caller)
    return terms.license_id


def assert_escrow_conserved(engine: LicenseEngine, ledger: InMemoryLedger) -> None:
    """
    Every license's escrow equals its record deposit plus its bid deposits

    This is the invariant that makes a failed transfer fatal: if it ever
    breaks, value has been created or destroyed.
    """
    for entry in engine.list_licenses():
        expected = entry.escrowed()
        actual = ledger.escrow_of(entry.license_id)
        assert actual == expected, (
            f"license {entry.license_id}: escrow {actual} != "
            f"deposit + bids {expected}"
        )
