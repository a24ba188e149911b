#!/usr/bin/env python3
"""
Decaying License - walkthrough scenarios

Scenario 1: Direct allocation, patronage collection and bidding on the
  decayed share of a held license.
Scenario 2: Forced resale to a fully funded bid once the license has
  completely decayed.
Scenario 3: A failed refund rolls the whole resale back.

Every scenario runs on a fresh temporary database with a simulated clock, so
the numbers printed are exactly reproducible.
"""

import tempfile
from pathlib import Path

from decaying_license import LicenseEngine
from decaying_license.kernel.errors import LicenseInUse, TransferFailed
from decaying_license.kernel.ledger import InMemoryLedger
from decaying_license.kernel.logging import configure_logging
from decaying_license.kernel.time import TestTimeProvider

PRICE = 1_000_000
RATE = 2  # bps per period
PERIOD = 604_800  # one week


def print_section(title: str) -> None:
    print(f"\n{'=' * 72}")
    print(f"  {title}")
    print("=" * 72)


def funded_ledger(*identities: str) -> InMemoryLedger:
    ledger = InMemoryLedger()
    for identity in identities:
        ledger.credit(identity, 10_000_000)
    return ledger


def scenario_1_collect_and_bid(db_path: Path) -> None:
    print_section("Scenario 1: Allocation, patronage and bidding")

    clock = TestTimeProvider()
    ledger = funded_ledger("alice", "bob", "carol")
    engine = LicenseEngine(db_path, time_provider=clock, ledger=ledger)

    terms = engine.draft(None, PRICE, RATE, PERIOD, "TEST", caller="alice")
    print(f"alice drafted license {terms.license_id} with floor {terms.price}")

    record = engine.license(terms.license_id, PRICE, PRICE + 100_000, caller="bob")
    print(f"bob licensed it at price {record.price}, deposit {record.deposit}")

    clock.set_seconds(10_000)
    print(f"\nt=10000: decayed {engine.get_decayed_shares(terms.license_id)} bps")
    print(f"         patronage owed {engine.patronage_owed(terms.license_id)}")

    try:
        engine.license(terms.license_id, 5 * PRICE, 5 * PRICE, caller="carol")
    except LicenseInUse as e:
        print(f"carol's early buyout refused: {e}")

    collected = engine.collect(terms.license_id, caller="alice")
    print(f"alice collected {collected}")

    placed = engine.bid(terms.license_id, 1_500_000, 49_500, caller="carol")
    print(
        f"carol bid {placed.price} for {placed.shares} bps, "
        f"escrow {placed.deposit}"
    )
    raised = engine.bid(terms.license_id, 2_000_000, 16_500, caller="carol")
    print(f"carol raised to {raised.price}, topping up to {raised.deposit}")

    print(f"\nescrow held: {ledger.escrow_of(terms.license_id)}")
    print(f"alice wallet: {ledger.balance_of('alice')}")


def scenario_2_resale_to_bid(db_path: Path) -> None:
    print_section("Scenario 2: Forced resale to a funded bid")

    clock = TestTimeProvider()
    ledger = funded_ledger("alice", "bob", "carol", "dave")
    engine = LicenseEngine(db_path, time_provider=clock, ledger=ledger)

    license_id = engine.draft(None, PRICE, RATE, PERIOD, "TEST", caller="alice").license_id
    engine.license(license_id, PRICE, 2 * PRICE, caller="bob")

    clock.set_seconds(10_000)
    placed = engine.bid(license_id, 1_500_000, 49_500, caller="carol")
    total = engine.deposit(
        license_id, 1_500_000 - placed.deposit, caller="carol", bid_id=placed.bid_id
    )
    print(f"carol funded bid {placed.bid_id} fully: {total}")

    clock.set_seconds(302_400)
    print(f"t=302400: state {engine.license_state(license_id).value}")
    record = engine.license(license_id, PRICE, PRICE, caller="dave")
    print(f"dave forced the resale; the license went to {record.licensee}")
    print(f"dave wallet untouched: {ledger.balance_of('dave')}")
    print(f"bob got back {ledger.balance_of('bob') - 8_000_000} of his deposit")

    for event in engine.history(license_id):
        print(f"  v{event.version} {event.event_type}")


def scenario_3_rollback(db_path: Path) -> None:
    print_section("Scenario 3: A refused refund undoes the resale")

    clock = TestTimeProvider()
    ledger = funded_ledger("alice", "bob", "carol", "dave")
    engine = LicenseEngine(db_path, time_provider=clock, ledger=ledger)

    license_id = engine.draft(None, PRICE, RATE, PERIOD, "TEST", caller="alice").license_id
    engine.license(license_id, PRICE, PRICE + 100_000, caller="bob")
    clock.set_seconds(10_000)
    engine.bid(license_id, 1_500_000, 49_500, caller="carol")

    ledger.reject("carol")
    clock.set_seconds(302_400)
    try:
        engine.license(license_id, PRICE, PRICE, caller="dave")
    except TransferFailed as e:
        print(f"resale failed: {e}")

    record = engine.get_record(license_id)
    print(f"licensee still {record.licensee}, bids still {len(engine.get_bids(license_id))}")
    print(f"events stored: {engine.event_store.count_events()}")


def main() -> None:
    configure_logging(log_level="WARNING")
    with tempfile.TemporaryDirectory() as tmp:
        scenario_1_collect_and_bid(Path(tmp) / "s1.db")
        scenario_2_resale_to_bid(Path(tmp) / "s2.db")
        scenario_3_rollback(Path(tmp) / "s3.db")


if __name__ == "__main__":
    main()
