"""
Tests for License Command Handlers

Handlers are pure deciders: they read the registry and return a Decision.
These tests apply the decided events back to the registry themselves, so
the flow mirrors what the engine does minus the ledger and event store.
"""

import pytest

from decaying_license.kernel.errors import (
    InvalidAmount,
    InvalidBid,
    InvalidBidAmount,
    InvalidLicense,
    InvalidPrice,
    InvalidTerms,
    LicenseInUse,
    NothingToCollect,
    ReadyToLicense,
    Unauthorized,
)
from decaying_license.kernel.ids import generate_id
from decaying_license.kernel.time import TestTimeProvider
from decaying_license.license.commands import (
    AcquireLicense,
    AddDeposit,
    CollectPatronage,
    DraftTerms,
    SubmitBid,
)
from decaying_license.license.handlers import Decision, LicenseCommandHandlers
from decaying_license.license.models import TransferReason
from decaying_license.license.projections import LicenseRegistry
from tests.helpers import CONTENT, FULL_DECAY_AT, PERIOD, PRICE, RATE, USE_CYCLE_END


def apply(registry: LicenseRegistry, decision: Decision) -> Decision:
    registry.apply_events(decision.events)
    return decision


def draft(handlers: LicenseCommandHandlers, registry: LicenseRegistry) -> Decision:
    return apply(
        registry,
        handlers.handle_draft_terms(
            DraftTerms(price=PRICE, rate=RATE, period=PERIOD, content=CONTENT),
            generate_id(),
            "alice",
            registry,
        ),
    )


def acquire(
    handlers: LicenseCommandHandlers,
    registry: LicenseRegistry,
    caller: str = "bob",
    price: int = PRICE,
    value: int = PRICE,
) -> Decision:
    return apply(
        registry,
        handlers.handle_acquire_license(
            AcquireLicense(license_id=1, price=price, value=value),
            generate_id(),
            caller,
            registry,
        ),
    )


def bid(
    handlers: LicenseCommandHandlers,
    registry: LicenseRegistry,
    caller: str,
    price: int,
    value: int,
) -> Decision:
    return apply(
        registry,
        handlers.handle_submit_bid(
            SubmitBid(license_id=1, price=price, value=value),
            generate_id(),
            caller,
            registry,
        ),
    )


# ============================================================================
# Draft
# ============================================================================


def test_draft_new_terms(handlers, registry) -> None:
    decision = draft(handlers, registry)

    assert decision.license_id == 1
    assert decision.expected_version == 0
    assert decision.stream_id == "license-1"
    (event,) = decision.events
    assert event.event_type == "TermsDrafted"
    assert event.version == 1
    assert event.payload["is_new"] is True
    assert decision.receipts == [] and decision.transfers == []

    terms = registry.get(1).terms
    assert (terms.price, terms.rate, terms.period, terms.content) == (
        PRICE,
        RATE,
        PERIOD,
        CONTENT,
    )
    assert terms.licensor == "alice"


def test_draft_ids_are_sequential(handlers, registry) -> None:
    draft(handlers, registry)
    second = draft(handlers, registry)
    assert second.license_id == 2


def test_draft_new_without_price_or_content(handlers, registry) -> None:
    with pytest.raises(InvalidLicense):
        handlers.handle_draft_terms(
            DraftTerms(price=0, rate=RATE, period=PERIOD, content=CONTENT),
            generate_id(),
            "alice",
            registry,
        )
    with pytest.raises(InvalidLicense):
        handlers.handle_draft_terms(
            DraftTerms(price=PRICE, rate=RATE, period=PERIOD, content=""),
            generate_id(),
            "alice",
            registry,
        )


def test_draft_rejects_rate_above_period(handlers, registry) -> None:
    with pytest.raises(InvalidTerms):
        handlers.handle_draft_terms(
            DraftTerms(price=PRICE, rate=11, period=10, content=CONTENT),
            generate_id(),
            "alice",
            registry,
        )


def test_redraft_merges_over_prior_terms(handlers, registry) -> None:
    draft(handlers, registry)

    decision = apply(
        registry,
        handlers.handle_draft_terms(
            DraftTerms(license_id=1, price=2_000_000), generate_id(), "alice", registry
        ),
    )

    assert decision.events[0].version == 2
    terms = registry.get(1).terms
    assert terms.price == 2_000_000
    assert terms.rate == RATE
    assert terms.period == PERIOD
    assert terms.content == CONTENT


def test_redraft_by_stranger_rejected(handlers, registry) -> None:
    draft(handlers, registry)
    with pytest.raises(Unauthorized):
        handlers.handle_draft_terms(
            DraftTerms(license_id=1, price=1), generate_id(), "mallory", registry
        )


def test_redraft_schedule_locked_while_shares_claimed(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(100_000)
    bid(handlers, registry, "carol", 1_500_000, 1_500_000 * 3306 // 10_000)
    assert registry.get(1).record.bidder_shares == 3306

    for change in (DraftTerms(license_id=1, rate=1), DraftTerms(license_id=1, period=2 * PERIOD)):
        with pytest.raises(InvalidTerms):
            handlers.handle_draft_terms(change, generate_id(), "alice", registry)

    # Price and content stay amendable
    apply(
        registry,
        handlers.handle_draft_terms(
            DraftTerms(license_id=1, price=2_000_000, rate=RATE, content="TEST-2"),
            generate_id(),
            "alice",
            registry,
        ),
    )
    terms = registry.get(1).terms
    assert (terms.price, terms.rate, terms.content) == (2_000_000, RATE, "TEST-2")

    # Claimed shares still fit under decay and later bidders are not jammed
    test_time.set_seconds(150_000)
    assert registry.get(1).record.bidder_shares <= 10_000 * RATE * 150_000 // PERIOD
    decision = bid(handlers, registry, "dave", 2_000_000, 2_000_000 * 1654 // 10_000)
    assert decision.events[0].payload["shares"] == 1654


def test_redraft_schedule_free_without_claims(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(100_000)

    apply(
        registry,
        handlers.handle_draft_terms(
            DraftTerms(license_id=1, rate=1), generate_id(), "alice", registry
        ),
    )

    assert registry.get(1).terms.rate == 1


def test_redraft_unknown_license_rejected(handlers, registry) -> None:
    with pytest.raises(InvalidLicense):
        handlers.handle_draft_terms(
            DraftTerms(license_id=9, price=1), generate_id(), "alice", registry
        )


# ============================================================================
# Direct allocation
# ============================================================================


def test_direct_license_of_unlicensed(handlers, registry) -> None:
    draft(handlers, registry)

    decision = acquire(handlers, registry, value=1_100_000)

    assert [e.event_type for e in decision.events] == ["LicenseAllocated"]
    assert decision.events[0].payload["kind"] == "direct"
    assert [(r.sender, r.amount) for r in decision.receipts] == [("bob", 1_100_000)]
    assert [(t.recipient, t.amount, t.reason) for t in decision.transfers] == [
        ("alice", PRICE, TransferReason.LICENSE_PRICE)
    ]
    record = registry.get(1).record
    assert record.licensee == "bob"
    assert record.deposit == 100_000
    assert record.bidder_shares == 0


def test_direct_license_price_and_value_checks(handlers, registry) -> None:
    draft(handlers, registry)
    with pytest.raises(InvalidPrice):
        acquire(handlers, registry, price=PRICE - 1, value=PRICE)
    with pytest.raises(InvalidAmount):
        acquire(handlers, registry, price=PRICE, value=PRICE - 1)


def test_license_unknown_id(handlers, registry) -> None:
    with pytest.raises(InvalidLicense):
        acquire(handlers, registry)


def test_resale_in_use_cycle(handlers, registry, test_time: TestTimeProvider) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)

    test_time.set_seconds(USE_CYCLE_END)
    with pytest.raises(LicenseInUse):
        acquire(handlers, registry, caller="dave")


def test_resale_before_full_decay(handlers, registry, test_time: TestTimeProvider) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)

    test_time.set_seconds(USE_CYCLE_END + 1)
    with pytest.raises(LicenseInUse):
        acquire(handlers, registry, caller="dave")


# ============================================================================
# Bids & deposits
# ============================================================================


def test_bid_on_unlicensed_is_ready_to_license(handlers, registry) -> None:
    draft(handlers, registry)
    with pytest.raises(ReadyToLicense):
        bid(handlers, registry, "carol", 1_500_000, 0)


def test_bid_below_floor(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)
    with pytest.raises(InvalidPrice):
        bid(handlers, registry, "carol", PRICE - 1, 0)


def test_bid_claims_decay(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)

    decision = bid(handlers, registry, "carol", 1_500_000, 49_500)

    payload = decision.events[0].payload
    assert payload["incremental_shares"] == 330
    assert payload["bidder_shares"] == 330
    assert [(r.sender, r.amount) for r in decision.receipts] == [("carol", 49_500)]
    assert registry.get(1).record.bidder_shares == 330
    assert registry.get(1).bids[0].deposit == 49_500


def test_second_bidder_claims_only_unclaimed_decay(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    # Nothing decayed since carol's bid
    decision = bid(handlers, registry, "dave", 1_500_000, 0)
    assert decision.events[0].payload["shares"] == 0

    test_time.set_seconds(20_000)
    decision = bid(handlers, registry, "erin", 1_000_000, 1_000_000 * 331 // 10_000)
    assert decision.events[0].payload["shares"] == 331
    assert registry.get(1).record.bidder_shares == 661


def test_repeat_bid_surplus_refund(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    decision = bid(handlers, registry, "carol", 1_000_000, 0)

    assert decision.receipts == []
    assert [(t.recipient, t.amount, t.reason) for t in decision.transfers] == [
        ("carol", 16_500, TransferReason.BID_SURPLUS)
    ]
    assert registry.get(1).bids[0].deposit == 33_000


def test_bid_after_full_decay(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(FULL_DECAY_AT)
    with pytest.raises(ReadyToLicense):
        bid(handlers, registry, "carol", 1_500_000, 0)


def test_deposit_to_bid(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    decision = apply(
        registry,
        handlers.handle_add_deposit(
            AddDeposit(license_id=1, value=50_500, bid_id=0),
            generate_id(),
            "carol",
            registry,
        ),
    )

    payload = decision.events[0].payload
    assert payload["target_kind"] == "bid"
    assert payload["total_deposit"] == 100_000
    assert registry.get(1).bids[0].deposit == 100_000


def test_deposit_guards(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    def deposit(value: int, caller: str, bid_id: int | None) -> Decision:
        return handlers.handle_add_deposit(
            AddDeposit(license_id=1, value=value, bid_id=bid_id),
            generate_id(),
            caller,
            registry,
        )

    with pytest.raises(InvalidAmount):
        deposit(0, "carol", 0)
    with pytest.raises(Unauthorized):
        deposit(10, "dave", 0)
    with pytest.raises(InvalidBid):
        deposit(10, "carol", 5)
    with pytest.raises(InvalidBidAmount):
        deposit(1_500_000, "carol", 0)
    with pytest.raises(Unauthorized):
        deposit(10, "carol", None)  # Not the licensee


def test_licensee_top_up(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry)
    test_time.set_seconds(10)

    decision = apply(
        registry,
        handlers.handle_add_deposit(
            AddDeposit(license_id=1, value=5_000), generate_id(), "bob", registry
        ),
    )

    assert decision.events[0].payload["target_kind"] == "licensee"
    assert registry.get(1).record.deposit == 5_000


# ============================================================================
# Forced resale
# ============================================================================


def test_resale_to_funded_bid(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry, value=1_100_000)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)
    bid(handlers, registry, "dave", 1_200_000, 0)
    apply(
        registry,
        handlers.handle_add_deposit(
            AddDeposit(license_id=1, value=1_450_500, bid_id=0),
            generate_id(),
            "carol",
            registry,
        ),
    )

    test_time.set_seconds(FULL_DECAY_AT)
    decision = acquire(handlers, registry, caller="erin")

    allocated = decision.events[0].payload
    assert allocated["kind"] == "bid"
    assert allocated["licensee"] == "carol"
    assert allocated["winning_bid_id"] == 0
    assert allocated["previous_licensee"] == "bob"
    assert decision.receipts == []  # erin pays nothing
    # owed = 500_000 >= deposit 100_000: licensor takes the whole deposit
    assert [(t.recipient, t.amount, t.reason) for t in decision.transfers] == [
        ("alice", 100_000, TransferReason.PATRONAGE),
        ("alice", 1_500_000, TransferReason.LICENSE_PRICE),
    ]
    record = registry.get(1).record
    assert record.licensee == "carol"
    assert record.price == 1_500_000
    assert record.deposit == 0
    assert registry.get(1).bids == []


def test_resale_refunds_losing_bids(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry, value=2_000_000)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    test_time.set_seconds(FULL_DECAY_AT)
    decision = acquire(handlers, registry, caller="dave")

    assert [e.event_type for e in decision.events] == ["LicenseAllocated", "BidsRefunded"]
    refunds = decision.events[1].payload["refunds"]
    assert refunds == [{"bid_id": 0, "bidder": "carol", "amount": 49_500}]
    # owed = 500_000 < deposit 1_000_000: holder gets the rest back
    assert [(t.recipient, t.amount, t.reason) for t in decision.transfers] == [
        ("alice", 500_000, TransferReason.PATRONAGE),
        ("bob", 500_000, TransferReason.HOLDER_REFUND),
        ("alice", PRICE, TransferReason.LICENSE_PRICE),
        ("carol", 49_500, TransferReason.BID_REFUND),
    ]
    assert registry.get(1).record.licensee == "dave"


# ============================================================================
# Collect
# ============================================================================


def test_collect_partial(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry, value=1_100_000)
    test_time.set_seconds(10_000)

    decision = apply(
        registry,
        handlers.handle_collect_patronage(
            CollectPatronage(license_id=1), generate_id(), "alice", registry
        ),
    )

    assert decision.events[0].payload["amount"] == 16_534
    record = registry.get(1).record
    assert record.deposit == 100_000 - 16_534
    assert record.collected_at == test_time.now()


def test_collect_terminates_when_deposit_short(handlers, registry, test_time) -> None:
    draft(handlers, registry)
    acquire(handlers, registry, value=PRICE)
    test_time.set_seconds(10_000)
    bid(handlers, registry, "carol", 1_500_000, 49_500)

    decision = apply(
        registry,
        handlers.handle_collect_patronage(
            CollectPatronage(license_id=1), generate_id(), "alice", registry
        ),
    )

    assert [e.event_type for e in decision.events] == [
        "PatronageCollected",
        "BidsRefunded",
        "LicenseTerminated",
    ]
    assert [(t.recipient, t.amount) for t in decision.transfers] == [("carol", 49_500)]
    assert registry.get(1).record is None
    assert registry.get(1).bids == []


def test_collect_guards(handlers, registry, test_time) -> None:
    draft(handlers, registry)

    def collect(caller: str) -> Decision:
        return handlers.handle_collect_patronage(
            CollectPatronage(license_id=1), generate_id(), caller, registry
        )

    with pytest.raises(NothingToCollect):
        collect("alice")  # Unlicensed

    acquire(handlers, registry)
    with pytest.raises(NothingToCollect):
        collect("alice")  # No time has passed

    test_time.set_seconds(10_000)
    with pytest.raises(Unauthorized):
        collect("bob")
