"""
License Module Handlers - Command→Decision transformation

Handlers are the decision-making layer. They:
1. Load current state (from the LicenseRegistry projection)
2. Validate invariants
3. Plan events, attached-value receipts and outbound transfers
4. Return the plan as a Decision

Nothing is mutated here. The engine applies a Decision as one atomic unit:
state first, then value movements, then the event log. A handler that
raises therefore leaves no trace at all.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from decaying_license.kernel.events import Event, create_event
from decaying_license.kernel.ids import generate_id, license_stream_id
from decaying_license.kernel.policy import LicensePolicy
from decaying_license.kernel.time import TimeProvider
from decaying_license.license.bids import BidBook
from decaying_license.license.commands import (
    AcquireLicense,
    AddDeposit,
    CollectPatronage,
    DraftTerms,
    SubmitBid,
)
from decaying_license.license.decay import get_decayed_shares, patronage_owed
from decaying_license.license.events import (
    BidsRefunded,
    BidSubmitted,
    DepositAdded,
    LicenseAllocated,
    LicenseTerminated,
    PatronageCollected,
    RefundSpec,
    TermsDrafted,
)
from decaying_license.license.invariants import (
    validate_bid_owner,
    validate_bidder_shares,
    validate_collectable,
    validate_decay_open,
    validate_licensee,
    validate_licensor,
    validate_license_exists,
    validate_new_terms,
    validate_payment_covers,
    validate_positive_amount,
    validate_price_floor,
    validate_rate_and_period,
    validate_resale_eligible,
    validate_schedule_unlocked,
)
from decaying_license.license.models import (
    Bid,
    LicenseEntry,
    Receipt,
    Record,
    Terms,
    Transfer,
    TransferReason,
)
from decaying_license.license.projections import LicenseRegistry

STREAM_TYPE = "license"


class Decision(BaseModel):
    """
    Everything one operation will do, computed before anything happens

    receipts are drawn into the license escrow first, transfers are paid
    out of it afterwards, in list order.
    """

    license_id: int
    stream_id: str
    expected_version: int = Field(..., ge=0)
    events: list[Event]
    receipts: list[Receipt] = Field(default_factory=list)
    transfers: list[Transfer] = Field(default_factory=list)


class LicenseCommandHandlers:
    """
    Command handlers for the license module

    Args:
        time_provider: For timestamps (injectable for testing)
        policy: Mechanism parameters
    """

    def __init__(self, time_provider: TimeProvider, policy: LicensePolicy) -> None:
        self.time_provider = time_provider
        self.policy = policy

    def _decide(
        self,
        license_id: int,
        base_version: int,
        command_id: str,
        actor_id: str,
        now: datetime,
        payloads: list[tuple[str, BaseModel]],
        receipts: list[Receipt] | None = None,
        transfers: list[Transfer] | None = None,
    ) -> Decision:
        """Wrap payloads into sequentially versioned events on the license stream"""
        stream_id = license_stream_id(license_id)
        events = [
            create_event(
                event_id=generate_id(),
                stream_id=stream_id,
                stream_type=STREAM_TYPE,
                event_type=event_type,
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload.model_dump(mode="json"),
                version=base_version + offset,
            )
            for offset, (event_type, payload) in enumerate(payloads, start=1)
        ]
        return Decision(
            license_id=license_id,
            stream_id=stream_id,
            expected_version=base_version,
            events=events,
            receipts=[r for r in receipts or [] if r.amount > 0],
            transfers=[t for t in transfers or [] if t.amount > 0],
        )

    def handle_draft_terms(
        self,
        command: DraftTerms,
        command_id: str,
        actor_id: str,
        registry: LicenseRegistry,
    ) -> Decision:
        """
        Handle DraftTerms command

        A missing or zero license_id allocates the next sequential id. A
        redraft merges over the prior terms: zero or empty fields keep their
        old values.

        Raises:
            InvalidLicense: Unknown id, or a new license without price/content
            Unauthorized: If a redraft does not come from the licensor
            InvalidTerms: If the merged rate/period are malformed, or would
                change while bids hold claimed shares
        """
        now = self.time_provider.now()

        if not command.license_id:
            validate_new_terms(command.price, command.content)
            validate_rate_and_period(command.rate, command.period)
            license_id = registry.next_license_id()
            payload = TermsDrafted(
                license_id=license_id,
                licensor=actor_id,
                price=command.price,
                rate=command.rate,
                period=command.period,
                content=command.content,
                drafted_at=now,
                is_new=True,
            )
            return self._decide(
                license_id, 0, command_id, actor_id, now, [("TermsDrafted", payload)]
            )

        entry = validate_license_exists(
            registry.get(command.license_id), command.license_id
        )
        prior = entry.terms
        validate_licensor(prior, actor_id)

        rate = command.rate or prior.rate
        period = command.period or prior.period
        validate_rate_and_period(rate, period)
        validate_schedule_unlocked(prior, entry.record, rate, period)

        payload = TermsDrafted(
            license_id=prior.license_id,
            licensor=prior.licensor,
            price=command.price or prior.price,
            rate=rate,
            period=period,
            content=command.content or prior.content,
            drafted_at=now,
            is_new=False,
        )
        return self._decide(
            prior.license_id,
            entry.version,
            command_id,
            actor_id,
            now,
            [("TermsDrafted", payload)],
        )

    def handle_submit_bid(
        self,
        command: SubmitBid,
        command_id: str,
        actor_id: str,
        registry: LicenseRegistry,
    ) -> Decision:
        """
        Handle SubmitBid command

        The bid claims whatever decay no earlier bid has claimed yet. See
        BidBook.plan_bid for the escrow rules.

        Raises:
            InvalidLicense: If the license has no terms
            InvalidPrice: If price is below the floor
            ReadyToLicense: If unlicensed or fully decayed
            InvalidBidAmount: If value is not the exact escrow change
            TooManyBids: If a new bidder finds the table full
        """
        now = self.time_provider.now()

        entry = validate_license_exists(
            registry.get(command.license_id), command.license_id
        )
        terms = entry.terms
        validate_price_floor(command.price, terms)
        record = validate_decay_open(terms, entry.record, now)

        decayed = get_decayed_shares(terms, record, now)
        validate_bidder_shares(record, decayed)
        incremental = decayed - record.bidder_shares

        book = BidBook(terms.license_id, entry.bids, self.policy.max_bids)
        plan = book.plan_bid(actor_id, command.price, incremental, command.value)

        payload = BidSubmitted(
            license_id=terms.license_id,
            bid_id=plan.bid.bid_id,
            bidder=actor_id,
            price=plan.bid.price,
            shares=plan.bid.shares,
            deposit=plan.bid.deposit,
            incremental_shares=incremental,
            bidder_shares=record.bidder_shares + incremental,
            value_attached=plan.value_required,
            surplus_refunded=plan.surplus_refund,
            submitted_at=now,
            is_new=plan.is_new,
        )
        return self._decide(
            terms.license_id,
            entry.version,
            command_id,
            actor_id,
            now,
            [("BidSubmitted", payload)],
            receipts=[Receipt(sender=actor_id, amount=plan.value_required)],
            transfers=[
                Transfer(
                    recipient=actor_id,
                    amount=plan.surplus_refund,
                    reason=TransferReason.BID_SURPLUS,
                )
            ],
        )

    def handle_add_deposit(
        self,
        command: AddDeposit,
        command_id: str,
        actor_id: str,
        registry: LicenseRegistry,
    ) -> Decision:
        """
        Handle AddDeposit command

        With a bid_id the escrow of that bid grows (never above its price);
        without one, the licensee tops up the patronage buffer.

        Raises:
            InvalidAmount: If value is not positive
            InvalidLicense: If the license has no terms
            ReadyToLicense: If unlicensed or fully decayed
            InvalidBid: If the bid slot is empty
            Unauthorized: If caller does not own the target
            InvalidBidAmount: If the bid escrow would exceed its price
        """
        now = self.time_provider.now()

        validate_positive_amount(command.value)
        entry = validate_license_exists(
            registry.get(command.license_id), command.license_id
        )
        terms = entry.terms
        record = validate_decay_open(terms, entry.record, now)

        if command.bid_id is not None:
            book = BidBook(terms.license_id, entry.bids, self.policy.max_bids)
            validate_bid_owner(book.get(command.bid_id), actor_id, terms.license_id)
            total = book.plan_deposit(command.bid_id, command.value).deposit
            target_kind = "bid"
        else:
            validate_licensee(record, actor_id, terms.license_id)
            total = record.deposit + command.value
            target_kind = "licensee"

        payload = DepositAdded(
            license_id=terms.license_id,
            target_kind=target_kind,
            bid_id=command.bid_id,
            depositor=actor_id,
            amount=command.value,
            total_deposit=total,
            deposited_at=now,
        )
        return self._decide(
            terms.license_id,
            entry.version,
            command_id,
            actor_id,
            now,
            [("DepositAdded", payload)],
            receipts=[Receipt(sender=actor_id, amount=command.value)],
        )

    def handle_acquire_license(
        self,
        command: AcquireLicense,
        command_id: str,
        actor_id: str,
        registry: LicenseRegistry,
    ) -> Decision:
        """
        Handle AcquireLicense command - the allocation state machine

        Unlicensed: the caller pays price (>= floor) and keeps value - price
        as deposit. Held: once resale is eligible, the best funded bid wins,
        or the caller wins directly when no bid is funded. The previous
        holder's patronage is settled and every losing bid refunded.

        Raises:
            InvalidLicense: If the license has no terms
            LicenseInUse: If resale is not yet eligible
            InvalidPrice: If the caller wins with a price below the floor
            InvalidAmount: If the caller wins without covering the price
        """
        now = self.time_provider.now()

        entry = validate_license_exists(
            registry.get(command.license_id), command.license_id
        )
        terms = entry.terms
        previous = entry.record

        if previous is not None:
            validate_resale_eligible(terms, previous, now, self.policy)

        book = BidBook(terms.license_id, entry.bids, self.policy.max_bids)
        winner = book.best() if previous is not None else None

        receipts: list[Receipt] = []
        transfers: list[Transfer] = []

        settled = 0
        holder_refund = 0
        if previous is not None:
            settled, holder_refund = self._settle_patronage(terms, previous, now)
            transfers.append(
                Transfer(
                    recipient=terms.licensor,
                    amount=settled,
                    reason=TransferReason.PATRONAGE,
                )
            )
            transfers.append(
                Transfer(
                    recipient=previous.licensee,
                    amount=holder_refund,
                    reason=TransferReason.HOLDER_REFUND,
                )
            )

        if winner is not None:
            licensee = winner.bidder
            price = winner.price
            deposit = winner.deposit - winner.price
            kind = "bid"
        else:
            validate_price_floor(command.price, terms)
            validate_payment_covers(command.value, command.price)
            licensee = actor_id
            price = command.price
            deposit = command.value - command.price
            kind = "direct"
            receipts.append(Receipt(sender=actor_id, amount=command.value))

        transfers.append(
            Transfer(
                recipient=terms.licensor,
                amount=price,
                reason=TransferReason.LICENSE_PRICE,
            )
        )
        refunds = book.plan_refunds(exclude_bid_id=winner.bid_id if winner else None)
        transfers.extend(refunds)

        payloads: list[tuple[str, BaseModel]] = [
            (
                "LicenseAllocated",
                LicenseAllocated(
                    license_id=terms.license_id,
                    licensee=licensee,
                    price=price,
                    deposit=deposit,
                    kind=kind,
                    winning_bid_id=winner.bid_id if winner else None,
                    previous_licensee=previous.licensee if previous else None,
                    patronage_settled=settled,
                    previous_holder_refund=holder_refund,
                    licensed_at=now,
                ),
            )
        ]
        if refunds:
            payloads.append(
                (
                    "BidsRefunded",
                    self._refund_summary(entry, winner, "reallocated", now),
                )
            )

        return self._decide(
            terms.license_id,
            entry.version,
            command_id,
            actor_id,
            now,
            payloads,
            receipts=receipts,
            transfers=transfers,
        )

    def handle_collect_patronage(
        self,
        command: CollectPatronage,
        command_id: str,
        actor_id: str,
        registry: LicenseRegistry,
    ) -> Decision:
        """
        Handle CollectPatronage command

        When the deposit cannot cover what is owed, the licensor takes the
        whole deposit and the license terminates: the record is removed and
        every live bid is refunded.

        Raises:
            InvalidLicense: If the license has no terms
            Unauthorized: If caller is not the licensor
            NothingToCollect: If nothing is owed (including unlicensed)
        """
        now = self.time_provider.now()

        entry = validate_license_exists(
            registry.get(command.license_id), command.license_id
        )
        terms = entry.terms
        validate_licensor(terms, actor_id)

        owed = patronage_owed(
            terms, entry.record, now, basis=self.policy.patronage_basis
        )
        record = validate_collectable(terms.license_id, entry.record, owed)

        if owed < record.deposit:
            payload = PatronageCollected(
                license_id=terms.license_id,
                licensor=terms.licensor,
                amount=owed,
                remaining_deposit=record.deposit - owed,
                collected_at=now,
            )
            return self._decide(
                terms.license_id,
                entry.version,
                command_id,
                actor_id,
                now,
                [("PatronageCollected", payload)],
                transfers=[
                    Transfer(
                        recipient=terms.licensor,
                        amount=owed,
                        reason=TransferReason.PATRONAGE,
                    )
                ],
            )

        # Unfunded patronage: drain the deposit and terminate
        book = BidBook(terms.license_id, entry.bids, self.policy.max_bids)
        refunds = book.plan_refunds()
        payloads: list[tuple[str, BaseModel]] = [
            (
                "PatronageCollected",
                PatronageCollected(
                    license_id=terms.license_id,
                    licensor=terms.licensor,
                    amount=record.deposit,
                    remaining_deposit=0,
                    collected_at=now,
                ),
            )
        ]
        if refunds:
            payloads.append(
                ("BidsRefunded", self._refund_summary(entry, None, "terminated", now))
            )
        payloads.append(
            (
                "LicenseTerminated",
                LicenseTerminated(
                    license_id=terms.license_id,
                    previous_licensee=record.licensee,
                    reason=f"patronage owed {owed} exceeds deposit {record.deposit}",
                    terminated_at=now,
                ),
            )
        )
        return self._decide(
            terms.license_id,
            entry.version,
            command_id,
            actor_id,
            now,
            payloads,
            transfers=[
                Transfer(
                    recipient=terms.licensor,
                    amount=record.deposit,
                    reason=TransferReason.PATRONAGE,
                ),
                *refunds,
            ],
        )

    def _settle_patronage(
        self, terms: Terms, previous: Record, now: datetime
    ) -> tuple[int, int]:
        """
        Split the previous holder's deposit between licensor and holder

        Returns:
            (paid to licensor, refunded to the previous holder)
        """
        owed = patronage_owed(terms, previous, now, basis=self.policy.patronage_basis)
        if owed >= previous.deposit:
            return previous.deposit, 0
        return owed, previous.deposit - owed

    def _refund_summary(
        self,
        entry: LicenseEntry,
        winner: Bid | None,
        reason: str,
        now: datetime,
    ) -> BidsRefunded:
        return BidsRefunded(
            license_id=entry.license_id,
            refunds=[
                RefundSpec(bid_id=bid.bid_id, bidder=bid.bidder, amount=bid.deposit)
                for bid in entry.bids
                if bid.deposit > 0 and (winner is None or bid.bid_id != winner.bid_id)
            ],
            reason=reason,
            refunded_at=now,
        )
