"""
License Module Events - Domain events for decaying licenses

Events are immutable facts about what happened. Each license has its own
stream (license-<id>); folding that stream in order rebuilds its terms,
record and bid table exactly.

Value movements are recorded alongside the state change that caused them,
so the stream doubles as the audit trail of every escrow flow.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class TermsDrafted(BaseModel):
    """
    Terms were created or redrafted by the licensor

    The payload carries the merged terms, not just the changed fields.
    Drafting never touches the record or the bids.
    """

    license_id: int
    licensor: str
    price: int
    rate: int
    period: int
    content: str
    drafted_at: datetime
    is_new: bool


class BidSubmitted(BaseModel):
    """
    A bid was placed or grown

    The bid fields are the slot contents after the submission; a repeat
    bidder's slot is replaced wholesale.
    """

    license_id: int
    bid_id: int
    bidder: str
    price: int
    shares: int
    deposit: int
    incremental_shares: int
    bidder_shares: int = Field(..., description="Record's claimed decay afterwards")
    value_attached: int
    surplus_refunded: int = 0
    submitted_at: datetime
    is_new: bool


class DepositAdded(BaseModel):
    """Escrow added to a bid or to the licensee's patronage buffer"""

    license_id: int
    target_kind: Literal["bid", "licensee"]
    bid_id: int | None = None
    depositor: str
    amount: int
    total_deposit: int
    deposited_at: datetime


class LicenseAllocated(BaseModel):
    """
    The license was (re)allocated

    kind "direct": the caller paid and won; "bid": the best eligible bid won
    and paid its price out of escrow. When a previous holder existed, its
    patronage was settled first.
    """

    license_id: int
    licensee: str
    price: int
    deposit: int
    kind: Literal["direct", "bid"]
    winning_bid_id: int | None = None
    previous_licensee: str | None = None
    patronage_settled: int = 0
    previous_holder_refund: int = 0
    licensed_at: datetime


class RefundSpec(BaseModel):
    """One bid escrow returned to its bidder (in event payload)"""

    bid_id: int
    bidder: str
    amount: int


class BidsRefunded(BaseModel):
    """The bid table was cleared and every listed escrow returned"""

    license_id: int
    refunds: list[RefundSpec]
    reason: Literal["reallocated", "terminated"]
    refunded_at: datetime


class PatronageCollected(BaseModel):
    """Accrued patronage moved from the licensee's deposit to the licensor"""

    license_id: int
    licensor: str
    amount: int
    remaining_deposit: int
    collected_at: datetime


class LicenseTerminated(BaseModel):
    """
    The deposit could not cover the patronage owed

    The record is removed and the license returns to Unlicensed.
    """

    license_id: int
    previous_licensee: str
    reason: str
    terminated_at: datetime


EVENT_TYPES = frozenset(
    {
        "TermsDrafted",
        "BidSubmitted",
        "DepositAdded",
        "LicenseAllocated",
        "BidsRefunded",
        "PatronageCollected",
        "LicenseTerminated",
    }
)

# Observer-facing notification names and the event that carries each one
NOTIFICATIONS: dict[str, str] = {
    "Drafted": "TermsDrafted",
    "BidSubmitted": "BidSubmitted",
    "Deposited": "DepositAdded",
    "Licensed": "LicenseAllocated",
    "Collected": "PatronageCollected",
}
