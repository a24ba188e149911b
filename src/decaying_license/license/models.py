"""
License Domain Models

Terms set by the licensor, the Record of whoever currently holds the license,
and the Bids queued to take it over once enough of it has decayed.

Fun fact: Medieval English copyhold tenure granted land "at the will of the
lord" - a license that could revert at any time. Here the reversion is
continuous and arithmetic instead of at anyone's whim.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LicenseState(str, Enum):
    """
    License lifecycle states

    Finite state machine:
    UNLICENSED → IN_USE_CYCLE → DECAYING → READY
         ↑                                   │
         └──────── collect() terminates ─────┤
                   license() reallocates ────┘ (back to IN_USE_CYCLE)
    """

    UNLICENSED = "UNLICENSED"  # No holder - open for direct allocation
    IN_USE_CYCLE = "IN_USE_CYCLE"  # Protected first part of the period
    DECAYING = "DECAYING"  # Bids accumulate, resale not yet eligible
    READY = "READY"  # Forced resale eligible


class TransferReason(str, Enum):
    """Why value leaves a license escrow"""

    LICENSE_PRICE = "LICENSE_PRICE"  # Winning price to the licensor
    PATRONAGE = "PATRONAGE"  # Accrued tax to the licensor
    HOLDER_REFUND = "HOLDER_REFUND"  # Unused deposit back to a previous holder
    BID_REFUND = "BID_REFUND"  # Losing or cancelled bid escrow back to its bidder
    BID_SURPLUS = "BID_SURPLUS"  # Escrow above a repeat bid's requirement


class Terms(BaseModel):
    """
    Licensor-set parameters for one license

    Decay is linear: 10000 * rate * elapsed // period bps have reverted
    toward the licensor after `elapsed` seconds of tenure.
    """

    license_id: int = Field(..., ge=1, description="Sequential license identifier")
    licensor: str = Field(..., description="Identity allowed to redraft and collect")
    price: int = Field(..., gt=0, description="Price floor for licensing and bids")
    rate: int = Field(..., ge=0, description="Decay rate numerator (bps per period)")
    period: int = Field(..., gt=0, description="Decay period in seconds")
    content: str = Field(..., min_length=1, description="Opaque reference to the subject matter")
    drafted_at: datetime = Field(..., description="When these terms were last drafted")


class Bid(BaseModel):
    """
    A bidder's cumulative claim on the decayed part of a license

    Shares only grow while the bid is live; deposit tracks price * shares.
    """

    bid_id: int = Field(..., ge=0, description="Slot in the bid table")
    bidder: str = Field(..., description="Bidder identity")
    shares: int = Field(default=0, ge=0, description="Claimed decay in bps")
    price: int = Field(..., gt=0, description="Self-assessed price the bidder commits to")
    deposit: int = Field(default=0, ge=0, description="Escrow held toward price")

    @property
    def is_funded(self) -> bool:
        """An under-funded self-assessment cannot win a forced sale"""
        return self.deposit >= self.price


class Record(BaseModel):
    """
    The current licensed instance

    Absence of a Record is the Unlicensed state; a Record is never "empty".
    """

    licensee: str = Field(..., description="Current holder")
    price: int = Field(..., gt=0, description="Price paid - the patronage base")
    deposit: int = Field(default=0, ge=0, description="Prepaid patronage buffer")
    licensed_at: datetime = Field(..., description="Most recent allocation")
    collected_at: datetime = Field(..., description="Patronage charged through this instant")
    bidder_shares: int = Field(
        default=0, ge=0, description="Decay already claimed across live bids (bps)"
    )


class LicenseEntry(BaseModel):
    """Terms, record and bid table of one license - an isolated unit of state"""

    terms: Terms
    record: Record | None = None
    bids: list[Bid] = Field(default_factory=list)
    version: int = Field(default=0, ge=0, description="Stream version applied")

    @property
    def license_id(self) -> int:
        return self.terms.license_id

    @property
    def is_licensed(self) -> bool:
        return self.record is not None

    def escrowed(self) -> int:
        """Value this license should hold in escrow"""
        held = self.record.deposit if self.record else 0
        return held + sum(bid.deposit for bid in self.bids)


class Receipt(BaseModel):
    """Attached value drawn from a caller into the license escrow"""

    sender: str
    amount: int = Field(..., ge=0)


class Transfer(BaseModel):
    """Planned payout from the license escrow to an external identity"""

    recipient: str
    amount: int = Field(..., ge=0)
    reason: TransferReason
