"""
BidBook - per-license bid table

At most one slot per bidder, capacity-bounded, slots numbered in arrival
order. The book never mutates itself: it plans the bid a caller is asking
for, and the resulting BidSubmitted event is what changes the table.
"""

from pydantic import BaseModel, Field

from decaying_license.kernel.errors import InvalidBidAmount, TooManyBids
from decaying_license.kernel.policy import BPS
from decaying_license.license.invariants import validate_bid_slot
from decaying_license.license.models import Bid, Transfer, TransferReason
from decaying_license.license.selection import select_best_bid


class BidPlan(BaseModel):
    """Outcome of admitting a bid: the new slot contents and the value flows"""

    bid: Bid
    is_new: bool
    incremental_shares: int = Field(..., ge=0)
    value_required: int = Field(..., ge=0, description="Value the bidder attaches")
    surplus_refund: int = Field(default=0, ge=0, description="Escrow handed back now")


def required_escrow(price: int, shares: int) -> int:
    """Escrow a bid must hold for the decay it claims"""
    return price * shares // BPS


class BidBook:
    """
    Ordered, de-duplicated view over a license's bids

    Args:
        license_id: License the bids belong to
        bids: Current bid table (slot order)
        max_bids: Capacity of the table
    """

    def __init__(self, license_id: int, bids: list[Bid], max_bids: int) -> None:
        self.license_id = license_id
        self.max_bids = max_bids
        self._bids = list(bids)

    def __len__(self) -> int:
        return len(self._bids)

    def __iter__(self):
        return iter(self._bids)

    @property
    def is_full(self) -> bool:
        return len(self._bids) >= self.max_bids

    def find(self, bidder: str) -> Bid | None:
        """Linear scan for the bidder's slot"""
        for bid in self._bids:
            if bid.bidder == bidder:
                return bid
        return None

    def get(self, bid_id: int) -> Bid:
        return validate_bid_slot(self._bids, bid_id)

    def best(self) -> Bid | None:
        return select_best_bid(self._bids)

    def total_deposit(self) -> int:
        return sum(bid.deposit for bid in self._bids)

    def plan_bid(
        self, bidder: str, price: int, incremental_shares: int, value: int
    ) -> BidPlan:
        """
        Admit a new bid or grow an existing one

        A new bidder claims the unclaimed decay and escrows exactly
        price * incremental / 10000. A repeat bidder's claim grows by the
        unclaimed decay, and the escrow is re-based on the new price: any
        shortfall must be attached exactly, any surplus is refunded.

        Raises:
            InvalidBidAmount: If value does not match the escrow change
            TooManyBids: If a new bidder finds the table full
        """
        existing = self.find(bidder)

        if existing is None:
            required = required_escrow(price, incremental_shares)
            if value != required:
                raise InvalidBidAmount(value, required)
            if self.is_full:
                raise TooManyBids(self.license_id, self.max_bids)
            return BidPlan(
                bid=Bid(
                    bid_id=len(self._bids),
                    bidder=bidder,
                    shares=incremental_shares,
                    price=price,
                    deposit=required,
                ),
                is_new=True,
                incremental_shares=incremental_shares,
                value_required=required,
            )

        aggregate = existing.shares + incremental_shares
        required = required_escrow(price, aggregate)
        surplus = 0
        if required > existing.deposit:
            shortfall = required - existing.deposit
            if value != shortfall:
                raise InvalidBidAmount(
                    value,
                    shortfall,
                    f"Repeat bid must top up escrow by exactly {shortfall}, got {value}",
                )
        else:
            if value != 0:
                raise InvalidBidAmount(
                    value,
                    0,
                    f"Escrow of {existing.deposit} already covers {required}; attach nothing",
                )
            surplus = existing.deposit - required

        return BidPlan(
            bid=existing.model_copy(
                update={"shares": aggregate, "price": price, "deposit": required}
            ),
            is_new=False,
            incremental_shares=incremental_shares,
            value_required=value,
            surplus_refund=surplus,
        )

    def plan_deposit(self, bid_id: int, amount: int) -> Bid:
        """
        Raise a bid's escrow toward its price

        Raises:
            InvalidBid: If the slot is empty
            InvalidBidAmount: If the escrow would exceed the bid price
        """
        bid = self.get(bid_id)
        new_deposit = bid.deposit + amount
        if new_deposit > bid.price:
            raise InvalidBidAmount(
                amount,
                bid.price - bid.deposit,
                f"Deposit would raise escrow to {new_deposit}, above bid price {bid.price}",
            )
        return bid.model_copy(update={"deposit": new_deposit})

    def plan_refunds(self, exclude_bid_id: int | None = None) -> list[Transfer]:
        """Refund every escrowed bid except the excluded (winning) slot"""
        return [
            Transfer(
                recipient=bid.bidder,
                amount=bid.deposit,
                reason=TransferReason.BID_REFUND,
            )
            for bid in self._bids
            if bid.bid_id != exclude_bid_id and bid.deposit > 0
        ]
