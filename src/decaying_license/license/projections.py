"""
License Module Projections - Read model for query operations

LicenseRegistry folds license events into one LicenseEntry per id. It is
the only state the handlers consult, and it can always be thrown away and
rebuilt by replaying the event store.
"""

from decaying_license.kernel.events import Event
from decaying_license.license.models import Bid, LicenseEntry, Record, Terms


class LicenseRegistry:
    """
    Current state of all licenses

    Built from events: TermsDrafted, BidSubmitted, DepositAdded,
                       LicenseAllocated, BidsRefunded, PatronageCollected,
                       LicenseTerminated

    Query methods: get, list_all, count_licensed
    """

    def __init__(self) -> None:
        self.licenses: dict[int, LicenseEntry] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        handler = {
            "TermsDrafted": self._apply_terms_drafted,
            "BidSubmitted": self._apply_bid_submitted,
            "DepositAdded": self._apply_deposit_added,
            "LicenseAllocated": self._apply_license_allocated,
            "BidsRefunded": self._apply_bids_refunded,
            "PatronageCollected": self._apply_patronage_collected,
            "LicenseTerminated": self._apply_license_terminated,
        }.get(event.event_type)
        if handler is None:
            return

        handler(event.payload)
        entry = self.licenses.get(event.payload["license_id"])
        if entry is not None:
            entry.version = event.version

    def apply_events(self, events: list[Event]) -> None:
        for event in events:
            self.apply_event(event)

    def _apply_terms_drafted(self, payload: dict) -> None:
        license_id = payload["license_id"]
        terms = Terms(
            license_id=license_id,
            licensor=payload["licensor"],
            price=payload["price"],
            rate=payload["rate"],
            period=payload["period"],
            content=payload["content"],
            drafted_at=payload["drafted_at"],
        )
        entry = self.licenses.get(license_id)
        if entry is None:
            self.licenses[license_id] = LicenseEntry(terms=terms)
        else:
            entry.terms = terms

    def _apply_bid_submitted(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is None or entry.record is None:
            return

        bid = Bid(
            bid_id=payload["bid_id"],
            bidder=payload["bidder"],
            shares=payload["shares"],
            price=payload["price"],
            deposit=payload["deposit"],
        )
        if payload["is_new"]:
            entry.bids.append(bid)
        else:
            entry.bids[bid.bid_id] = bid
        entry.record.bidder_shares = payload["bidder_shares"]

    def _apply_deposit_added(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is None or entry.record is None:
            return

        if payload["target_kind"] == "bid":
            bid = entry.bids[payload["bid_id"]]
            bid.deposit = payload["total_deposit"]
        else:
            entry.record.deposit = payload["total_deposit"]

    def _apply_license_allocated(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is None:
            return

        licensed_at = payload["licensed_at"]
        entry.record = Record(
            licensee=payload["licensee"],
            price=payload["price"],
            deposit=payload["deposit"],
            licensed_at=licensed_at,
            collected_at=licensed_at,
            bidder_shares=0,
        )
        entry.bids = []

    def _apply_bids_refunded(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is not None:
            entry.bids = []

    def _apply_patronage_collected(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is None or entry.record is None:
            return

        entry.record = Record.model_validate(
            {
                **entry.record.model_dump(),
                "deposit": payload["remaining_deposit"],
                "collected_at": payload["collected_at"],
            }
        )

    def _apply_license_terminated(self, payload: dict) -> None:
        entry = self.licenses.get(payload["license_id"])
        if entry is not None:
            entry.record = None
            entry.bids = []

    # ========== Query Methods ==========

    def get(self, license_id: int) -> LicenseEntry | None:
        """Get a license by id"""
        return self.licenses.get(license_id)

    def next_license_id(self) -> int:
        """Ids are sequential from 1"""
        return max(self.licenses, default=0) + 1

    def list_all(self) -> list[LicenseEntry]:
        """All licenses in id order"""
        return [self.licenses[key] for key in sorted(self.licenses)]

    def count_licensed(self) -> int:
        return sum(1 for entry in self.licenses.values() if entry.is_licensed)

    # ========== Checkpointing ==========

    def checkpoint(self, license_id: int) -> LicenseEntry | None:
        """
        Snapshot of one entry, restorable if an operation on it aborts

        Every operation touches a single license, so nothing else needs
        copying. None means the license did not exist yet.
        """
        entry = self.licenses.get(license_id)
        return entry.model_copy(deep=True) if entry else None

    def restore(self, license_id: int, snapshot: LicenseEntry | None) -> None:
        if snapshot is None:
            self.licenses.pop(license_id, None)
        else:
            self.licenses[license_id] = snapshot

    def to_dict(self) -> dict:
        """Serialize projection state"""
        return {
            "licenses": {
                str(license_id): entry.model_dump(mode="json")
                for license_id, entry in self.licenses.items()
            }
        }
