"""
LicenseEngine - Main façade class

This is the primary interface to the decaying license mechanism. It hides
event sourcing, projections, the command bus and the ledger behind one
method per operation.

Example:
    >>> from decaying_license import LicenseEngine
    >>> engine = LicenseEngine("licenses.db")
    >>> terms = engine.draft(None, 1_000_000, 2, 604_800, "TEST", caller="alice")
    >>> engine.license(terms.license_id, 1_000_000, 1_000_000, caller="bob")
    >>> engine.patronage_owed(terms.license_id)
"""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from decaying_license.kernel.bus import EventHandler, InProcessBus
from decaying_license.kernel.commands import Command, create_command
from decaying_license.kernel.errors import InvalidLicense
from decaying_license.kernel.event_store import SQLiteEventStore
from decaying_license.kernel.events import Event
from decaying_license.kernel.ids import IdFactory, default_id_factory, license_stream_id
from decaying_license.kernel.ledger import InMemoryLedger, Ledger
from decaying_license.kernel.logging import correlation_scope, get_logger
from decaying_license.kernel.metrics import (
    active_licenses,
    bids_submitted_total,
    licenses_allocated_total,
    licenses_terminated_total,
    patronage_collected_value_total,
)
from decaying_license.kernel.policy import LicensePolicy
from decaying_license.kernel.time import RealTimeProvider, TimeProvider
from decaying_license.license import decay
from decaying_license.license.commands import (
    AcquireLicense,
    AddDeposit,
    CollectPatronage,
    DraftTerms,
    SubmitBid,
)
from decaying_license.license.events import EVENT_TYPES, NOTIFICATIONS
from decaying_license.license.handlers import Decision, LicenseCommandHandlers
from decaying_license.license.invariants import validate_bid_slot, validate_license_exists
from decaying_license.license.models import Bid, LicenseEntry, LicenseState, Record, Terms
from decaying_license.license.projections import LicenseRegistry
from decaying_license.license.selection import select_best_bid

logger = get_logger(__name__)


class LicenseEngine:
    """
    Decaying license main façade

    Provides a unified API for:
    - Drafting and redrafting terms
    - Bidding on and depositing toward decayed shares
    - Direct allocation and forced resale
    - Patronage collection
    - Read-only queries over terms, records and bids
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: LicensePolicy | None = None,
        time_provider: TimeProvider | None = None,
        ledger: Ledger | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database
            policy: Mechanism parameters (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            ledger: Value custody (a non-strict InMemoryLedger if None, with
                escrow re-seeded from the event log)
            id_factory: Command/event id generation
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or LicensePolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.id_factory = id_factory or default_id_factory

        own_ledger = InMemoryLedger(strict=False) if ledger is None else None
        self.ledger: Ledger = own_ledger or ledger

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.handlers = LicenseCommandHandlers(self.time_provider, self.policy)
        self.bus = InProcessBus()
        self._register_command_handlers()

        # Initialize projections
        self.registry = LicenseRegistry()
        self._rebuild_projections()

        if own_ledger is not None:
            for entry in self.registry.list_all():
                own_ledger.seed_escrow(entry.license_id, entry.escrowed())

    def _rebuild_projections(self) -> None:
        """Rebuild the registry from the event store"""
        events = self.event_store.load_all_events()
        self.registry.apply_events(events)
        active_licenses.set(self.registry.count_licensed())
        logger.info(
            "Registry rebuilt",
            events=len(events),
            licenses=len(self.registry.licenses),
        )

    def _register_command_handlers(self) -> None:
        routes: dict[str, tuple[type[BaseModel], Callable[..., Decision]]] = {
            "DraftTerms": (DraftTerms, self.handlers.handle_draft_terms),
            "SubmitBid": (SubmitBid, self.handlers.handle_submit_bid),
            "AddDeposit": (AddDeposit, self.handlers.handle_add_deposit),
            "AcquireLicense": (AcquireLicense, self.handlers.handle_acquire_license),
            "CollectPatronage": (
                CollectPatronage,
                self.handlers.handle_collect_patronage,
            ),
        }
        for command_type, (model, handle) in routes.items():
            self.bus.register_command_handler(
                command_type, self._command_handler(model, handle)
            )

    def _command_handler(
        self, model: type[BaseModel], handle: Callable[..., Decision]
    ) -> Callable[[Command], list[Event]]:
        def run(command: Command) -> list[Event]:
            decision = handle(
                model.model_validate(command.payload),
                command.command_id,
                command.actor_id,
                self.registry,
            )
            return self._commit(decision)

        return run

    def _commit(self, decision: Decision) -> list[Event]:
        """
        Apply a decision as one atomic unit

        State changes land before any value moves; the event log is written
        last. Any failure restores the registry checkpoint and the ledger
        rolls its balances back, so nothing of the operation survives.
        """
        snapshot = self.registry.checkpoint(decision.license_id)
        try:
            with self.ledger.atomic():
                self.registry.apply_events(decision.events)
                for receipt in decision.receipts:
                    self.ledger.receive(
                        receipt.sender, decision.license_id, receipt.amount
                    )
                for transfer in decision.transfers:
                    self.ledger.pay(
                        decision.license_id, transfer.recipient, transfer.amount
                    )
                return self.event_store.append(
                    decision.stream_id, decision.expected_version, decision.events
                )
        except BaseException:
            self.registry.restore(decision.license_id, snapshot)
            logger.warning(
                "Operation rolled back",
                license_id=decision.license_id,
                events=[event.event_type for event in decision.events],
            )
            raise

    def _execute(self, command_type: str, caller: str, payload: BaseModel) -> list[Event]:
        """Dispatch one operation, then record metrics and notify observers"""
        command = create_command(
            command_id=self.id_factory.generate(),
            command_type=command_type,
            issued_at=self.time_provider.now(),
            actor_id=caller,
            payload=payload.model_dump(mode="json"),
        )
        with correlation_scope(command.command_id):
            events = self.bus.dispatch_command(command)
            self._record_metrics(events)
            self.bus.publish_events(events)
        return events

    def _record_metrics(self, events: list[Event]) -> None:
        for event in events:
            if event.event_type == "LicenseAllocated":
                licenses_allocated_total.labels(kind=event.payload["kind"]).inc()
            elif event.event_type == "BidSubmitted":
                kind = "new" if event.payload["is_new"] else "repeat"
                bids_submitted_total.labels(kind=kind).inc()
            elif event.event_type == "PatronageCollected":
                patronage_collected_value_total.inc(event.payload["amount"])
            elif event.event_type == "LicenseTerminated":
                licenses_terminated_total.inc()
        active_licenses.set(self.registry.count_licensed())

    # Operations

    def draft(
        self,
        license_id: int | None,
        price: int,
        rate: int,
        period: int,
        content: str,
        caller: str,
    ) -> Terms:
        """
        Create terms (license_id None or 0) or redraft existing ones

        On a redraft, zero or empty arguments keep the prior values.

        Returns:
            The terms as stored, including the assigned license_id
        """
        events = self._execute(
            "DraftTerms",
            caller,
            DraftTerms(
                license_id=license_id,
                price=price,
                rate=rate,
                period=period,
                content=content,
            ),
        )
        return self.get_terms(events[0].payload["license_id"])

    def bid(self, license_id: int, price: int, value: int, caller: str) -> Bid:
        """
        Bid on the decayed, unclaimed share of a held license

        Args:
            price: Self-assessed price (at least the terms floor)
            value: Attached escrow; must equal the exact escrow change

        Returns:
            The caller's bid after submission
        """
        events = self._execute(
            "SubmitBid",
            caller,
            SubmitBid(license_id=license_id, price=price, value=value),
        )
        return self.get_bid(license_id, events[0].payload["bid_id"])

    def deposit(
        self,
        license_id: int,
        value: int,
        caller: str,
        bid_id: int | None = None,
    ) -> int:
        """
        Add escrow to a bid (bid_id given) or to the licensee's deposit

        Returns:
            The target's total deposit afterwards
        """
        events = self._execute(
            "AddDeposit",
            caller,
            AddDeposit(license_id=license_id, value=value, bid_id=bid_id),
        )
        return events[0].payload["total_deposit"]

    def license(self, license_id: int, price: int, value: int, caller: str) -> Record:
        """
        Allocate an unlicensed license, or force the resale of a held one

        The caller's value is only drawn when the caller wins; when a funded
        bid wins the forced resale, the caller pays nothing.

        Returns:
            The new record
        """
        self._execute(
            "AcquireLicense",
            caller,
            AcquireLicense(license_id=license_id, price=price, value=value),
        )
        record = self.get_record(license_id)
        if record is None:
            raise InvalidLicense(license_id, "allocation left no record")
        return record

    def collect(self, license_id: int, caller: str) -> int:
        """
        Collect accrued patronage for the licensor

        Returns:
            Value paid to the licensor (the whole deposit when the license
            terminated)
        """
        events = self._execute(
            "CollectPatronage",
            caller,
            CollectPatronage(license_id=license_id),
        )
        return events[0].payload["amount"]

    def subscribe(self, name: str, handler: EventHandler) -> None:
        """
        Observe committed events

        Args:
            name: A notification name (Drafted, BidSubmitted, Deposited,
                Licensed, Collected), an event type, or "*" for everything

        Raises:
            ValueError: If name matches no notification or event type
        """
        event_type = NOTIFICATIONS.get(name, name)
        if event_type != InProcessBus.WILDCARD and event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown notification or event type: {name}")
        self.bus.register_event_handler(event_type, handler)

    # Queries

    def _entry(self, license_id: int) -> LicenseEntry:
        return validate_license_exists(self.registry.get(license_id), license_id)

    def _at(self, at: datetime | None) -> datetime:
        return at or self.time_provider.now()

    def get_terms(self, license_id: int) -> Terms:
        return self._entry(license_id).terms.model_copy()

    def get_record(self, license_id: int) -> Record | None:
        """None means the license is unlicensed"""
        record = self._entry(license_id).record
        return record.model_copy() if record else None

    def get_bid(self, license_id: int, bid_id: int) -> Bid:
        return validate_bid_slot(self._entry(license_id).bids, bid_id).model_copy()

    def get_bids(self, license_id: int) -> list[Bid]:
        return [bid.model_copy() for bid in self._entry(license_id).bids]

    def get_best_bid(self, license_id: int) -> Bid | None:
        """The bid that would win a forced resale now, if any"""
        best = select_best_bid(self._entry(license_id).bids)
        return best.model_copy() if best else None

    def get_decayed_shares(self, license_id: int, at: datetime | None = None) -> int:
        entry = self._entry(license_id)
        return decay.get_decayed_shares(entry.terms, entry.record, self._at(at))

    def patronage_owed(self, license_id: int, at: datetime | None = None) -> int:
        entry = self._entry(license_id)
        return decay.patronage_owed(
            entry.terms, entry.record, self._at(at), basis=self.policy.patronage_basis
        )

    def license_state(self, license_id: int, at: datetime | None = None) -> LicenseState:
        entry = self._entry(license_id)
        return decay.license_state(entry.terms, entry.record, self._at(at), self.policy)

    def list_licenses(self) -> list[LicenseEntry]:
        return [entry.model_copy(deep=True) for entry in self.registry.list_all()]

    def history(self, license_id: int) -> list[Event]:
        """Every event of a license stream in order"""
        self._entry(license_id)
        return self.event_store.load_stream(license_stream_id(license_id))

    def summary(self) -> dict[str, Any]:
        """Counts for status output"""
        return {
            "licenses": len(self.registry.licenses),
            "licensed": self.registry.count_licensed(),
            "bids": sum(len(entry.bids) for entry in self.registry.licenses.values()),
            "escrow": sum(entry.escrowed() for entry in self.registry.licenses.values()),
            "events": self.event_store.count_events(),
        }
