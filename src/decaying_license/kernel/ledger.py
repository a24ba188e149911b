"""
Ledger - value custody for license escrow

The engine never holds value itself. Attached value (license payments, bid
escrow, deposits) moves from a caller's wallet into the license's escrow
account, and every payout leaves that escrow toward an external identity.
The Ledger owns those balances and is the only place a transfer can fail.

Fun fact: Double-entry bookkeeping was first written down by Luca Pacioli in
1494 - every unit that leaves one account arrives in another, which is exactly
the conservation law escrow tests check.
"""

import copy
from collections import defaultdict
from contextlib import AbstractContextManager, contextmanager
from typing import Iterator, Protocol

from decaying_license.kernel.errors import (
    InsufficientFunds,
    InvalidAmount,
    TransferFailed,
)
from decaying_license.kernel.logging import get_logger
from decaying_license.kernel.metrics import transfer_failures_total

logger = get_logger(__name__)


class Ledger(Protocol):
    """Protocol the engine consumes for value movement"""

    def balance_of(self, identity: str) -> int:
        """Wallet balance of an external identity"""
        ...

    def escrow_of(self, license_id: int) -> int:
        """Value held in escrow for a license"""
        ...

    def receive(self, sender: str, license_id: int, amount: int) -> None:
        """Draw attached value from sender into the license escrow"""
        ...

    def pay(self, license_id: int, recipient: str, amount: int) -> None:
        """Pay from license escrow to an external identity (may raise TransferFailed)"""
        ...

    def atomic(self) -> AbstractContextManager[None]:
        """Context manager: every movement inside is undone if the block raises"""
        ...


class InMemoryLedger:
    """
    Dictionary-backed ledger

    Args:
        strict: When True a wallet cannot attach more than it holds. When
            False wallets may go negative - used where external wallets are
            not modelled (the CLI) and only net flows matter.
    """

    def __init__(self, strict: bool = True) -> None:
        self.strict = strict
        self._wallets: defaultdict[str, int] = defaultdict(int)
        self._escrow: defaultdict[int, int] = defaultdict(int)
        self._rejecting: set[str] = set()
        self._depth = 0

    # Wallets

    def credit(self, identity: str, amount: int) -> None:
        """Fund an external wallet (outside any license operation)"""
        if amount < 0:
            raise InvalidAmount(amount, 0, f"Cannot credit negative amount {amount}")
        self._wallets[identity] += amount

    def balance_of(self, identity: str) -> int:
        return self._wallets.get(identity, 0)

    def escrow_of(self, license_id: int) -> int:
        return self._escrow.get(license_id, 0)

    def total_escrow(self) -> int:
        return sum(self._escrow.values())

    def seed_escrow(self, license_id: int, amount: int) -> None:
        """
        Set a license escrow directly

        Used when a process restarts: the event log says how much each
        license holds, but this ledger keeps nothing across runs.
        """
        if amount < 0:
            raise InvalidAmount(amount, 0, f"Cannot seed negative escrow {amount}")
        self._escrow[license_id] = amount

    # Failure injection

    def reject(self, identity: str) -> None:
        """Make every payment to identity fail (a recipient refusing value)"""
        self._rejecting.add(identity)

    def accept(self, identity: str) -> None:
        """Undo reject()"""
        self._rejecting.discard(identity)

    # Movements

    def receive(self, sender: str, license_id: int, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount, 0, f"Cannot attach negative value {amount}")
        if amount == 0:
            return
        balance = self.balance_of(sender)
        if self.strict and balance < amount:
            raise InsufficientFunds(sender, amount, balance)
        self._wallets[sender] -= amount
        self._escrow[license_id] += amount

    def pay(self, license_id: int, recipient: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount, 0, f"Cannot pay negative amount {amount}")
        if amount == 0:
            return
        if recipient in self._rejecting:
            transfer_failures_total.inc()
            raise TransferFailed(recipient, amount, "recipient rejected the transfer")
        if self._escrow.get(license_id, 0) < amount:
            transfer_failures_total.inc()
            raise TransferFailed(
                recipient,
                amount,
                f"escrow of license {license_id} holds only {self.escrow_of(license_id)}",
            )
        self._escrow[license_id] -= amount
        self._wallets[recipient] += amount

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Checkpoint balances and restore them if the block raises

        Nested blocks join the outermost one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        wallets = copy.copy(self._wallets)
        escrow = copy.copy(self._escrow)
        self._depth = 1
        try:
            yield
        except BaseException:
            self._wallets = wallets
            self._escrow = escrow
            logger.warning("Ledger rolled back")
            raise
        finally:
            self._depth = 0
