"""
Custom exceptions for the decaying license engine

Every failure aborts the whole operation - the engine restores its checkpoint
and the ledger rolls back, so an exception here always means "nothing happened".

Fun fact: Arnold Harberger proposed self-assessed property taxes in 1962 for
Latin American land reform. The idea waited half a century for a ledger strict
enough to enforce it.
"""


class LicensingError(Exception):
    """Base exception for all decaying license errors"""

    pass


# Event store errors


class EventStoreError(LicensingError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when attempting to execute a command with duplicate command_id

    The store normally answers a replayed command with its original events;
    this is only raised when those events cannot be found after a race.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Two writers raced on the same license stream - reload and re-issue.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# License operation errors


class LicenseOperationError(LicensingError):
    """Base class for errors raised by license operations"""

    pass


class Unauthorized(LicenseOperationError):
    """Caller lacks the required relationship (licensor, licensee, bidder)"""

    def __init__(self, caller: str, role: str, license_id: int) -> None:
        self.caller = caller
        self.role = role
        self.license_id = license_id
        super().__init__(f"{caller} is not the {role} of license {license_id}")


class InvalidLicense(LicenseOperationError):
    """License has no terms, or terms would be drafted without price/content"""

    def __init__(self, license_id: int | None, reason: str = "") -> None:
        self.license_id = license_id
        self.reason = reason
        super().__init__(
            f"Invalid license {license_id}" + (f": {reason}" if reason else "")
        )


class InvalidTerms(LicenseOperationError):
    """Malformed or currently unchangeable rate/period at draft time"""

    def __init__(self, rate: int, period: int, reason: str = "") -> None:
        self.rate = rate
        self.period = period
        self.reason = reason or "period must be positive and rate must lie within 0..period"
        super().__init__(f"Invalid terms: rate {rate} with period {period} - {self.reason}")


class InvalidPrice(LicenseOperationError):
    """Proposed price below the terms floor"""

    def __init__(self, price: int, floor: int) -> None:
        self.price = price
        self.floor = floor
        super().__init__(f"Price {price} is below the license floor {floor}")


class InvalidAmount(LicenseOperationError):
    """Attached value does not match the payment the operation requires"""

    def __init__(self, amount: int, required: int, message: str = "") -> None:
        self.amount = amount
        self.required = required
        super().__init__(
            message or f"Attached value {amount} does not cover required {required}"
        )


class InvalidBid(LicenseOperationError):
    """Bid economics violated or bid slot missing"""

    pass


class InvalidBidAmount(InvalidBid):
    """Attached value does not match the escrow the bid requires"""

    def __init__(self, amount: int, required: int, message: str = "") -> None:
        self.amount = amount
        self.required = required
        super().__init__(
            message or f"Bid value {amount} does not match required escrow {required}"
        )


class TooManyBids(LicenseOperationError):
    """Bid table is at capacity"""

    def __init__(self, license_id: int, max_bids: int) -> None:
        self.license_id = license_id
        self.max_bids = max_bids
        super().__init__(f"License {license_id} already holds {max_bids} bids")


class LicenseInUse(LicenseOperationError):
    """Forced resale attempted before eligibility"""

    def __init__(self, license_id: int, reason: str) -> None:
        self.license_id = license_id
        self.reason = reason
        super().__init__(f"License {license_id} is in use: {reason}")


class ReadyToLicense(LicenseOperationError):
    """Bidding or depositing attempted when only direct allocation applies"""

    def __init__(self, license_id: int) -> None:
        self.license_id = license_id
        super().__init__(
            f"License {license_id} is open for direct allocation - "
            "bids and deposits are closed"
        )


class NothingToCollect(LicenseOperationError):
    """Patronage owed is zero"""

    def __init__(self, license_id: int) -> None:
        self.license_id = license_id
        super().__init__(f"No patronage owed on license {license_id}")


class TransferFailed(LicenseOperationError):
    """Outbound value movement to an external identity did not complete"""

    def __init__(self, recipient: str, amount: int, reason: str = "") -> None:
        self.recipient = recipient
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Transfer of {amount} to {recipient} failed"
            + (f": {reason}" if reason else "")
        )


class InsufficientFunds(LicenseOperationError):
    """Caller's wallet cannot cover the value attached to an operation"""

    def __init__(self, identity: str, amount: int, balance: int) -> None:
        self.identity = identity
        self.amount = amount
        self.balance = balance
        super().__init__(
            f"{identity} cannot attach {amount} (balance {balance})"
        )
