"""
Kernel - event sourcing and value custody infrastructure

The kernel provides the machinery the license domain builds upon: an
append-only event log, a command/notification bus, injectable time, the
Ledger collaborator, and the ambient logging/metrics stack.
"""

from decaying_license.kernel.commands import Command
from decaying_license.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    LicenseOperationError,
    LicensingError,
    StreamVersionConflict,
)
from decaying_license.kernel.events import Event
from decaying_license.kernel.ids import IdFactory, generate_id
from decaying_license.kernel.ledger import InMemoryLedger, Ledger
from decaying_license.kernel.policy import BPS, LicensePolicy
from decaying_license.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "IdFactory",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & Commands
    "Event",
    "Command",
    # Value custody
    "Ledger",
    "InMemoryLedger",
    # Policy
    "BPS",
    "LicensePolicy",
    # Errors
    "LicensingError",
    "LicenseOperationError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
]
