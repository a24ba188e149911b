"""
Base Event model for event sourcing

Every state change of a license is recorded as an immutable event in its
stream. The registry projection is just these events folded together.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base event envelope - all license events travel in this shape

    Events are immutable, append-only and versioned per stream. The
    combination of stream_id + version gives optimistic locking, while
    command_id keeps a replayed command from writing twice.
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Aggregate identifier, e.g. 'license-1'",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate: 'license'",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'TermsDrafted', 'LicenseAllocated', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="Identity that issued the operation (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "license-1",
                    "stream_type": "license",
                    "event_type": "TermsDrafted",
                    "occurred_at": "1970-01-01T00:00:00Z",
                    "actor_id": "alice",
                    "command_id": "cmd-123",
                    "payload": {"license_id": 1, "price": 1000000, "content": "TEST"},
                    "version": 1,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory function for creating events with all required fields"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
