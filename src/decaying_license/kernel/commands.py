"""
Base Command model for CQRS pattern

Commands are intentions: "draft these terms", "bid this price". The engine
wraps each public operation in a Command envelope and routes it through the
bus, where a handler decides which events and transfers it produces.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Command(BaseModel):
    """
    Base command envelope - every engine operation is dispatched as one

    The command_id is the idempotency key: it is stamped on every event the
    command produces, so the event store can recognise a replay.
    """

    command_id: str = Field(
        ...,
        description="Unique command identifier (idempotency key)",
    )

    command_type: str = Field(
        ...,
        description="Type of command: 'DraftTerms', 'SubmitBid', 'AcquireLicense', etc.",
    )

    actor_id: str | None = Field(
        default=None,
        description="Identity issuing this command (None for system commands)",
    )

    issued_at: datetime = Field(
        ...,
        description="UTC timestamp when command was issued",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Command-specific parameters (must be JSON-serializable)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "command_id": "cmd-123",
                    "command_type": "SubmitBid",
                    "actor_id": "carol",
                    "issued_at": "1970-01-01T02:46:40Z",
                    "payload": {"license_id": 1, "price": 1500000, "value": 49500},
                }
            ]
        }
    }


def create_command(
    *,
    command_id: str,
    command_type: str,
    issued_at: datetime,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Command:
    """Factory function for creating commands with all required fields"""
    return Command(
        command_id=command_id,
        command_type=command_type,
        actor_id=actor_id,
        issued_at=issued_at,
        payload=payload or {},
    )
