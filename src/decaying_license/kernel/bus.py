"""
In-process Command/Event Bus

Routes engine commands to their handler and fans committed events out to
observers (Drafted, BidSubmitted, Deposited, Licensed, Collected
notifications). Observers run after the operation has committed, so a
misbehaving observer can never undo or corrupt a license.
"""

import time
from collections import defaultdict
from typing import Callable

from decaying_license.kernel.commands import Command
from decaying_license.kernel.events import Event
from decaying_license.kernel.logging import LogOperation, get_logger
from decaying_license.kernel.metrics import (
    command_duration_seconds,
    commands_processed_total,
)

logger = get_logger(__name__)


CommandHandler = Callable[[Command], list[Event]]
EventHandler = Callable[[Event], None]


class InProcessBus:
    """
    Simple synchronous in-process bus

    One handler per command type; any number of observers per event type.
    A "*" subscription receives every event.
    """

    WILDCARD = "*"

    def __init__(self) -> None:
        self._command_handlers: dict[str, CommandHandler] = {}
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)
        logger.debug("InProcessBus initialized")

    def register_command_handler(
        self, command_type: str, handler: CommandHandler
    ) -> None:
        """
        Register a command handler

        Raises:
            ValueError: If handler already registered for this command type
        """
        if command_type in self._command_handlers:
            logger.error(
                "Command handler registration failed - already exists",
                command_type=command_type,
            )
            raise ValueError(
                f"Command handler already registered for {command_type}. "
                "Each command type can have only one handler."
            )
        self._command_handlers[command_type] = handler
        logger.debug("Command handler registered", command_type=command_type)

    def register_event_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe an observer to an event type ("*" for every event)

        Args:
            event_type: Event type to observe (e.g., "LicenseAllocated")
            handler: Callable receiving the committed event
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def dispatch_command(self, command: Command) -> list[Event]:
        """
        Dispatch a command to its handler

        Returns:
            Events committed by the command handler

        Raises:
            ValueError: If no handler registered for command type
            LicensingError: Whatever the handler raised, unchanged
        """
        handler = self._command_handlers.get(command.command_type)
        if not handler:
            logger.error(
                "No handler registered for command type",
                command_type=command.command_type,
                command_id=command.command_id,
            )
            raise ValueError(
                f"No handler registered for command type '{command.command_type}'. "
                f"Available handlers: {list(self._command_handlers.keys())}"
            )

        start = time.perf_counter()
        with LogOperation(
            logger,
            "dispatch_command",
            command_type=command.command_type,
            command_id=command.command_id,
            actor_id=command.actor_id,
        ):
            try:
                events = handler(command)
            except Exception:
                commands_processed_total.labels(
                    command_type=command.command_type, status="failure"
                ).inc()
                raise
            finally:
                command_duration_seconds.labels(
                    command_type=command.command_type
                ).observe(time.perf_counter() - start)

            commands_processed_total.labels(
                command_type=command.command_type, status="success"
            ).inc()
            logger.debug(
                "Command processed",
                command_type=command.command_type,
                events_emitted=len(events),
            )
            return events

    def publish_event(self, event: Event) -> None:
        """
        Publish an event to its observers and to wildcard observers

        Observers are called in registration order. A failing observer is
        logged and skipped - the event is already committed.
        """
        handlers = [
            *self._event_handlers.get(event.event_type, []),
            *self._event_handlers.get(self.WILDCARD, []),
        ]
        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        """Publish multiple events in order"""
        for event in events:
            self.publish_event(event)

    def get_command_types(self) -> list[str]:
        """List command types that have handlers"""
        return list(self._command_handlers.keys())

    def get_event_types(self) -> list[str]:
        """List event types with at least one observer"""
        return list(self._event_handlers.keys())

    def clear(self) -> None:
        """Clear all registered handlers (useful for testing)"""
        self._command_handlers.clear()
        self._event_handlers.clear()
        logger.debug("Bus cleared")
