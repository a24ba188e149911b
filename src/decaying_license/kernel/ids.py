"""
ID generation using UUIDv7 (time-ordered UUIDs)

Events and commands get sortable UUIDv7-like ids. License ids are different:
they are small sequential integers handed out by the registry.
"""

import secrets
import time
from typing import Protocol


class IdFactory(Protocol):
    """Protocol for ID generation strategies"""

    def generate(self) -> str:
        """Generate a new unique ID"""
        ...


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    Format: 8-4-4-4-12 hex characters (36 chars with hyphens)
    First 48 bits: Unix timestamp in milliseconds
    Next 12 bits: Random
    Remaining 62 bits: Random

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_48 = int(time.time() * 1000) & 0xFFFFFFFFFFFF

    rand_12 = secrets.randbits(12)
    rand_62 = secrets.randbits(62)

    # Version 7 (0111) in bits 48-51, variant (10) in bits 64-65
    time_high = (timestamp_48 >> 32) & 0xFFFF
    time_mid = (timestamp_48 >> 16) & 0xFFFF
    time_low = timestamp_48 & 0xFFFF
    version_and_rand = 0x7000 | rand_12
    clock_seq_and_variant = 0x8000 | ((rand_62 >> 48) & 0x3FFF)
    node = rand_62 & 0xFFFFFFFFFFFF

    return (
        f"{time_high:04x}{time_mid:04x}-"
        f"{time_low:04x}-"
        f"{version_and_rand:04x}-"
        f"{clock_seq_and_variant:04x}-"
        f"{node:012x}"
    )


def license_stream_id(license_id: int) -> str:
    """Event stream that holds one license's terms, record and bids"""
    return f"license-{license_id}"


class DefaultIdFactory:
    """Default ID factory using UUIDv7-like generation"""

    def generate(self) -> str:
        return generate_id()


# Global default factory
default_id_factory = DefaultIdFactory()
