"""
Prometheus metrics collection for the decaying license engine.

Counters and histograms only - exposing them over HTTP is left to the host
process (prometheus_client.start_http_server or any exporter it prefers).
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "dlic_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "dlic_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "dlic_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "dlic_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

commands_processed_total = Counter(
    "dlic_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# License Metrics
# ============================================================================

licenses_allocated_total = Counter(
    "dlic_licenses_allocated_total",
    "Total number of license allocations",
    ["kind"],  # kind: direct, bid
)

licenses_terminated_total = Counter(
    "dlic_licenses_terminated_total",
    "Total number of licenses terminated for unfunded patronage",
)

bids_submitted_total = Counter(
    "dlic_bids_submitted_total",
    "Total number of bids submitted",
    ["kind"],  # kind: new, repeat
)

patronage_collected_value_total = Counter(
    "dlic_patronage_collected_value_total",
    "Total patronage value paid to licensors",
)

transfer_failures_total = Counter(
    "dlic_transfer_failures_total",
    "Total number of outbound transfers the ledger refused",
)

active_licenses = Gauge(
    "dlic_active_licenses",
    "Number of licenses currently held by a licensee",
)
