"""
Decaying License CLI

Command-line interface for the decaying license engine.
Every command replays the event log from the database, runs one operation
and exits. Wallets are not modelled, so attached value is taken on trust.

Usage:
    dlic init --db licenses.db
    dlic draft --as alice --price 1000000 --rate 2 --period 604800 --content TEST
    dlic license --id 1 --price 1000000 --value 1100000 --as bob --at 0
    dlic bid --id 1 --price 1500000 --value 49500 --as carol --at 10000
    dlic collect --id 1 --as alice --at 10000
    dlic show --id 1
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from decaying_license.engine import LicenseEngine
from decaying_license.kernel.errors import LicensingError
from decaying_license.kernel.logging import configure_logging
from decaying_license.kernel.time import (
    FixedTimeProvider,
    RealTimeProvider,
    TimeProvider,
    from_epoch_seconds,
)

app = typer.Typer(
    name="dlic",
    help="Decaying License - Harberger-tax style license allocation",
    add_completion=False,
)

# Global state
DEFAULT_DB = Path(".dlic.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
AtOption = Annotated[
    Optional[int],
    typer.Option("--at", help="Operation time in epoch seconds (default: now)"),
]
CallerOption = Annotated[str, typer.Option("--as", help="Caller identity")]
IdOption = Annotated[int, typer.Option("--id", help="License ID")]


@app.callback()
def main_callback(
    log_level: Annotated[
        str, typer.Option("--log-level", help="Logging level")
    ] = "WARNING",
    json_logs: Annotated[
        bool, typer.Option("--json-logs", help="Emit JSON logs on stderr")
    ] = False,
) -> None:
    """Configure logging to stderr (stdout stays parseable)"""
    configure_logging(json_output=json_logs, log_level=log_level)


def get_engine(db_path: Optional[Path] = None, at: Optional[int] = None) -> LicenseEngine:
    """Get engine instance pinned to --at when given"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'dlic init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    time_provider: TimeProvider = (
        RealTimeProvider() if at is None else FixedTimeProvider(from_epoch_seconds(at))
    )
    return LicenseEngine(str(db), time_provider=time_provider)


@contextmanager
def domain_errors() -> Iterator[None]:
    """Turn rejected operations into 'Error: ...' and exit status 1"""
    try:
        yield
    except (LicensingError, ValidationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new license database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    LicenseEngine(str(db))
    typer.echo(f"✓ Initialized license database: {db}")


# Operations


@app.command()
def draft(
    caller: CallerOption,
    license_id: Annotated[
        int, typer.Option("--id", help="License ID to redraft (0 = new)")
    ] = 0,
    price: Annotated[int, typer.Option("--price", help="Price floor")] = 0,
    rate: Annotated[int, typer.Option("--rate", help="Decay rate (bps per period)")] = 0,
    period: Annotated[int, typer.Option("--period", help="Decay period in seconds")] = 0,
    content: Annotated[str, typer.Option("--content", help="Content reference")] = "",
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Draft new terms or redraft existing ones (zero/empty fields keep prior values)"""
    engine = get_engine(db, at)
    with domain_errors():
        terms = engine.draft(license_id, price, rate, period, content, caller=caller)

    typer.echo(f"✓ Drafted license: {terms.license_id}")
    typer.echo(f"  Price: {terms.price}")
    typer.echo(f"  Rate: {terms.rate} / {terms.period}s")
    typer.echo(f"  Content: {terms.content}")


@app.command()
def bid(
    license_id: IdOption,
    price: Annotated[int, typer.Option("--price", help="Self-assessed price")],
    caller: CallerOption,
    value: Annotated[int, typer.Option("--value", help="Attached escrow")] = 0,
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Bid on the decayed share of a license"""
    engine = get_engine(db, at)
    with domain_errors():
        placed = engine.bid(license_id, price, value, caller=caller)

    typer.echo(f"✓ Bid {placed.bid_id} on license {license_id}")
    typer.echo(f"  Shares: {placed.shares} bps")
    typer.echo(f"  Price: {placed.price}")
    typer.echo(f"  Deposit: {placed.deposit}")


@app.command()
def deposit(
    license_id: IdOption,
    value: Annotated[int, typer.Option("--value", help="Value to deposit")],
    caller: CallerOption,
    bid_id: Annotated[
        Optional[int],
        typer.Option("--bid", help="Bid slot (omit to top up the licensee deposit)"),
    ] = None,
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Add escrow to a bid or to the licensee's deposit"""
    engine = get_engine(db, at)
    with domain_errors():
        total = engine.deposit(license_id, value, caller=caller, bid_id=bid_id)

    target = f"bid {bid_id}" if bid_id is not None else "licensee"
    typer.echo(f"✓ Deposited {value} to {target} of license {license_id}")
    typer.echo(f"  Total deposit: {total}")


@app.command("license")
def license_(
    license_id: IdOption,
    price: Annotated[int, typer.Option("--price", help="Price offered")],
    caller: CallerOption,
    value: Annotated[int, typer.Option("--value", help="Attached value")] = 0,
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Acquire an unlicensed license or force the resale of a held one"""
    engine = get_engine(db, at)
    with domain_errors():
        record = engine.license(license_id, price, value, caller=caller)

    typer.echo(f"✓ License {license_id} allocated to {record.licensee}")
    typer.echo(f"  Price: {record.price}")
    typer.echo(f"  Deposit: {record.deposit}")


@app.command()
def collect(
    license_id: IdOption,
    caller: CallerOption,
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Collect accrued patronage"""
    engine = get_engine(db, at)
    with domain_errors():
        amount = engine.collect(license_id, caller=caller)
        record = engine.get_record(license_id)

    typer.echo(f"✓ Collected {amount} from license {license_id}")
    if record is None:
        typer.echo("  License terminated: deposit exhausted")
    else:
        typer.echo(f"  Remaining deposit: {record.deposit}")


# Queries


@app.command()
def show(
    license_id: IdOption,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: DbOption = None,
    at: AtOption = None,
) -> None:
    """Show terms, record, bids and accruals of a license"""
    engine = get_engine(db, at)
    with domain_errors():
        terms = engine.get_terms(license_id)
        record = engine.get_record(license_id)
        bids = engine.get_bids(license_id)
        state = engine.license_state(license_id)
        decayed = engine.get_decayed_shares(license_id)
        owed = engine.patronage_owed(license_id)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "terms": terms.model_dump(mode="json"),
                    "record": record.model_dump(mode="json") if record else None,
                    "bids": [b.model_dump(mode="json") for b in bids],
                    "state": state.value,
                    "decayed_shares": decayed,
                    "patronage_owed": owed,
                },
                indent=2,
            )
        )
        return

    typer.echo(f"License {terms.license_id}: {terms.content}")
    typer.echo(f"  Licensor: {terms.licensor}")
    typer.echo(f"  Floor: {terms.price}  Rate: {terms.rate} / {terms.period}s")
    typer.echo(f"  State: {state.value}")
    if record is None:
        typer.echo("  Unlicensed")
        return
    typer.echo(f"  Licensee: {record.licensee}")
    typer.echo(f"  Price: {record.price}  Deposit: {record.deposit}")
    typer.echo(f"  Decayed: {decayed} bps  Claimed: {record.bidder_shares} bps")
    typer.echo(f"  Patronage owed: {owed}")
    for b in bids:
        typer.echo(
            f"  Bid {b.bid_id}: {b.bidder} price={b.price} "
            f"shares={b.shares} deposit={b.deposit}"
        )


@app.command("list")
def list_licenses(db: DbOption = None) -> None:
    """List all licenses"""
    engine = get_engine(db)
    entries = engine.list_licenses()

    if not entries:
        typer.echo("No licenses")
        return

    typer.echo(f"Licenses ({len(entries)}):")
    for entry in entries:
        holder = entry.record.licensee if entry.record else "-"
        typer.echo(
            f"  {entry.license_id}: {entry.terms.content} "
            f"(floor {entry.terms.price}, holder {holder}, bids {len(entry.bids)})"
        )


@app.command()
def history(
    license_id: IdOption,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: DbOption = None,
) -> None:
    """Show the event history of a license"""
    engine = get_engine(db)
    with domain_errors():
        events = engine.history(license_id)

    if json_output:
        typer.echo(
            json.dumps([e.model_dump(mode="json") for e in events], indent=2, default=str)
        )
        return

    typer.echo(f"History of license {license_id} ({len(events)} events):")
    for event in events:
        typer.echo(
            f"  v{event.version} {event.occurred_at.isoformat()} "
            f"{event.event_type} by {event.actor_id}"
        )


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
