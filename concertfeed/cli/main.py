"""Concert feed CLI.

Usage:
    concertfeed sync
    concertfeed status --source TICKETMASTER
    concertfeed concerts -a "Taylor Swift" -a "Phoebe Bridgers" --lat 40.71 --lng -74.0 -r 50
    concertfeed adapters
"""

import asyncio
from datetime import date, datetime
from typing import Optional

import typer
from dateutil.relativedelta import relativedelta
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from concertfeed.adapters import get_adapter, list_adapters
from concertfeed.config import get_settings
from concertfeed.core.exceptions import ConcertFeedError
from concertfeed.logging import setup_logging

app = typer.Typer(
    name="concertfeed",
    help="Concert feed ingestion and artist concert lookup",
    add_completion=False,
)
console = Console()


def _parse_date(value: str | None, option: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"{option} must be YYYY-MM-DD, got {value!r}")


def _format_when(day: date, moment: datetime | None) -> str:
    return moment.strftime("%Y-%m-%d %H:%M") if moment else day.isoformat()


def _init() -> None:
    try:
        settings = get_settings()
    except ConcertFeedError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
    setup_logging(settings.log_level, settings.log_format, settings.log_file)


@app.command()
def sync():
    """Sync every registered source for every configured country.

    Examples:
        concertfeed sync
        FEED_SYNC_COUNTRIES=US,CA concertfeed sync
    """
    from concertfeed.core.sync import run_full_sync

    _init()
    settings = get_settings()

    console.print()
    console.print("[bold blue]CONCERT FEED SYNC[/bold blue]")
    console.print(f"Sources: {', '.join(list_adapters())}")
    console.print(f"Countries: {', '.join(settings.countries)}")
    console.print()

    result = asyncio.run(run_full_sync(settings))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Country")
    table.add_column("Ingested", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Pages skipped", justify="right")
    table.add_column("Pruned", justify="right")
    table.add_column("Status")

    for pair in result.pairs:
        if pair.status == "success":
            status = "[green]OK[/green]"
        elif pair.status == "skipped":
            status = "[yellow]BUSY[/yellow]"
        else:
            status = f"[red]ERR[/red] {(pair.error or '')[:40]}"

        table.add_row(
            pair.source,
            pair.country,
            str(pair.events_ingested),
            str(pair.events_skipped),
            str(pair.pages_skipped),
            str(pair.events_pruned),
            status,
        )

    console.print(table)
    console.print()
    console.print(
        f"[bold]TOTALS:[/bold] Ingested: {result.events_ingested}, Skipped: {result.events_skipped}"
    )

    if result.errors:
        raise typer.Exit(1)


@app.command()
def status(
    source: Optional[str] = typer.Option(
        None,
        "--source", "-s",
        help="Only show this source (e.g. TICKETMASTER)",
    ),
):
    """Show the last sync outcome per source/country pair."""
    from concertfeed.core.catalog_store import get_catalog_store

    _init()
    rows = asyncio.run(get_catalog_store().list_sync_status(source.upper() if source else None))

    if not rows:
        console.print("[yellow]No sync has been recorded yet[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Country")
    table.add_column("Status")
    table.add_column("Last success")
    table.add_column("Ingested", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Error")

    for row in rows:
        table.add_row(
            row["source"],
            row["country"],
            row["status"],
            row.get("last_success_at") or "-",
            str(row.get("events_ingested") or 0),
            str(row.get("events_skipped") or 0),
            (row.get("error_message") or "")[:60],
        )

    console.print(table)


@app.command()
def concerts(
    artist: list[str] = typer.Option(
        ...,
        "--artist", "-a",
        help="Artist name (repeat for several artists)",
    ),
    lat: float = typer.Option(..., "--lat", help="Latitude of the search center"),
    lng: float = typer.Option(..., "--lng", help="Longitude of the search center"),
    radius_km: float = typer.Option(50.0, "--radius", "-r", help="Search radius in km"),
    start: Optional[str] = typer.Option(None, "--from", help="First date (YYYY-MM-DD), default today"),
    end: Optional[str] = typer.Option(None, "--to", help="Last date (YYYY-MM-DD), default +6 months"),
    limit: int = typer.Option(25, "--limit", "-l", help="Max concerts to show"),
):
    """Find upcoming concerts for artists near a location.

    Examples:
        concertfeed concerts -a "Taylor Swift" --lat 40.71 --lng -74.0
        concertfeed concerts -a Muse -a Radiohead --lat 51.5 --lng -0.12 -r 100 --to 2027-06-30
    """
    from concertfeed.core.geo_matcher import ConcertQuery, GeoMatcher

    start_date = _parse_date(start, "--from") or date.today()
    end_date = _parse_date(end, "--to") or start_date + relativedelta(months=6)

    try:
        query = ConcertQuery(
            artists=artist,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid query:[/red] {e.errors()[0]['msg']}")
        raise typer.Exit(2)

    _init()
    response = asyncio.run(GeoMatcher().find_concerts(query))

    console.print()
    console.print(
        f"Artists matched: {response.artists_matched}/{response.artists_queried}, "
        f"concerts within {radius_km:g} km: {response.events_found}"
    )

    if not response.events:
        console.print(f"[yellow]{response.message}[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("Event")
    table.add_column("Artists")
    table.add_column("Venue")
    table.add_column("City")
    table.add_column("km", justify="right")

    for event in response.events:
        artists = ", ".join(
            f"[bold]{a.name}[/bold]" if a.matched else a.name for a in event.artists
        )
        table.add_row(
            _format_when(event.start_date, event.start_date_time),
            event.name[:40],
            artists,
            event.venue.name[:30],
            event.venue.city or "",
            f"{event.distance_km:.1f}",
        )

    console.print(table)


@app.command()
def adapters():
    """List registered feed adapters."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Class")
    table.add_column("Page size", justify="right")
    table.add_column("Max pages", justify="right")

    for source_id in list_adapters():
        adapter_class = get_adapter(source_id)
        policy = adapter_class.pagination
        table.add_row(
            source_id,
            adapter_class.__name__,
            str(policy.page_size),
            str(policy.max_pages),
        )

    console.print(table)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
