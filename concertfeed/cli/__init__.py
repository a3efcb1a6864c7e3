"""Command-line interface for the concert feed service.

Usage:
    python -m concertfeed.cli [command] [options]

Commands:
    sync        Sync every source and country into the catalog
    status      Show per-pair sync status
    concerts    Find concerts for artists near a location
    adapters    List registered feed adapters
"""

from concertfeed.cli.main import app

__all__ = ["app"]
