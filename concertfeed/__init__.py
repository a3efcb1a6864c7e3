"""Concert feed: provider event ingestion and artist concert lookup."""

__version__ = "1.0.0"
