"""Resolve free-text artist names to catalog attractions."""

from concertfeed.core.catalog_model import ResolvedArtist
from concertfeed.core.catalog_store import CatalogStore, get_catalog_store
from concertfeed.logging import get_logger
from concertfeed.utils.text import normalize_names

logger = get_logger(__name__)


class ArtistResolver:
    """Exact-name and alias lookup against stored attractions.

    No fuzzy matching: a name matches when its lowercased, trimmed form equals
    an attraction's normalized name or one of its normalized aliases.
    """

    def __init__(self, store: CatalogStore | None = None) -> None:
        self.store = store or get_catalog_store()

    async def resolve_artist_names(self, names: list[str]) -> list[ResolvedArtist]:
        """Resolve artist names to attractions.

        Exact name matches come first, then alias matches; an attraction
        matched more than once is returned once, as first seen.

        Args:
            names: Artist names as supplied by the caller

        Returns:
            Matched attractions (empty when nothing matches)
        """
        normalized = normalize_names(names)
        if not normalized:
            return []

        exact = await self.store.find_attractions_by_names(normalized)
        by_alias = await self.store.find_attractions_by_aliases(normalized)

        unique: dict[str, ResolvedArtist] = {}
        for row in [*exact, *by_alias]:
            if row["id"] in unique:
                continue
            unique[row["id"]] = ResolvedArtist(
                id=row["id"],
                name=row["name"],
                source=row["source"],
                source_id=row["source_id"],
            )

        logger.debug(
            "artists_resolved",
            requested=len(normalized),
            exact=len(exact),
            alias=len(by_alias),
            matched=len(unique),
        )
        return list(unique.values())

    async def resolve_artist_name(self, name: str) -> ResolvedArtist | None:
        """Resolve a single artist name, or None if not found."""
        results = await self.resolve_artist_names([name])
        return results[0] if results else None
