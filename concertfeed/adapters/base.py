"""Capability interface shared by all feed adapters."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from concertfeed.core.catalog_model import (
    EventSource,
    NormalizedAttraction,
    NormalizedEvent,
    NormalizedVenue,
)

if TYPE_CHECKING:
    from concertfeed.config.settings import Settings


@dataclass(frozen=True)
class PaginationPolicy:
    """Provider paging limits.

    Providers cap deep paging at ``page * page_size < max_results``; with the
    Ticketmaster defaults that allows page indexes 0..9.
    """

    page_size: int = 100
    max_results: int = 1000

    @property
    def max_pages(self) -> int:
        """Number of page indexes the provider will serve for one query."""
        return max(1, self.max_results // self.page_size)

    def allows(self, page: int) -> bool:
        return page < self.max_pages


@dataclass
class PageInfo:
    """Page descriptor reported by the provider."""

    number: int
    size: int
    total_pages: int
    total_elements: int


@dataclass
class RawFeedPage:
    """One raw page of provider events."""

    events: list[dict[str, Any]] = field(default_factory=list)
    page: PageInfo = field(default_factory=lambda: PageInfo(0, 0, 0, 0))


@runtime_checkable
class FeedAdapter(Protocol):
    """What the sync orchestrator needs from a provider.

    Implementations are plain classes registered with
    ``@register_adapter``; they do not inherit from a common base.
    """

    source: EventSource
    pagination: PaginationPolicy

    @classmethod
    def from_settings(cls, settings: "Settings") -> "FeedAdapter":
        ...

    async def fetch_feed(
        self,
        country: str,
        page: int,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> RawFeedPage:
        """Fetch one page of events for a country and optional date window.

        Raises:
            TransientFetchError: network failure, timeout, 429 or 5xx
            FetchError: any other failure to obtain a usable page
        """
        ...

    def normalize_event(self, raw: dict[str, Any]) -> NormalizedEvent:
        """Raises NormalizationError when the record cannot be ingested."""
        ...

    def normalize_attraction(self, raw: dict[str, Any]) -> NormalizedAttraction | None:
        """Returns None for records without a usable name."""
        ...

    def normalize_venue(self, raw: dict[str, Any]) -> NormalizedVenue:
        ...

    async def aclose(self) -> None:
        ...
