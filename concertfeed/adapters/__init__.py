"""Adapters for event feed providers (one per provider)."""

from typing import TYPE_CHECKING, Callable

from concertfeed.core.exceptions import AdapterNotFoundError

if TYPE_CHECKING:
    from concertfeed.adapters.base import FeedAdapter
    from concertfeed.config.settings import Settings

# Registry of all available adapters, keyed by EventSource value
ADAPTER_REGISTRY: dict[str, type["FeedAdapter"]] = {}

# Flag to prevent circular imports during loading
_adapters_loaded = False


def register_adapter(source_id: str) -> Callable[[type["FeedAdapter"]], type["FeedAdapter"]]:
    """Decorator to register an adapter in the registry.

    Usage:
        @register_adapter("TICKETMASTER")
        class TicketmasterAdapter:
            ...
    """

    def decorator(adapter_class: type["FeedAdapter"]) -> type["FeedAdapter"]:
        ADAPTER_REGISTRY[source_id] = adapter_class
        return adapter_class

    return decorator


def get_adapter(source_id: str) -> type["FeedAdapter"] | None:
    """Get an adapter class by its source_id."""
    _ensure_adapters_loaded()
    return ADAPTER_REGISTRY.get(source_id)


def list_adapters() -> list[str]:
    """List all registered adapter source_ids."""
    _ensure_adapters_loaded()
    return list(ADAPTER_REGISTRY.keys())


def build_adapter(source_id: str, settings: "Settings") -> "FeedAdapter":
    """Instantiate the adapter registered for ``source_id``.

    Raises:
        AdapterNotFoundError: if nothing is registered under that id
    """
    adapter_class = get_adapter(source_id)
    if adapter_class is None:
        raise AdapterNotFoundError(source_id, available=list_adapters())
    return adapter_class.from_settings(settings)


def _ensure_adapters_loaded() -> None:
    """Ensure all adapter modules are loaded."""
    global _adapters_loaded
    if _adapters_loaded:
        return
    _adapters_loaded = True

    # Import adapter modules to trigger registration
    from concertfeed.adapters import ticketmaster_adapter  # noqa: F401
