"""Unified exception hierarchy for the concertfeed service.

Exception categories:
- Configuration errors (invalid retention window, schedule, countries)
- Fetch errors (HTTP, timeout, rate limiting; transient ones are retried)
- Normalization errors (malformed or incomplete provider records)
- Storage errors (Supabase unavailable, single record rejected)
- Sync errors (concurrent re-entry of the same source/country pair)
"""


class ConcertFeedError(Exception):
    """Base exception for all concertfeed errors."""

    def __init__(self, message: str, source: str | None = None, details: dict | None = None):
        self.source = source
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.source:
            msg = f"[{self.source}] {msg}"
        return msg


# ============================================================
# CONFIGURATION ERRORS
# ============================================================


class ConfigurationError(ConcertFeedError):
    """Base class for configuration-related errors."""
    pass


class AdapterNotFoundError(ConfigurationError):
    """Raised when no adapter is registered for a source."""

    def __init__(self, slug: str, available: list[str] | None = None):
        self.slug = slug
        self.available = available
        msg = "No adapter registered for source"
        if available:
            msg += f". Available: {', '.join(available)}"
        super().__init__(msg, source=slug)


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        details = {"field": field} if field else {}
        super().__init__(message, details=details)


# ============================================================
# FETCH ERRORS
# ============================================================


class FetchError(ConcertFeedError):
    """A feed page could not be fetched. Not retried unless transient."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        source: str | None = None,
    ):
        self.status_code = status_code
        self.url = url
        details = {}
        if status_code:
            details["status_code"] = status_code
        if url:
            details["url"] = url
        super().__init__(message, source=source, details=details)


class TransientFetchError(FetchError):
    """Network failure, timeout, rate limit or 5xx: safe to retry."""
    pass


# ============================================================
# NORMALIZATION ERRORS
# ============================================================


class NormalizationError(ConcertFeedError):
    """Raised when a raw provider record cannot be turned into a catalog record."""

    def __init__(self, message: str, record_id: str | None = None, source: str | None = None):
        self.record_id = record_id
        super().__init__(message, source=source, details={"record_id": record_id})


class MissingFieldError(NormalizationError):
    """Raised when a required field is missing."""

    def __init__(self, field: str, record_id: str | None = None, source: str | None = None):
        self.field = field
        msg = f"Missing required field: {field}"
        if record_id:
            msg += f" (record: {record_id})"
        super().__init__(msg, record_id=record_id, source=source)
        self.details["field"] = field


# ============================================================
# STORAGE ERRORS
# ============================================================


class StorageError(ConcertFeedError):
    """Base class for storage-related errors."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        source: str | None = None,
    ):
        self.operation = operation
        self.table = table
        super().__init__(
            message,
            source=source,
            details={"operation": operation, "table": table},
        )


class PersistenceError(StorageError):
    """The catalog store is unreachable. Aborts the current source/country pair."""
    pass


class RecordWriteError(StorageError):
    """A single record was rejected by the store. The record is skipped."""
    pass


# ============================================================
# SYNC ERRORS
# ============================================================


class SyncAlreadyRunningError(ConcertFeedError):
    """Raised when a source/country pair is already being synced."""

    def __init__(self, source: str, country: str):
        self.country = country
        super().__init__(
            f"Sync already running for {country}",
            source=source,
            details={"country": country},
        )
