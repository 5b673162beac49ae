"""Typed errors raised by the ingestion pipeline.

Each error carries a ``kind`` string so the operator-facing layer can tell
"site too slow" apart from "content too short" or "AI quota exceeded"
without string matching on messages.
"""
from typing import Optional


class IngestionError(Exception):
    """Base class for pipeline errors."""

    kind = "ingestion_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class SourceUnavailable(IngestionError):
    """A single feed or page could not be fetched."""

    kind = "source_unavailable"

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.timed_out = timed_out


class UnparsableContent(IngestionError):
    """XML/HTML could not be parsed into the expected shape."""

    kind = "unparsable_content"


class ContentTooShort(UnparsableContent):
    """Scraped text fell below the minimum length (SPA or anti-bot page)."""

    kind = "content_too_short"


class UpstreamModelError(IngestionError):
    """The extraction backend returned an error status or error payload."""

    kind = "upstream_model_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ModelTimeout(UpstreamModelError):
    """The extraction backend did not answer within the configured timeout."""

    kind = "model_timeout"


class ModelOutputInvalid(IngestionError):
    """The backend answered, but its content is not a usable record."""

    kind = "model_output_invalid"


class EmptyModelContent(ModelOutputInvalid):
    kind = "empty_model_content"


class UnparsableModelOutput(ModelOutputInvalid):
    kind = "unparsable_model_output"

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class StoreUnavailable(IngestionError):
    """The pending store is not configured (e.g. missing credentials)."""

    kind = "store_unavailable"


class PendingEntryNotFound(IngestionError):
    kind = "pending_entry_not_found"

    def __init__(self, entry_id: str):
        super().__init__(f"Pending entry not found: {entry_id}")
        self.entry_id = entry_id
