"""Error kinds raised by the extraction, provider and storage layers."""

from enum import Enum


class PdfRagError(Exception):
    """Base class for pdfrag errors."""


class ExtractionError(PdfRagError):
    """The source file could not be read or parsed."""


class EmptyDocumentError(ExtractionError):
    """The source file parsed but contained no text."""


class ProviderErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    INVALID_INPUT = "invalid_input"


class ProviderError(PdfRagError):
    """An embedding or completion call failed.

    ``kind`` tells the retry policy whether trying again can help: only
    transient failures (network, timeouts, rate limits, 5xx) are retried.
    """

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.TRANSIENT):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is ProviderErrorKind.TRANSIENT


class NotFoundError(PdfRagError):
    """No stored document matched."""


class StoreError(PdfRagError):
    """A database operation failed."""
