"""Exception taxonomy for the catalog import pipeline.

Fatal errors stop a run before any write. Row-level errors are caught at the
row boundary by the ingestion engine and turned into a RowOutcome.
"""


class ImportPipelineError(Exception):
    """Base class for import pipeline errors."""


class FatalValidationError(ImportPipelineError):
    """The uploaded file cannot be imported at all."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class TableParseError(FatalValidationError):
    """Malformed quoting, inconsistent column counts or an unreadable file."""


class MissingColumnsError(FatalValidationError):
    """Required schema columns could not be matched to any header."""

    def __init__(self, missing_labels: list[str]):
        self.missing_labels = list(missing_labels)
        message = f"Missing required columns: {', '.join(self.missing_labels)}"
        super().__init__(message, [message])


class RowDataError(ImportPipelineError):
    """A row lacks data it cannot be imported without (name, category)."""


class StoreError(ImportPipelineError):
    """The entity store rejected or failed an operation."""


class ImageAcquisitionError(Exception):
    """A single image URL could not be fetched or stored."""


class ImageFetchError(ImageAcquisitionError):
    """The source URL was invalid, unreachable or not an image."""


class StorageUploadError(ImageAcquisitionError):
    """The blob store refused an upload."""


class StorageConnectionError(Exception):
    """The blob store is unreachable or misconfigured."""
