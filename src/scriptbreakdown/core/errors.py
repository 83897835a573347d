class BreakdownError(Exception):
    """Base error for all user-facing breakdown exceptions."""


class ConfigurationError(BreakdownError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(BreakdownError):
    """Raised when .breakdown metadata is missing."""


class DocumentNotFoundError(BreakdownError):
    """Raised when a script document cannot be found."""


class JobNotFoundError(BreakdownError):
    """Raised when a breakdown job cannot be found."""


class NoContentError(BreakdownError):
    """Raised when a document has no text to break down."""


class ExtractionError(BreakdownError):
    """Raised when a call to the extraction model fails."""


class EmptyBreakdownError(BreakdownError):
    """Raised when merging produced no scenes at all."""


class JobAlreadyRunningError(BreakdownError):
    """Raised when a breakdown job is already active for a document."""

    def __init__(self, document_id: str, job_id: str | None = None) -> None:
        self.document_id = document_id
        self.job_id = job_id
        suffix = f" (job {job_id})" if job_id else ""
        super().__init__(f"A breakdown is already running for document {document_id}{suffix}")
