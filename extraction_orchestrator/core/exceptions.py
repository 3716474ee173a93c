from typing import Optional, Dict, Any


class ExtractionError(Exception):
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class AlreadyInProgressError(ExtractionError):
    def __init__(self, job, message: Optional[str] = None):
        self.job = job
        super().__init__(
            message=message or f"A {job.kind} job is already in progress",
            error_code="ALREADY_IN_PROGRESS",
            details={"job_id": job.id, "scope": job.scope}
        )


class PdfNotFoundError(ExtractionError):
    def __init__(self, date: str):
        super().__init__(
            message=f"PDF file for date {date} does not exist",
            error_code="PDF_NOT_FOUND",
            details={"date": date}
        )


class DownloadFailedError(ExtractionError):
    def __init__(self, message: str, **details):
        super().__init__(message=message, error_code="DOWNLOAD_FAILED", details=details)


class ParseFailedError(ExtractionError):
    def __init__(self, message: str, **details):
        super().__init__(message=message, error_code="PARSE_FAILED", details=details)


class ExtractionTimeoutError(ExtractionError):
    def __init__(self, message: str, **details):
        super().__init__(message=message, error_code="TIMEOUT", details=details)


class SourceFetchFailedError(ExtractionError):
    """Raised per source; also raised for the whole run when every source failed."""

    def __init__(self, message: str, reason: str = "FetchError", result=None, **details):
        self.reason = reason
        self.result = result
        details.setdefault("reason", reason)
        super().__init__(message=message, error_code="SOURCE_FETCH_FAILED", details=details)


class SourceNotFoundError(ExtractionError):
    def __init__(self, source_id: int):
        super().__init__(
            message=f"External source {source_id} not found",
            error_code="SOURCE_NOT_FOUND",
            details={"source_id": source_id}
        )


class JobNotFoundError(ExtractionError):
    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job {job_id} not found",
            error_code="JOB_NOT_FOUND",
            details={"job_id": job_id}
        )


class JobStateError(ExtractionError):
    def __init__(self, job_id: str, status: str, target: str):
        super().__init__(
            message=f"Job {job_id} cannot move from {status} to {target}",
            error_code="INVALID_JOB_TRANSITION",
            details={"job_id": job_id, "status": status, "target": target}
        )


class ValidationError(ExtractionError):
    pass


INTERRUPTED_BY_RESTART = "INTERRUPTED_BY_RESTART"
UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
