from .content_repository import ContentRepository
from .external_source_repository import ExternalSourceRepository
from .extraction_job_repository import ExtractionJobRepository
from .extraction_log_repository import ExtractionLogRepository

__all__ = ["ContentRepository", "ExternalSourceRepository", "ExtractionJobRepository", "ExtractionLogRepository"]
