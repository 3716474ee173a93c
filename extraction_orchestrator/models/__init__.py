from .article import Article
from .image import Image
from .external_source import ExternalSource
from .extraction_job import ExtractionJob, JobKind, JobStatus
from .extraction_log import ExtractionLogEntry

__all__ = ["Article", "Image", "ExternalSource", "ExtractionJob", "JobKind", "JobStatus", "ExtractionLogEntry"]
