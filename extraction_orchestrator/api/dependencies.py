from typing import Optional

import structlog
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from ..config import get_settings
from ..core.database import SessionLocal, get_db
from ..news.services.external_fetch import ExternalFetchPipeline
from ..parsers.pdf_parser import DigestPdfParser
from ..repositories.content_repository import ContentRepository
from ..repositories.external_source_repository import ExternalSourceRepository
from ..services.extraction_log import ExtractionLogService
from ..services.file_storage import BlobStorageService
from ..services.job_orchestrator import JobOrchestrator
from ..services.pdf_archive import PdfArchive
from ..services.pdf_ingestion import PdfIngestionPipeline

logger = structlog.get_logger(__name__)

_extraction_log: Optional[ExtractionLogService] = None
_pdf_archive: Optional[PdfArchive] = None
_blob_storage: Optional[BlobStorageService] = None
_orchestrator: Optional[JobOrchestrator] = None


def get_extraction_log() -> ExtractionLogService:
    global _extraction_log
    if _extraction_log is None:
        _extraction_log = ExtractionLogService(SessionLocal)
    return _extraction_log


def get_pdf_archive() -> PdfArchive:
    global _pdf_archive
    if _pdf_archive is None:
        _pdf_archive = PdfArchive(get_settings().pdf_storage_dir)
    return _pdf_archive


def get_blob_storage() -> BlobStorageService:
    global _blob_storage
    if _blob_storage is None:
        _blob_storage = BlobStorageService(get_settings().image_storage_dir)
    return _blob_storage


def get_orchestrator() -> JobOrchestrator:
    """Process-wide orchestrator; the single-flight flags live on this instance."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        extraction_log = get_extraction_log()
        parser = DigestPdfParser(
            min_block_chars=settings.min_block_chars,
            min_image_px=settings.min_image_px,
            max_file_size_mb=settings.max_pdf_size_mb,
        )
        pdf_pipeline = PdfIngestionPipeline(
            SessionLocal,
            get_pdf_archive(),
            get_blob_storage(),
            parser,
            extraction_log,
            settings,
        )
        fetch_pipeline = ExternalFetchPipeline(SessionLocal, extraction_log, settings)
        _orchestrator = JobOrchestrator(
            SessionLocal,
            pdf_pipeline,
            fetch_pipeline,
            extraction_log,
            get_blob_storage(),
            settings,
        )
        logger.info("job_orchestrator_initialized", max_concurrent_jobs=settings.max_concurrent_jobs)
    return _orchestrator


def get_requesting_user(x_user: Optional[str] = Header(None, alias="X-User")) -> str:
    """Actor recorded on triggered jobs; authentication happens in front of this service."""
    if x_user and x_user.strip():
        return x_user.strip()[:200]
    return get_settings().default_requested_by


def get_content_repository(db: Session = Depends(get_db)) -> ContentRepository:
    return ContentRepository(db)


def get_source_repository(db: Session = Depends(get_db)) -> ExternalSourceRepository:
    return ExternalSourceRepository(db)
