from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..constants import LogLevelFilter, MAX_JOB_PAGE_SIZE, MAX_LOG_PAGE_SIZE
from ..schemas import (
    DateInfoResponse,
    DeleteContentResponse,
    ExtractionRunRequest,
    ExtractionRunResponse,
    ExtractionStatusResponse,
    JobListResponse,
    LastExtraction,
)
from ...dependencies import (
    get_content_repository,
    get_orchestrator,
    get_pdf_archive,
    get_requesting_user,
)
from ....config import get_settings
from ....core.exceptions import AlreadyInProgressError, PdfNotFoundError
from ....models.extraction_job import JobKind
from ....repositories.content_repository import ContentRepository
from ....services.job_orchestrator import JobOrchestrator
from ....services.pdf_archive import PdfArchive
from ....services.scheduler import next_digest_run
from ....utils.date_utils import parse_iso_date

logger = structlog.get_logger(__name__)

router = APIRouter()


def already_in_progress_response(error: AlreadyInProgressError) -> JSONResponse:
    job = error.job
    body = ExtractionRunResponse(
        success=False,
        message=error.message,
        job_id=job.id if job else None,
        status=job.status if job else None,
    )
    return JSONResponse(status_code=409, content=body.model_dump(by_alias=True))


def accepted_response(message: str, job) -> JSONResponse:
    body = ExtractionRunResponse(success=True, message=message, job_id=job.id, status=job.status)
    return JSONResponse(status_code=202, content=body.model_dump(by_alias=True))


@router.post("/run", response_model=ExtractionRunResponse, status_code=202)
def run_extraction(
    request: Optional[ExtractionRunRequest] = None,
    requested_by: str = Depends(get_requesting_user),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    archive: PdfArchive = Depends(get_pdf_archive),
):
    """Download and ingest today's digest, or re-extract an archived one when a date is given"""
    target_date = request.date if request else None
    if target_date is not None and not archive.exists(target_date):
        raise PdfNotFoundError(target_date.isoformat())

    try:
        job = orchestrator.trigger(JobKind.PDF_INGESTION, requested_by=requested_by, target_date=target_date)
    except AlreadyInProgressError as e:
        return already_in_progress_response(e)

    if target_date:
        message = f"Re-extraction started for {target_date.isoformat()}"
    else:
        message = "Extraction started"
    logger.info("extraction_triggered", job_id=job.id, target_date=str(target_date), requested_by=requested_by)
    return accepted_response(message, job)


@router.get("/status", response_model=ExtractionStatusResponse)
def get_extraction_status(
    kind: JobKind = Query(JobKind.PDF_INGESTION, description="Job kind to report on"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    job = orchestrator.get_status(kind)
    last_extraction = None
    if job is not None:
        timestamp = job.completed_at or job.started_at or job.created_at
        last_extraction = LastExtraction(
            job_id=job.id,
            kind=job.kind,
            status=job.status,
            timestamp=timestamp.isoformat() if timestamp else None,
            user=job.requested_by,
            error=job.error_message,
            result=job.result,
        )

    next_run = next_digest_run(get_settings())
    return ExtractionStatusResponse(
        last_extraction=last_extraction,
        next_extraction=next_run.isoformat() if next_run else None,
    )


@router.get("/logs")
def get_extraction_logs(
    level: LogLevelFilter = Query(LogLevelFilter.ALL),
    module: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, alias="endDate", description="YYYY-MM-DD, inclusive"),
    search: Optional[str] = Query(None, description="Case-insensitive text in the message"),
    job_id: Optional[str] = Query(None, alias="jobId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_LOG_PAGE_SIZE),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return orchestrator.get_logs(
        level=level.value,
        module=module,
        start_date=start_date,
        end_date=end_date,
        search=search,
        job_id=job_id,
        page=page,
        limit=limit,
    )


@router.get("/logs/stats")
def get_extraction_log_stats(orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.get_log_stats()


@router.get("/available-pdfs")
def get_available_pdfs(archive: PdfArchive = Depends(get_pdf_archive)) -> List[str]:
    return archive.list_dates()


@router.get("/dates")
def get_extraction_dates(content: ContentRepository = Depends(get_content_repository)) -> List[str]:
    return [value.isoformat() for value in content.list_ingestion_dates()]


@router.get("/date/{date}", response_model=DateInfoResponse)
def get_date_info(
    date: str,
    content: ContentRepository = Depends(get_content_repository),
    archive: PdfArchive = Depends(get_pdf_archive),
):
    ingestion_date = parse_iso_date(date)
    article_count, image_count = content.count_for_date(ingestion_date)
    return DateInfoResponse(
        date=ingestion_date.isoformat(),
        pdf_exists=archive.exists(ingestion_date),
        article_count=article_count,
        image_count=image_count,
        exists=(article_count + image_count) > 0,
    )


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(
    kind: Optional[JobKind] = Query(None),
    limit: int = Query(20, ge=1, le=MAX_JOB_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    jobs, total = orchestrator.list_jobs(kind, limit=limit, offset=offset)
    return JobListResponse(jobs=[job.to_dict() for job in jobs], total=total, limit=limit, offset=offset)


@router.get("/jobs/{job_id}")
def get_job(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.get_job(job_id).to_dict()


@router.delete("/content/{date}", response_model=DeleteContentResponse)
def delete_content(
    date: str,
    requested_by: str = Depends(get_requesting_user),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    ingestion_date = parse_iso_date(date)
    logger.info("content_delete_requested", date=date, requested_by=requested_by)
    counts = orchestrator.delete_content(ingestion_date)
    return DeleteContentResponse(
        articles_deleted=counts["articlesDeleted"],
        images_deleted=counts["imagesDeleted"],
    )
