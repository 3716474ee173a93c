import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..core.exceptions import (
    AlreadyInProgressError,
    ExtractionError,
    ExtractionTimeoutError,
    INTERRUPTED_BY_RESTART,
    JobNotFoundError,
    SourceFetchFailedError,
    UNEXPECTED_ERROR,
    ValidationError,
)
from ..models.extraction_job import ExtractionJob, JobKind, job_scope
from ..repositories.content_repository import ContentRepository
from ..repositories.extraction_job_repository import ExtractionJobRepository
from ..repositories.external_source_repository import ExternalSourceRepository
from .extraction_log import ExtractionLogService
from .file_storage import BlobStorageService
from .pipeline_result import PipelineResult

logger = structlog.get_logger(__name__)

MODULE = "orchestrator"
CONTENT_MODULE = "content"


class JobOrchestrator:
    """
    Accepts extraction triggers and runs them on a background worker pool.

    At most one job per scope (kind plus source id or '*') runs at a time. The scope
    flag is checked and set under a lock at trigger time, the job row is moved to
    in_progress before the trigger returns, and the flag is cleared only after the job
    reached a terminal state. Pipelines run under a hard deadline; a pipeline that
    outlives it keeps the flag until it returns.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        pdf_pipeline,
        fetch_pipeline,
        extraction_log: ExtractionLogService,
        blob_storage: BlobStorageService,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.pdf_pipeline = pdf_pipeline
        self.fetch_pipeline = fetch_pipeline
        self.extraction_log = extraction_log
        self.blob_storage = blob_storage
        self.settings = settings or get_settings()

        workers = self.settings.max_concurrent_jobs
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extraction-job")
        # Pipelines run here so a job worker can give up on them at the deadline.
        self.pipeline_executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extraction-pipeline")

        self.running_jobs: Dict[str, str] = {}
        self._futures: Dict[str, Future] = {}
        # scope -> job id whose pipeline outlived the job deadline and is still running
        self._abandoned: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def job_timeout_seconds(self) -> float:
        return self.settings.job_timeout_minutes * 60

    def trigger(
        self,
        kind,
        requested_by: str,
        target_date: Optional[date] = None,
        source_id: Optional[int] = None,
        due_only: bool = False,
    ) -> ExtractionJob:
        kind = JobKind(kind)
        if kind == JobKind.PDF_INGESTION and source_id is not None:
            raise ValidationError("pdf_ingestion jobs do not take a source id")
        if kind == JobKind.EXTERNAL_FETCH and target_date is not None:
            raise ValidationError("external_fetch jobs do not take a target date")

        if source_id is not None:
            with self.session_factory() as session:
                ExternalSourceRepository(session).require(source_id)

        scope = job_scope(kind, source_id)
        with self._lock:
            running_id = self.running_jobs.get(scope)
            if running_id is not None:
                with self.session_factory() as session:
                    running = ExtractionJobRepository(session).get(running_id)
                if scope in self._abandoned:
                    logger.error("scope_held_by_abandoned_pipeline", scope=scope, job_id=running_id, requested_by=requested_by)
                    self.extraction_log.error(
                        MODULE,
                        f"Refused {kind.value} job from {requested_by}: pipeline of timed-out job is still running",
                        running_id,
                        scope=scope,
                    )
                    raise AlreadyInProgressError(
                        running, message=f"A timed-out {running.kind} pipeline is still running"
                    )
                logger.info("job_already_in_progress", scope=scope, job_id=running_id, requested_by=requested_by)
                raise AlreadyInProgressError(running)

            with self.session_factory() as session:
                repo = ExtractionJobRepository(session)
                job = repo.create_job(
                    kind=kind.value,
                    requested_by=requested_by,
                    target_date=target_date,
                    source_id=source_id,
                    due_only=due_only,
                )
                job = repo.mark_in_progress(job.id)
            self.running_jobs[scope] = job.id

        self.extraction_log.info(
            MODULE,
            f"{kind.value} job accepted from {requested_by}",
            job.id,
            scope=scope,
            target_date=target_date.isoformat() if target_date else None,
        )

        try:
            future = self.executor.submit(self._run_job, job.id, kind, scope, target_date, source_id, due_only)
        except RuntimeError as e:
            # Executor already shut down; the job must still end terminal.
            self._finalize_failed(job.id, ExtractionError(f"Worker pool unavailable: {e}", error_code=UNEXPECTED_ERROR))
            self._release(scope, job.id)
            raise

        self._futures[job.id] = future
        future.add_done_callback(lambda _f, job_id=job.id: self._futures.pop(job_id, None))
        return job

    def _run_job(
        self,
        job_id: str,
        kind: JobKind,
        scope: str,
        target_date: Optional[date],
        source_id: Optional[int],
        due_only: bool,
    ) -> None:
        logger.info("job_started", job_id=job_id, scope=scope)
        abandoned: Optional[Future] = None
        try:
            pipeline_future = self.pipeline_executor.submit(
                self._execute, job_id, kind, target_date, source_id, due_only
            )
            try:
                result = pipeline_future.result(timeout=self.job_timeout_seconds)
            except FuturesTimeout:
                if not pipeline_future.cancel():
                    abandoned = pipeline_future
                raise ExtractionTimeoutError(
                    f"Job exceeded its {self.settings.job_timeout_minutes} minute deadline",
                    timeout_seconds=self.job_timeout_seconds,
                )
            self._finalize_completed(job_id, kind, result)
        except SourceFetchFailedError as e:
            self._finalize_failed(job_id, e, result=e.result)
        except ExtractionError as e:
            self._finalize_failed(job_id, e)
        except Exception as e:
            logger.error("job_unexpected_error", job_id=job_id, error=str(e), exc_info=True)
            self._finalize_failed(
                job_id,
                ExtractionError(str(e) or e.__class__.__name__, error_code=UNEXPECTED_ERROR, details={"type": e.__class__.__name__}),
            )
        finally:
            if abandoned is not None and not abandoned.done():
                self._hold_until_done(abandoned, scope, job_id)
            else:
                self._release(scope, job_id)
                logger.info("job_released", job_id=job_id, scope=scope)

    def _hold_until_done(self, pipeline_future: Future, scope: str, job_id: str) -> None:
        """Keep the scope flag until a pipeline that outlived its job's deadline returns."""
        with self._lock:
            self._abandoned[scope] = job_id
        logger.error("pipeline_outlived_deadline", job_id=job_id, scope=scope)
        self.extraction_log.error(
            MODULE,
            f"Pipeline still running after the job deadline; {scope} stays locked until it returns",
            job_id,
            scope=scope,
        )

        def release(_future: Future) -> None:
            self._release(scope, job_id)
            logger.warning("abandoned_pipeline_finished", job_id=job_id, scope=scope)

        pipeline_future.add_done_callback(release)

    def _execute(
        self,
        job_id: str,
        kind: JobKind,
        target_date: Optional[date],
        source_id: Optional[int],
        due_only: bool,
    ) -> PipelineResult:
        if kind == JobKind.PDF_INGESTION:
            return self.pdf_pipeline.ingest(target_date=target_date, job_id=job_id)
        if source_id is not None:
            return self.fetch_pipeline.fetch_one(source_id, job_id=job_id)
        return self.fetch_pipeline.fetch_all(due_only=due_only, job_id=job_id)

    def _finalize_completed(self, job_id: str, kind: JobKind, result: PipelineResult) -> None:
        with self.session_factory() as session:
            ExtractionJobRepository(session).mark_completed(job_id, result.to_dict())

        failures = result.failures
        if failures:
            self.extraction_log.warning(
                MODULE,
                f"{kind.value} job completed with {len(failures)} of {len(result.sources)} sources failed",
                job_id,
                failed_source_ids=[failure.source_id for failure in failures],
            )
        else:
            self.extraction_log.info(
                MODULE,
                f"{kind.value} job completed: {result.articles_created} articles, "
                f"{result.images_created} images created, "
                f"{result.articles_skipped_duplicate} duplicates skipped",
                job_id,
            )

    def _finalize_failed(self, job_id: str, error: ExtractionError, result: Optional[PipelineResult] = None) -> None:
        result_data = result.to_dict() if result else None
        for attempt in (1, 2):
            try:
                with self.session_factory() as session:
                    ExtractionJobRepository(session).mark_failed(job_id, error.to_dict(), result=result_data)
                break
            except SQLAlchemyError as e:
                logger.error("job_finalize_failed", job_id=job_id, attempt=attempt, error=str(e), exc_info=True)
                if attempt == 2:
                    self.extraction_log.error(
                        MODULE,
                        f"Job could not be marked failed ({error.error_code}): {e}",
                        job_id,
                        code=error.error_code,
                    )
                    raise
        self.extraction_log.error(MODULE, f"Job failed: {error.error_code}: {error.message}", job_id, code=error.error_code)

    def _release(self, scope: str, job_id: str) -> None:
        with self._lock:
            if self.running_jobs.get(scope) == job_id:
                del self.running_jobs[scope]
            if self._abandoned.get(scope) == job_id:
                del self._abandoned[scope]

    def is_running(self, kind, source_id: Optional[int] = None) -> bool:
        with self._lock:
            return job_scope(kind, source_id) in self.running_jobs

    def get_status(self, kind) -> Optional[ExtractionJob]:
        with self.session_factory() as session:
            return ExtractionJobRepository(session).get_latest(JobKind(kind).value)

    def get_job(self, job_id: str) -> ExtractionJob:
        with self.session_factory() as session:
            job = ExtractionJobRepository(session).get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, kind=None, limit: int = 50, offset: int = 0) -> Tuple[List[ExtractionJob], int]:
        kind_value = JobKind(kind).value if kind else None
        with self.session_factory() as session:
            repo = ExtractionJobRepository(session)
            return repo.list_jobs(kind_value, limit=limit, offset=offset), repo.count_jobs(kind_value)

    def get_logs(self, **filters) -> Dict[str, Any]:
        return self.extraction_log.query(**filters)

    def get_log_stats(self) -> Dict[str, Any]:
        return self.extraction_log.stats()

    def delete_content(self, ingestion_date: date) -> Dict[str, int]:
        with self.session_factory() as session:
            articles_deleted, images_deleted, blob_refs = ContentRepository(session).delete_for_date(ingestion_date)

        for blob_ref in set(blob_refs):
            try:
                self.blob_storage.delete(blob_ref)
            except OSError as e:
                self.extraction_log.warning(
                    CONTENT_MODULE, f"Could not delete image blob {blob_ref}: {e}", blob_ref=blob_ref
                )

        self.extraction_log.info(
            CONTENT_MODULE,
            f"Deleted content for {ingestion_date.isoformat()}: "
            f"{articles_deleted} articles, {images_deleted} images",
            date=ingestion_date.isoformat(),
        )
        return {"articlesDeleted": articles_deleted, "imagesDeleted": images_deleted}

    def reconcile_interrupted_jobs(self) -> int:
        """Fail jobs left unfinished by a previous process; they have no worker to finish them."""
        error = ExtractionError(
            "Job was interrupted by a service restart",
            error_code=INTERRUPTED_BY_RESTART,
        ).to_dict()
        with self._lock:
            owned = list(self.running_jobs.values())
        with self.session_factory() as session:
            job_ids = ExtractionJobRepository(session).fail_unfinished(error, exclude_ids=owned)

        for job_id in job_ids:
            self.extraction_log.warning(MODULE, "Job marked failed after restart", job_id, code=INTERRUPTED_BY_RESTART)
        if job_ids:
            logger.info("interrupted_jobs_reconciled", count=len(job_ids))
        return len(job_ids)

    def wait_for(self, job_id: str, timeout: Optional[float] = None) -> ExtractionJob:
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
        self.pipeline_executor.shutdown(wait=wait)
        logger.info("job_orchestrator_shutdown", wait=wait)
