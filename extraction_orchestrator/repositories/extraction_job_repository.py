import uuid
from datetime import date, datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..core.exceptions import JobNotFoundError, JobStateError
from ..models.extraction_job import ExtractionJob, JobStatus, job_scope
from ..utils.date_utils import utcnow


class ExtractionJobRepository:
    def __init__(self, session: Session):
        self.session = session

    def create_job(
        self,
        kind: str,
        requested_by: str,
        target_date: Optional[date] = None,
        source_id: Optional[int] = None,
        due_only: bool = False,
    ) -> ExtractionJob:
        job = ExtractionJob(
            id=uuid.uuid4().hex,
            kind=kind,
            scope=job_scope(kind, source_id),
            status=JobStatus.PENDING.value,
            target_date=target_date,
            source_id=source_id,
            due_only=due_only,
            requested_by=requested_by,
            created_at=utcnow(),
        )
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get(self, job_id: str) -> Optional[ExtractionJob]:
        return self.session.query(ExtractionJob).filter(ExtractionJob.id == job_id).first()

    def get_latest(self, kind: str) -> Optional[ExtractionJob]:
        return (
            self.session.query(ExtractionJob)
            .filter(ExtractionJob.kind == kind)
            .order_by(desc(ExtractionJob.created_at))
            .first()
        )

    def list_jobs(self, kind: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[ExtractionJob]:
        query = self.session.query(ExtractionJob)
        if kind:
            query = query.filter(ExtractionJob.kind == kind)
        return (
            query.order_by(desc(ExtractionJob.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_jobs(self, kind: Optional[str] = None) -> int:
        query = self.session.query(ExtractionJob)
        if kind:
            query = query.filter(ExtractionJob.kind == kind)
        return query.count()

    def started_since(self, kind: str, since: datetime) -> bool:
        return (
            self.session.query(ExtractionJob)
            .filter(ExtractionJob.kind == kind, ExtractionJob.started_at >= since)
            .first()
        ) is not None

    def mark_in_progress(self, job_id: str) -> ExtractionJob:
        job = self._require(job_id)
        if job.status != JobStatus.PENDING.value:
            raise JobStateError(job_id, job.status, JobStatus.IN_PROGRESS.value)
        job.status = JobStatus.IN_PROGRESS.value
        job.started_at = utcnow()
        self.session.commit()
        self.session.refresh(job)
        return job

    def mark_completed(self, job_id: str, result: Dict[str, Any]) -> ExtractionJob:
        return self._finish(job_id, JobStatus.COMPLETED, result=result)

    def mark_failed(self, job_id: str, error: Dict[str, Any], result: Optional[Dict[str, Any]] = None) -> ExtractionJob:
        return self._finish(job_id, JobStatus.FAILED, result=result, error=error)

    def fail_unfinished(self, error: Dict[str, Any], exclude_ids: Optional[List[str]] = None) -> List[str]:
        """Mark every pending/in_progress job failed; used when no worker can still own them."""
        query = self.session.query(ExtractionJob).filter(
            ExtractionJob.status.in_([JobStatus.PENDING.value, JobStatus.IN_PROGRESS.value])
        )
        if exclude_ids:
            query = query.filter(ExtractionJob.id.notin_(exclude_ids))
        jobs = query.all()
        now = utcnow()
        for job in jobs:
            job.status = JobStatus.FAILED.value
            job.completed_at = now
            job.error = error
        self.session.commit()
        return [job.id for job in jobs]

    def _finish(self, job_id: str, status: JobStatus, result=None, error=None) -> ExtractionJob:
        job = self._require(job_id)
        if job.status != JobStatus.IN_PROGRESS.value:
            raise JobStateError(job_id, job.status, status.value)
        job.status = status.value
        job.completed_at = utcnow()
        job.result = result
        job.error = error
        self.session.commit()
        self.session.refresh(job)
        return job

    def _require(self, job_id: str) -> ExtractionJob:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job
