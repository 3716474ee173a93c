import enum
from typing import Optional, Dict, Any

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, JSON, Index
from sqlalchemy.sql import func

from ..core.database import Base


class JobKind(str, enum.Enum):
    PDF_INGESTION = "pdf_ingestion"
    EXTERNAL_FETCH = "external_fetch"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def job_scope(kind: str, source_id: Optional[int] = None) -> str:
    """Single-flight key: one running job per (kind, source or '*')."""
    kind_value = kind.value if isinstance(kind, JobKind) else kind
    return f"{kind_value}:{source_id if source_id is not None else '*'}"


class ExtractionJob(Base):
    __tablename__ = "extraction_jobs"

    id = Column(String(32), primary_key=True)
    kind = Column(String(32), nullable=False)
    scope = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)

    target_date = Column(Date, nullable=True)
    source_id = Column(Integer, nullable=True)
    due_only = Column(Boolean, nullable=False, default=False)
    requested_by = Column(String(200), nullable=False)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    error = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_extraction_jobs_kind_started", "kind", "started_at"),
        Index("idx_extraction_jobs_status", "status"),
    )

    def __repr__(self):
        return f"<ExtractionJob(id={self.id}, kind='{self.kind}', status='{self.status}')>"

    @property
    def error_message(self) -> Optional[str]:
        return self.error.get("message") if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "scope": self.scope,
            "status": self.status,
            "targetDate": self.target_date.isoformat() if self.target_date else None,
            "sourceId": self.source_id,
            "requestedBy": self.requested_by,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "result": self.result,
        }
