from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index

from ..core.database import Base


class ExtractionLogEntry(Base):
    """Append-only operation log shown in the admin log viewer."""
    __tablename__ = "extraction_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, nullable=False)
    level = Column(String(8), nullable=False)
    module = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    job_id = Column(String(32), nullable=True)
    details = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_extraction_logs_created_at", "created_at"),
        Index("idx_extraction_logs_level", "level"),
        Index("idx_extraction_logs_module", "module"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "level": self.level,
            "module": self.module,
            "message": self.message,
            "job_id": self.job_id,
            "details": self.details or {},
        }
