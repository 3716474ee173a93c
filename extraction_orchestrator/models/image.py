from sqlalchemy import Column, Integer, String, Date, DateTime, Index
from sqlalchemy.sql import func

from ..core.database import Base


class Image(Base):
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dedupe_key = Column(String(80), nullable=False, unique=True)

    title = Column(String(500))
    section = Column(String(100), nullable=False)
    blob_ref = Column(String(500), nullable=False)
    content_type = Column(String(100))
    width = Column(Integer)
    height = Column(Integer)

    publication_date = Column(Date)
    ingestion_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index("idx_images_ingestion_date", "ingestion_date"),
    )

    def __repr__(self):
        return f"<Image(id={self.id}, section='{self.section}', blob_ref='{self.blob_ref}')>"
