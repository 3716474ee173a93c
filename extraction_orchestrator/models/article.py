from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Index
from sqlalchemy.sql import func

from ..core.database import Base


class Article(Base):
    """
    Article produced by either pipeline.
    dedupe_key is unique; a colliding insert is treated as a duplicate, never an update.
    """
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dedupe_key = Column(String(80), nullable=False, unique=True)

    title = Column(String(500), nullable=False)
    summary = Column(Text)
    content = Column(Text)
    section = Column(String(100), nullable=False)
    source_label = Column(String(200))

    # External content only
    source_url = Column(String(1000))
    image_url = Column(String(1000))
    external_source_id = Column(Integer, nullable=True)

    origin = Column(String(16), nullable=False)  # pdf | external
    publication_date = Column(Date)
    ingestion_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index("idx_articles_ingestion_date", "ingestion_date"),
        Index("idx_articles_section", "section"),
    )

    def __repr__(self):
        return f"<Article(id={self.id}, title='{self.title[:50]}...', section='{self.section}')>"
