from datetime import date
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.article import Article
from ..models.image import Image

logger = structlog.get_logger(__name__)


class ContentRepository:
    """
    ContentStore: per-entity inserts keyed by dedupe_key.
    The unique constraint decides races; the first write wins and later ones are no-ops.
    """

    def __init__(self, session: Session):
        self.session = session

    def add_article(self, article: Article) -> bool:
        return self._insert_once(article)

    def add_image(self, image: Image) -> bool:
        return self._insert_once(image)

    def _insert_once(self, entity) -> bool:
        model = type(entity)
        if self.session.query(model.id).filter(model.dedupe_key == entity.dedupe_key).first():
            return False
        self.session.add(entity)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if self.session.query(model.id).filter(model.dedupe_key == entity.dedupe_key).first() is None:
                # Not a key collision: NOT NULL, length or other constraint failure.
                logger.error("content_write_rejected", model=model.__name__, dedupe_key=entity.dedupe_key, error=str(e))
                raise
            # Lost a race against a concurrent writer with the same key.
            logger.debug("dedupe_key_collision", model=model.__name__, dedupe_key=entity.dedupe_key)
            return False
        return True

    def get_article_by_key(self, dedupe_key: str) -> Optional[Article]:
        return self.session.query(Article).filter(Article.dedupe_key == dedupe_key).first()

    def count_articles(self, ingestion_date: Optional[date] = None) -> int:
        query = self.session.query(Article)
        if ingestion_date:
            query = query.filter(Article.ingestion_date == ingestion_date)
        return query.count()

    def count_images(self, ingestion_date: Optional[date] = None) -> int:
        query = self.session.query(Image)
        if ingestion_date:
            query = query.filter(Image.ingestion_date == ingestion_date)
        return query.count()

    def list_articles(self, ingestion_date: date) -> List[Article]:
        return (
            self.session.query(Article)
            .filter(Article.ingestion_date == ingestion_date)
            .order_by(Article.id)
            .all()
        )

    def list_ingestion_dates(self) -> List[date]:
        article_dates = self.session.query(Article.ingestion_date).distinct()
        image_dates = self.session.query(Image.ingestion_date).distinct()
        dates = {row[0] for row in article_dates} | {row[0] for row in image_dates}
        return sorted(dates, reverse=True)

    def delete_for_date(self, ingestion_date: date) -> Tuple[int, int, List[str]]:
        """Remove every Article/Image ingested on the date; returns (articles, images, blob_refs)."""
        blob_refs = [
            row[0]
            for row in self.session.query(Image.blob_ref).filter(Image.ingestion_date == ingestion_date)
        ]
        images_deleted = (
            self.session.query(Image)
            .filter(Image.ingestion_date == ingestion_date)
            .delete(synchronize_session=False)
        )
        articles_deleted = (
            self.session.query(Article)
            .filter(Article.ingestion_date == ingestion_date)
            .delete(synchronize_session=False)
        )
        self.session.commit()
        return articles_deleted, images_deleted, blob_refs

    def count_for_date(self, ingestion_date: date) -> Tuple[int, int]:
        return self.count_articles(ingestion_date), self.count_images(ingestion_date)
