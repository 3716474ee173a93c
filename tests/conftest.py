import threading
import time
from datetime import date
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from extraction_orchestrator.config import Settings
from extraction_orchestrator.core.database import build_engine, create_tables, drop_tables
from extraction_orchestrator.news.services.external_fetch import ExternalFetchPipeline
from extraction_orchestrator.parsers.base_parser import BaseDigestParser, DigestBlock, DigestImage, ParsedDigest
from extraction_orchestrator.services.extraction_log import ExtractionLogService
from extraction_orchestrator.services.file_storage import BlobStorageService
from extraction_orchestrator.services.job_orchestrator import JobOrchestrator
from extraction_orchestrator.services.pdf_archive import PdfArchive
from extraction_orchestrator.services.pdf_ingestion import PdfIngestionPipeline
from extraction_orchestrator.services.pipeline_result import PipelineResult

DIGEST_URL = "https://digest.test/resumenInformativo.pdf"
PDF_BYTES = b"%PDF-1.4\n% digest fixture\n"


class SlowStream(httpx.SyncByteStream):
    def __init__(self, chunks: List[bytes], delay: float):
        self.chunks = chunks
        self.delay = delay

    def __iter__(self):
        for chunk in self.chunks:
            time.sleep(self.delay)
            yield chunk


class StubServer:
    """httpx.MockTransport handler with per-URL canned responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self._lock = threading.Lock()

    def route(self, url: str, status_code: int = 200, content: bytes = b"", exc: Optional[Exception] = None):
        def handler(request: httpx.Request) -> httpx.Response:
            if exc is not None:
                raise exc
            return httpx.Response(status_code, content=content)
        self.routes[url] = handler

    def timeout(self, url: str):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)
        self.routes[url] = handler

    def slow(self, url: str, chunks: List[bytes], delay: float):
        """Each chunk arrives `delay` seconds after the previous one."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=SlowStream(chunks, delay))
        self.routes[url] = handler

    def requests_to(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(404)
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeDigestParser(BaseDigestParser):
    def __init__(self, digest: ParsedDigest, error: Optional[Exception] = None):
        self.digest = digest
        self.error = error
        self.calls: List[str] = []

    def parse(self, source: str) -> ParsedDigest:
        self.calls.append(source)
        if self.error is not None:
            raise self.error
        return self.digest


class ControlledPipeline:
    """Stands in for both pipelines; can hold a job in progress until released."""

    def __init__(self, result: Optional[PipelineResult] = None, error: Optional[Exception] = None, block: bool = False):
        self.result = result
        self.error = error
        self.block = block
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = []
        self._lock = threading.Lock()

    def _run(self, call):
        with self._lock:
            self.calls.append(call)
        self.started.set()
        if self.block:
            self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.result or PipelineResult()

    def ingest(self, target_date=None, job_id=None):
        return self._run(("ingest", target_date))

    def fetch_all(self, due_only=False, job_id=None):
        return self._run(("fetch_all", due_only))

    def fetch_one(self, source_id, job_id=None):
        return self._run(("fetch_one", source_id))


def build_digest(article_count: int = 8, image_count: int = 3) -> ParsedDigest:
    sections = ["ocho-columnas", "columnas-politicas", "informacion-general", "suprema-corte"]
    blocks = [
        DigestBlock(
            section=sections[i % len(sections)],
            title=f"Nota judicial número {i + 1}",
            summary=f"Resumen de la nota {i + 1} sobre la actividad del Poder Judicial.",
            content=f"Contenido completo de la nota {i + 1}.",
            source_label="El Universal" if i == 0 else None,
            page=1 + i // 4,
        )
        for i in range(article_count)
    ]
    images = [
        DigestImage(
            section="cartones",
            title=f"cartones page 3 image {i + 1}",
            data=f"png-bytes-{i}".encode(),
            extension="png",
            width=640,
            height=480,
            page=3,
        )
        for i in range(image_count)
    ]
    return ParsedDigest(blocks=blocks, images=images, sections=sections + ["cartones"], page_count=3)


def build_rss(items: List[dict], title: str = "Noticias") -> bytes:
    entries = []
    for item in items:
        media = f'<media:content url="{item["image"]}" medium="image" />' if item.get("image") else ""
        entries.append(
            "<item>"
            f"<title>{item['title']}</title>"
            f"<link>{item['link']}</link>"
            f"<description><![CDATA[<p>{item.get('description', item['title'])}</p>]]></description>"
            f"<pubDate>{item.get('pub_date', 'Fri, 01 Mar 2024 10:00:00 GMT')}</pubDate>"
            f"{media}"
            "</item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">'
        f"<channel><title>{title}</title><link>https://news.test</link><description>feed</description>"
        + "".join(entries)
        + "</channel></rss>"
    ).encode("utf-8")


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'extraction.db'}",
        pdf_storage_dir=str(tmp_path / "pdf"),
        image_storage_dir=str(tmp_path / "images"),
        digest_pdf_url=DIGEST_URL,
        scheduler_enabled=False,
        max_concurrent_jobs=4,
        fetch_max_workers=3,
        job_timeout_minutes=1,
        feed_timeout_seconds=5,
        download_timeout_seconds=5,
    )


@pytest.fixture
def session_factory(test_settings):
    # File-backed so worker threads share one database
    engine = build_engine(test_settings.database_url)
    create_tables(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def extraction_log(session_factory):
    return ExtractionLogService(session_factory)


@pytest.fixture
def pdf_archive(test_settings):
    return PdfArchive(test_settings.pdf_storage_dir)


@pytest.fixture
def blob_storage(test_settings):
    return BlobStorageService(test_settings.image_storage_dir)


@pytest.fixture
def digest_server():
    server = StubServer()
    server.route(DIGEST_URL, content=PDF_BYTES)
    return server


@pytest.fixture
def feed_server():
    return StubServer()


@pytest.fixture
def fake_parser():
    return FakeDigestParser(build_digest())


@pytest.fixture
def archived_date(pdf_archive):
    digest_date = date(2024, 3, 1)
    pdf_archive.save(digest_date, PDF_BYTES)
    return digest_date


@pytest.fixture
def pdf_pipeline(session_factory, pdf_archive, blob_storage, fake_parser, extraction_log, test_settings, digest_server):
    return PdfIngestionPipeline(
        session_factory,
        pdf_archive,
        blob_storage,
        fake_parser,
        extraction_log,
        test_settings,
        transport=digest_server.transport,
    )


@pytest.fixture
def fetch_pipeline(session_factory, extraction_log, test_settings, feed_server):
    return ExternalFetchPipeline(session_factory, extraction_log, test_settings, transport=feed_server.transport)


@pytest.fixture
def make_orchestrator(session_factory, extraction_log, blob_storage, test_settings, pdf_pipeline, fetch_pipeline):
    created = []

    def factory(pdf=None, fetch=None, **overrides):
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        orchestrator = JobOrchestrator(
            session_factory,
            pdf or pdf_pipeline,
            fetch or fetch_pipeline,
            extraction_log,
            blob_storage,
            settings,
        )
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        orchestrator.shutdown(wait=True)


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture
def wait_until():
    def waiter(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return waiter


@pytest.fixture
def controlled_pipeline():
    return ControlledPipeline


@pytest.fixture
def digest_factory():
    return build_digest


@pytest.fixture
def rss_feed():
    return build_rss


@pytest.fixture
async def async_client(session_factory, orchestrator, pdf_archive):
    from httpx import AsyncClient, ASGITransport
    from extraction_orchestrator.main import app
    from extraction_orchestrator.core.database import get_db
    from extraction_orchestrator.api.dependencies import get_orchestrator, get_pdf_archive

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_pdf_archive] = lambda: pdf_archive

    # ASGITransport skips the lifespan, so no scheduler or reconciliation runs here
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
