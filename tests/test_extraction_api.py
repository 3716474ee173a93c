import pytest

from extraction_orchestrator.api.dependencies import get_orchestrator
from extraction_orchestrator.main import app
from extraction_orchestrator.models import JobStatus
from extraction_orchestrator.utils.date_utils import local_today


class TestExtractionRun:
    async def test_run_downloads_and_ingests_today(self, async_client, orchestrator, pdf_archive, test_settings):
        response = await async_client.post("/api/v1/extraction/run", headers={"X-User": "editor@example.com"})

        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        assert body["status"] == JobStatus.IN_PROGRESS.value

        job = orchestrator.wait_for(body["jobId"], timeout=5)
        assert job.status == JobStatus.COMPLETED.value
        assert job.requested_by == "editor@example.com"
        assert pdf_archive.exists(local_today(test_settings.timezone))

        status = await async_client.get("/api/v1/extraction/status")
        last = status.json()["lastExtraction"]
        assert last["jobId"] == body["jobId"]
        assert last["status"] == "completed"
        assert last["user"] == "editor@example.com"
        assert last["result"]["articlesCreated"] == 8

    async def test_rerun_archived_date(self, async_client, orchestrator, archived_date):
        response = await async_client.post("/api/v1/extraction/run", json={"date": "2024-03-01"})

        assert response.status_code == 202
        assert "2024-03-01" in response.json()["message"]
        job = orchestrator.wait_for(response.json()["jobId"], timeout=5)
        assert job.target_date == archived_date
        assert job.requested_by == "admin"

    async def test_missing_archive_is_rejected_without_job(self, async_client, orchestrator):
        response = await async_client.post("/api/v1/extraction/run", json={"date": "2023-01-01"})

        assert response.status_code == 404
        assert response.json()["error"] == "PDF_NOT_FOUND"
        assert orchestrator.list_jobs()[1] == 0

    async def test_invalid_date_is_rejected(self, async_client):
        response = await async_client.post("/api/v1/extraction/run", json={"date": "2024-02-30"})

        assert response.status_code == 422

    async def test_second_run_gets_running_job(self, async_client, make_orchestrator, controlled_pipeline):
        pipeline = controlled_pipeline(block=True)
        blocking = make_orchestrator(pdf=pipeline)
        app.dependency_overrides[get_orchestrator] = lambda: blocking

        first = await async_client.post("/api/v1/extraction/run")
        second = await async_client.post("/api/v1/extraction/run")

        assert first.status_code == 202
        assert second.status_code == 409
        assert second.json()["success"] is False
        assert second.json()["jobId"] == first.json()["jobId"]
        assert second.json()["status"] == JobStatus.IN_PROGRESS.value

        pipeline.release.set()
        blocking.wait_for(first.json()["jobId"], timeout=5)

    async def test_status_before_any_run(self, async_client):
        response = await async_client.get("/api/v1/extraction/status", params={"kind": "external_fetch"})

        assert response.status_code == 200
        assert response.json()["lastExtraction"] is None


class TestContentByDate:
    async def test_available_pdfs(self, async_client, archived_date):
        response = await async_client.get("/api/v1/extraction/available-pdfs")

        assert response.json() == ["2024-03-01"]

    async def test_date_info_and_delete(self, async_client, orchestrator, archived_date):
        run = await async_client.post("/api/v1/extraction/run", json={"date": "2024-03-01"})
        orchestrator.wait_for(run.json()["jobId"], timeout=5)

        info = await async_client.get("/api/v1/extraction/date/2024-03-01")
        assert info.json() == {
            "date": "2024-03-01",
            "pdfExists": True,
            "articleCount": 8,
            "imageCount": 3,
            "exists": True,
        }
        dates = await async_client.get("/api/v1/extraction/dates")
        assert dates.json() == ["2024-03-01"]

        deleted = await async_client.delete("/api/v1/extraction/content/2024-03-01")
        assert deleted.json() == {"articlesDeleted": 8, "imagesDeleted": 3}

        info = await async_client.get("/api/v1/extraction/date/2024-03-01")
        assert info.json()["exists"] is False
        assert info.json()["pdfExists"] is True

    async def test_bad_date(self, async_client):
        response = await async_client.delete("/api/v1/extraction/content/yesterday")

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_DATE"


class TestLogsAndJobs:
    async def test_logs_filtered_by_job(self, async_client, orchestrator, archived_date):
        run = await async_client.post("/api/v1/extraction/run", json={"date": "2024-03-01"})
        job_id = run.json()["jobId"]
        orchestrator.wait_for(job_id, timeout=5)

        response = await async_client.get("/api/v1/extraction/logs", params={"jobId": job_id, "level": "INFO"})

        body = response.json()
        assert response.status_code == 200
        assert body["total"] > 0
        assert all(entry["job_id"] == job_id for entry in body["logs"])
        assert all(entry["level"] == "INFO" for entry in body["logs"])
        assert "pdf-ingestion" in body["modules"]

    async def test_logs_reject_unknown_level(self, async_client):
        response = await async_client.get("/api/v1/extraction/logs", params={"level": "TRACE"})

        assert response.status_code == 422

    async def test_log_stats(self, async_client, extraction_log):
        extraction_log.error("external-fetch", "SourceFetchFailed(Timeout): Fuente 3: timed out")
        extraction_log.error("external-fetch", "SourceFetchFailed(Timeout): Fuente 3: timed out")
        extraction_log.error("pdf-ingestion", "Job failed: PARSE_FAILED: no text")
        extraction_log.warning("orchestrator", "Job completed with failures")
        extraction_log.info("pdf-ingestion", "Downloading digest")

        response = await async_client.get("/api/v1/extraction/logs/stats")

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 5
        assert (body["errorCount"], body["warnCount"], body["infoCount"], body["debugCount"]) == (3, 1, 1, 0)
        assert body["topErrors"][0] == {"message": "SourceFetchFailed(Timeout): Fuente 3: timed out", "count": 2}
        assert len(body["dailyStats"]) == 1
        assert body["dailyStats"][0]["errorCount"] == 3

    async def test_list_and_get_jobs(self, async_client, orchestrator, archived_date):
        run = await async_client.post("/api/v1/extraction/run", json={"date": "2024-03-01"})
        job_id = run.json()["jobId"]
        orchestrator.wait_for(job_id, timeout=5)

        listing = await async_client.get("/api/v1/extraction/jobs", params={"kind": "pdf_ingestion"})
        assert listing.json()["total"] == 1
        assert listing.json()["jobs"][0]["id"] == job_id

        job = await async_client.get(f"/api/v1/extraction/jobs/{job_id}")
        assert job.json()["status"] == "completed"
        assert job.json()["targetDate"] == "2024-03-01"

        missing = await async_client.get("/api/v1/extraction/jobs/nope")
        assert missing.status_code == 404
        assert missing.json()["error"] == "JOB_NOT_FOUND"


class TestExternalSources:
    @pytest.fixture
    async def source(self, async_client):
        response = await async_client.post(
            "/api/v1/external-sources",
            json={
                "name": " Milenio ",
                "baseUrl": "https://milenio.test",
                "rssUrl": "https://milenio.test/rss",
                "logoUrl": "",
                "fetchFrequencyMinutes": 30,
            },
        )
        assert response.status_code == 201
        return response.json()

    async def test_create_returns_camel_case(self, source):
        assert source["name"] == "Milenio"
        assert source["baseUrl"] == "https://milenio.test"
        assert source["logoUrl"] is None
        assert source["fetchFrequencyMinutes"] == 30
        assert source["isActive"] is True
        assert source["lastFetch"] is None

    async def test_frequency_floor(self, async_client):
        response = await async_client.post(
            "/api/v1/external-sources",
            json={"name": "Rápida", "baseUrl": "https://rapida.test", "fetchFrequencyMinutes": 5},
        )

        assert response.status_code == 422

    async def test_base_url_must_be_web(self, async_client):
        response = await async_client.post("/api/v1/external-sources", json={"name": "Local", "baseUrl": "ftp://x"})

        assert response.status_code == 422

    async def test_update_toggle_delete(self, async_client, source):
        url = f"/api/v1/external-sources/{source['id']}"

        updated = await async_client.put(url, json={"fetchFrequencyMinutes": 120})
        assert updated.json()["fetchFrequencyMinutes"] == 120
        assert updated.json()["rssUrl"] == "https://milenio.test/rss"

        toggled = await async_client.patch(f"{url}/toggle")
        assert toggled.json()["isActive"] is False

        listing = await async_client.get("/api/v1/external-sources")
        assert [item["id"] for item in listing.json()] == [source["id"]]

        deleted = await async_client.delete(url)
        assert deleted.status_code == 204
        missing = await async_client.get(url)
        assert missing.status_code == 404
        assert missing.json()["error"] == "SOURCE_NOT_FOUND"

    async def test_fetch_single_source(self, async_client, orchestrator, source, feed_server, rss_feed):
        feed_server.route(
            "https://milenio.test/rss",
            content=rss_feed([{"title": "Nota uno", "link": "https://milenio.test/nota-1"}]),
        )

        response = await async_client.post(f"/api/v1/external-sources/{source['id']}/fetch")

        assert response.status_code == 202
        job = orchestrator.wait_for(response.json()["jobId"], timeout=5)
        assert job.status == JobStatus.COMPLETED.value
        assert job.source_id == source["id"]
        assert job.result["articlesCreated"] == 1

    async def test_fetch_unknown_source(self, async_client, orchestrator):
        response = await async_client.post("/api/v1/external-sources/999/fetch")

        assert response.status_code == 404
        assert response.json()["error"] == "SOURCE_NOT_FOUND"
        assert orchestrator.list_jobs()[1] == 0

    async def test_fetch_all_without_sources(self, async_client, orchestrator):
        response = await async_client.post("/api/v1/external-sources/fetch")

        assert response.status_code == 202
        job = orchestrator.wait_for(response.json()["jobId"], timeout=5)
        assert job.status == JobStatus.COMPLETED.value
        assert job.result["articlesCreated"] == 0


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/v1/health"])
    async def test_health(self, async_client, path):
        response = await async_client.get(path)

        assert response.status_code == 200
        assert response.json()["database"] == "healthy"
