from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from extraction_orchestrator.core.exceptions import ValidationError
from extraction_orchestrator.utils.date_utils import next_daily_run, parse_iso_date, to_utc_naive
from extraction_orchestrator.utils.dedupe_utils import external_article_key, pdf_article_key, pdf_image_key
from extraction_orchestrator.utils.string_utils import normalize_title, strip_html
from extraction_orchestrator.utils.url_utils import canonicalize_url


class TestCanonicalizeUrl:
    def test_strips_tracking_params_and_fragment(self):
        url = "HTTPS://News.Test/nota/?utm_source=x&id=7&fbclid=abc#comentarios"
        assert canonicalize_url(url) == "https://news.test/nota?id=7"

    def test_sorts_remaining_params(self):
        assert canonicalize_url("https://news.test/a?b=2&a=1") == "https://news.test/a?a=1&b=2"

    def test_root_path_keeps_slash(self):
        assert canonicalize_url("https://news.test") == "https://news.test/"
        assert canonicalize_url("https://news.test/") == "https://news.test/"

    def test_empty(self):
        assert canonicalize_url("") == ""


class TestDedupeKeys:
    def test_pdf_key_ignores_case_accents_and_punctuation(self):
        digest_date = date(2024, 3, 1)
        assert pdf_article_key(digest_date, "ocho-columnas", "Reforma Judicial: ¡avanza!") == \
            pdf_article_key(digest_date, "ocho-columnas", "reforma judicial avanza")
        assert pdf_article_key(digest_date, "ocho-columnas", "Sesión") == \
            pdf_article_key(digest_date, "ocho-columnas", "SESION")

    def test_pdf_key_depends_on_date_and_section(self):
        key = pdf_article_key(date(2024, 3, 1), "ocho-columnas", "Nota")
        assert key != pdf_article_key(date(2024, 3, 2), "ocho-columnas", "Nota")
        assert key != pdf_article_key(date(2024, 3, 1), "dof", "Nota")
        assert key.startswith("pdf:")

    def test_image_and_article_keys_never_collide(self):
        digest_date = date(2024, 3, 1)
        assert pdf_image_key(digest_date, "cartones", "x") != pdf_article_key(digest_date, "cartones", "x")

    def test_external_key_uses_canonical_url(self):
        assert external_article_key(1, "https://news.test/nota/?utm_medium=rss") == \
            external_article_key(1, "https://NEWS.test/nota")
        assert external_article_key(1, "https://news.test/nota") != external_article_key(2, "https://news.test/nota")


class TestStringUtils:
    def test_normalize_title(self):
        assert normalize_title("  Información   GENERAL, hoy ") == "informacion general hoy"

    def test_strip_html(self):
        assert strip_html("<p>Hola&nbsp;<b>mundo</b></p>") == "Hola mundo"
        assert strip_html("") == ""


class TestDateUtils:
    def test_parse_iso_date(self):
        assert parse_iso_date("2024-03-01") == date(2024, 3, 1)

    def test_parse_iso_date_rejects_garbage(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_iso_date("01/03/2024")
        assert exc_info.value.error_code == "INVALID_DATE"

    def test_next_daily_run(self):
        tz = ZoneInfo("America/Mexico_City")
        assert next_daily_run(datetime(2024, 3, 1, 7, 0, tzinfo=tz), time(8, 0)) == datetime(2024, 3, 1, 8, 0, tzinfo=tz)
        assert next_daily_run(datetime(2024, 3, 1, 8, 0, tzinfo=tz), time(8, 0)) == datetime(2024, 3, 2, 8, 0, tzinfo=tz)

    def test_to_utc_naive(self):
        local = datetime(2024, 3, 1, 8, 0, tzinfo=ZoneInfo("America/Mexico_City"))
        assert to_utc_naive(local) == datetime(2024, 3, 1, 14, 0)
