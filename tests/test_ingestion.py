"""Tests for the ingestion orchestrator."""

import os

import pytest

from shared.exceptions.errors import EmbeddingError, ExtractionError, ValidationError
from shared.helper.HelperIdentity import derive_point_id, hash_owner_key

URL = "http://example.test/article"
TEXT = "".join(chr(97 + i % 26) for i in range(4500))


def _page(text: str) -> str:
    return f"<html><head><style>p {{color: red}}</style><script>var x = 1;</script></head><body><p>{text}</p></body></html>"


def _chunks(fake_qdrant, container, document_id: str) -> list[dict]:
    return sorted(
        (p for p in fake_qdrant.points(container.registry.chunk_collection) if p["payload"]["document_id"] == document_id),
        key=lambda p: p["payload"]["chunk_index"],
    )


def test_ingest_url_stores_chunks_and_metadata(run, container, fake_qdrant, fake_web) -> None:
    fake_web.pages[URL] = _page(TEXT)
    result = run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))

    assert result.is_duplicate is False
    assert result.chunk_count == 3
    chunks = _chunks(fake_qdrant, container, result.document_id)
    assert [p["payload"]["text"] for p in chunks] == [TEXT[0:2000], TEXT[1800:3800], TEXT[3600:]]
    assert [p["id"] for p in chunks] == [derive_point_id(result.document_id, i) for i in range(3)]
    assert chunks[0]["payload"]["chunk_key"] == f"{result.document_id}_0"
    assert chunks[0]["payload"]["source_type"] == "url"

    metadata = fake_qdrant.points(container.registry.metadata_collection)
    assert len(metadata) == 1
    payload = metadata[0]["payload"]
    assert payload["document_id"] == result.document_id
    assert payload["owner_key_hash"] == hash_owner_key("key-1")
    assert payload["original_name"] == URL
    assert payload["uploaded_at"] == payload["last_accessed_at"]


def test_ingest_same_url_twice_is_a_duplicate(run, container, fake_qdrant, fake_web) -> None:
    fake_web.pages[URL] = _page(TEXT)
    first = run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))
    second = run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))

    assert second.is_duplicate is True
    assert second.document_id == first.document_id
    assert len(fake_qdrant.points(container.registry.metadata_collection)) == 1
    assert len(fake_qdrant.points(container.registry.chunk_collection)) == 3


def test_duplicate_detection_is_scoped_to_the_owner(run, container, fake_qdrant, fake_web) -> None:
    fake_web.pages[URL] = _page(TEXT)
    first = run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))
    other = run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-2"))

    assert other.is_duplicate is False
    assert other.document_id != first.document_id
    assert len(fake_qdrant.points(container.registry.metadata_collection)) == 2


def test_ingest_pdf_removes_staged_file(run, container, fake_qdrant, make_pdf) -> None:
    path = make_pdf("1712345678901-report.pdf", ["Quarterly report", "Revenue grew by ten percent."])
    result = run(lambda c: c.ingestion_service.do_ingest(path, "pdf", credential="key-1", staged=True))

    assert not os.path.exists(path)
    metadata = fake_qdrant.points(container.registry.metadata_collection)[0]["payload"]
    assert metadata["original_name"] == "report.pdf"
    assert metadata["source_type"] == "pdf"
    chunk_text = _chunks(fake_qdrant, container, result.document_id)[0]["payload"]["text"]
    assert "Revenue grew by ten percent." in chunk_text


def test_staged_file_is_removed_on_failure(run, tmp_path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")
    with pytest.raises(ExtractionError):
        run(lambda c: c.ingestion_service.do_ingest(str(path), "pdf", credential="key-1", staged=True))
    assert not path.exists()


@pytest.mark.parametrize(
    "source, source_type, credential, code",
    [
        (URL, "url", None, "API_KEY_MISSING"),
        (URL, "url", "", "API_KEY_MISSING"),
        (URL, "docx", "key", "UNSUPPORTED_TYPE"),
        ("ftp://example.test/file", "url", "key", "INVALID_URL"),
        ("http://", "url", "key", "INVALID_URL"),
        ("/nowhere/missing.pdf", "pdf", "key", "FILE_NOT_FOUND"),
    ],
)
def test_ingest_validation_errors(run, fake_ollama, source, source_type, credential, code) -> None:
    with pytest.raises(ValidationError) as exc_info:
        run(lambda c: c.ingestion_service.do_ingest(source, source_type, credential=credential))
    assert exc_info.value.code == code
    assert fake_ollama.embed_calls == 0


def test_missing_credential_maps_to_401() -> None:
    assert ValidationError("API key is not provided", code="API_KEY_MISSING").status_code == 401
    assert ValidationError("bad", code="INVALID_URL").status_code == 400


def test_empty_page_is_an_extraction_error(run, container, fake_qdrant, fake_web) -> None:
    fake_web.pages[URL] = "<html><body><script>only();</script>   </body></html>"
    with pytest.raises(ExtractionError) as exc_info:
        run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))
    assert exc_info.value.code == "EMPTY_CONTENT"
    assert fake_qdrant.points(container.registry.metadata_collection) == []


def test_unreachable_url_is_an_extraction_error(run) -> None:
    with pytest.raises(ExtractionError) as exc_info:
        run(lambda c: c.ingestion_service.do_ingest("http://example.test/missing", "url", credential="key-1"))
    assert exc_info.value.code == "URL_FETCH_FAILED"


def test_failed_batch_leaves_no_metadata(run, container, fake_qdrant, fake_ollama, fake_web) -> None:
    """Batches stored before the failure stay behind as unpublished chunks."""
    container.ingestion_service.chunk_size = 100
    container.ingestion_service.chunk_overlap = 10
    fake_web.pages[URL] = _page(TEXT[:1000])
    fake_ollama.fail_embed_on_call = 3

    with pytest.raises(EmbeddingError):
        run(lambda c: c.ingestion_service.do_ingest(URL, "url", credential="key-1"))

    assert fake_qdrant.points(container.registry.metadata_collection) == []
    # 12 chunks in batches of 5: the first two batches were stored
    assert len(fake_qdrant.points(container.registry.chunk_collection)) == 10
