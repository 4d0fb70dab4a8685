"""Tests for the retrieval orchestrator."""

import pytest

from services.retrieval.RetrievalService import RetrievalService
from shared.exceptions.errors import GenerationError, NotFoundError, ValidationError

TEXT = "".join(chr(97 + i % 26) for i in range(4500))
OTHER_TEXT = "".join(chr(65 + i % 26) for i in range(3000))


def _page(text: str) -> str:
    return f"<html><body><p>{text}</p></body></html>"


def _ingest(run, fake_web, url: str, text: str) -> str:
    fake_web.pages[url] = _page(text)
    return run(lambda c: c.ingestion_service.do_ingest(url, "url", credential="key-1")).document_id


def test_answer_uses_only_chunks_of_the_document(run, fake_web, fake_ollama) -> None:
    """4500 chars, W=2000, O=200: the prompt holds the 3 chunks of that document only."""
    document_id = _ingest(run, fake_web, "http://example.test/a", TEXT)
    _ingest(run, fake_web, "http://example.test/b", OTHER_TEXT)

    answer = run(lambda c: c.retrieval_service.do_answer("What is this about?", document_id, credential="key-1"))

    assert answer == "The answer."
    prompt = fake_ollama.last_prompt
    assert prompt.startswith("Based on the following information, please answer the question.\n\nContext information:\n")
    assert prompt.endswith("\n\nQuestion: What is this about?\n\nAnswer:")
    context = prompt.split("Context information:\n", 1)[1].split("\n\nQuestion:", 1)[0]
    assert sorted(context.split("\n\n")) == sorted([TEXT[0:2000], TEXT[1800:3800], TEXT[3600:4500]])
    assert OTHER_TEXT[:100] not in prompt


def test_answer_records_access(run, container, fake_qdrant, fake_web) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a", TEXT)
    metadata = fake_qdrant.points(container.registry.metadata_collection)[0]["payload"]
    metadata["last_accessed_at"] = "2020-01-01T00:00:00+00:00"

    run(lambda c: c.retrieval_service.do_answer("question", document_id, credential="key-1"))

    assert metadata["last_accessed_at"] > "2020-01-01T00:00:00+00:00"
    assert metadata["uploaded_at"] != "2020-01-01T00:00:00+00:00"


def test_answer_survives_failed_access_recording(run, fake_qdrant, fake_web) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a", TEXT)
    fake_qdrant.reject_filtered_search = True
    fake_qdrant.fail_set_payload = True

    answer = run(lambda c: c.retrieval_service.do_answer("question", document_id, credential="key-1"))
    assert answer == "The answer."


def test_unknown_document_has_no_context(run, fake_web, fake_ollama) -> None:
    _ingest(run, fake_web, "http://example.test/a", TEXT)
    with pytest.raises(NotFoundError) as exc_info:
        run(lambda c: c.retrieval_service.do_answer("question", "no-such-document", credential="key-1"))
    assert exc_info.value.code == "NO_CONTEXT_FOUND"
    assert exc_info.value.status_code == 404
    assert fake_ollama.chat_requests == []


def test_evicted_document_has_no_context(run, fake_web) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a", TEXT)
    run(lambda c: c.registry.do_delete_document(document_id))
    with pytest.raises(NotFoundError):
        run(lambda c: c.retrieval_service.do_answer("question", document_id, credential="key-1"))


@pytest.mark.parametrize(
    "query, document_id, credential, code",
    [
        ("question", "doc", None, "API_KEY_MISSING"),
        ("", "doc", "key", "QUERY_MISSING"),
        ("   ", "doc", "key", "QUERY_MISSING"),
        ("question", "", "key", "DOCUMENT_ID_MISSING"),
    ],
)
def test_answer_validation(run, query, document_id, credential, code) -> None:
    with pytest.raises(ValidationError) as exc_info:
        run(lambda c: c.retrieval_service.do_answer(query, document_id, credential=credential))
    assert exc_info.value.code == code


def test_generation_failure_is_a_generation_error(run, fake_web, fake_ollama) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a", TEXT)
    fake_ollama.fail_chat = True
    with pytest.raises(GenerationError) as exc_info:
        run(lambda c: c.retrieval_service.do_answer("question", document_id, credential="key-1"))
    assert exc_info.value.status_code == 502


def test_build_prompt_joins_texts_with_blank_lines() -> None:
    prompt = RetrievalService.build_prompt("Why?", ["first", "second"])
    assert prompt == (
        "Based on the following information, please answer the question.\n\n"
        "Context information:\nfirst\n\nsecond\n\n"
        "Question: Why?\n\nAnswer:"
    )
