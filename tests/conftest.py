"""Shared pytest configuration and fixtures.

Qdrant, Ollama and the web are replaced by in-memory fakes served through
httpx.MockTransport, so the real clients run end to end without network.
"""

import asyncio
import json
import math
import os
import re

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LIFECYCLE_SWEEP_ENABLED", "false")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RAG_ENGINE", "qdrant")
os.environ.setdefault("RAG_QDRANT_BASE_URL", "http://qdrant.test")
os.environ.setdefault("EMBED_ENGINE", "ollama")
os.environ.setdefault("EMBED_OLLAMA_BASE_URL", "http://ollama.test")
os.environ.setdefault("EMBED_VECTOR_SIZE", "8")
os.environ.setdefault("LLM_ENGINE", "ollama")
os.environ.setdefault("LLM_OLLAMA_BASE_URL", "http://ollama.test")

import httpx
import pytest

from server.api.ServiceContainer import ServiceContainer
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

_logger = setup_logging()

VECTOR_SIZE = 8
_COLLECTION_PATH = re.compile(r"^/collections/(?P<name>[^/]+)(?P<rest>/.*)?$")


def fake_embedding(text: str) -> list[float]:
    """Deterministic character-histogram embedding, never the zero vector."""
    vector = [1.0] + [0.0] * (VECTOR_SIZE - 1)
    for char in text:
        vector[ord(char) % VECTOR_SIZE] += 1.0
    return vector


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeQdrant:
    """Just enough of the Qdrant REST API for the RAG client."""

    def __init__(self) -> None:
        self.collections: dict[str, dict] = {}
        self.requests: list[tuple[str, str, dict]] = []
        self.reject_filtered_search = False
        self.fail_create = False
        self.create_races = False
        self.fail_index = False
        self.fail_set_payload = False
        self.fail_scroll = False
        self.fail_chunk_delete_for: set[str] = set()
        self.html_chunk_delete_for: set[str] = set()
        self.html_search = False

    ################ HELPERS ##################
    def points(self, collection: str) -> list[dict]:
        return list(self.collections.get(collection, {}).get("points", {}).values())

    def add_collection(self, name: str, size: int, distance: str = "Cosine") -> None:
        self.collections[name] = {"size": size, "distance": distance, "points": {}, "indexes": set()}

    @staticmethod
    def _matches(payload: dict, filter: dict | None) -> bool:
        if not filter:
            return True
        return all(payload.get(c["key"]) == c["match"]["value"] for c in filter.get("must", []))

    @staticmethod
    def _select_payload(payload: dict, with_payload) -> dict | None:
        if with_payload is True:
            return dict(payload)
        if isinstance(with_payload, list):
            return {key: payload[key] for key in with_payload if key in payload}
        return None

    @staticmethod
    def _ok(result, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json={"result": result, "status": "ok", "time": 0.001})

    @staticmethod
    def _error(status_code: int, message: str) -> httpx.Response:
        return httpx.Response(status_code, json={"status": {"error": message}})

    ################ HANDLER ##################
    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        self.requests.append((request.method, path, body))

        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")
        match = _COLLECTION_PATH.match(path)
        if not match:
            return self._error(404, "not found")
        name, rest = match.group("name"), match.group("rest") or ""
        collection = self.collections.get(name)

        if rest == "/exists":
            return self._ok({"exists": collection is not None})
        if rest == "" and request.method == "PUT":
            if self.create_races:
                # another process wins the race between existence check and create
                self.add_collection(name, body["vectors"]["size"], body["vectors"]["distance"])
                return self._error(409, f"Collection `{name}` already exists!")
            if self.fail_create:
                return self._error(500, "create failed")
            if collection is not None:
                return self._error(409, f"Collection `{name}` already exists!")
            self.add_collection(name, body["vectors"]["size"], body["vectors"]["distance"])
            return self._ok(True)
        if collection is None:
            return self._error(404, f"Collection `{name}` doesn't exist!")

        if rest == "/index":
            if self.fail_index:
                return self._error(500, "index failed")
            collection["indexes"].add(body["field_name"])
            return self._ok({"status": "completed"})
        if rest == "/points" and request.method == "PUT":
            for point in body["points"]:
                if len(point["vector"]) != collection["size"]:
                    return self._error(400, "Wrong input: Vector dimension error")
            for point in body["points"]:
                collection["points"][point["id"]] = {"id": point["id"], "vector": point["vector"], "payload": dict(point["payload"])}
            return self._ok({"status": "completed"})
        if rest == "/points/search":
            if self.html_search:
                return httpx.Response(200, text="<html><body>Gateway</body></html>")
            if "filter" in body and self.reject_filtered_search:
                return self._error(400, "Bad request: Index required but not found")
            hits = [
                {"id": p["id"], "score": _cosine(body["vector"], p["vector"]), "payload": p["payload"]}
                for p in collection["points"].values()
                if self._matches(p["payload"], body.get("filter"))
            ]
            hits.sort(key=lambda hit: hit["score"], reverse=True)
            return self._ok(hits[:body["limit"]])
        if rest == "/points/scroll":
            if self.fail_scroll:
                return self._error(500, "scroll failed")
            matching = sorted(
                (p for p in collection["points"].values() if self._matches(p["payload"], body.get("filter"))),
                key=lambda p: p["id"],
            )
            offset = body.get("offset")
            if offset is not None:
                matching = [p for p in matching if p["id"] >= offset]
            limit = body.get("limit") or 10
            page, rest_points = matching[:limit], matching[limit:]
            points = [
                {"id": p["id"], "payload": self._select_payload(p["payload"], body.get("with_payload", True))}
                for p in page
            ]
            return self._ok({"points": points, "next_page_offset": rest_points[0]["id"] if rest_points else None})
        if rest == "/points/count":
            count = sum(1 for p in collection["points"].values() if self._matches(p["payload"], body.get("filter")))
            return self._ok({"count": count})
        if rest == "/points/delete":
            if "filter" in body:
                for condition in body["filter"].get("must", []):
                    if condition["key"] == "document_id" and condition["match"]["value"] in self.fail_chunk_delete_for:
                        return self._error(500, "delete failed")
                    if condition["key"] == "document_id" and condition["match"]["value"] in self.html_chunk_delete_for:
                        # a proxy answering in place of the store
                        return httpx.Response(200, text="<html><body>Gateway</body></html>")
                doomed = [pid for pid, p in collection["points"].items() if self._matches(p["payload"], body["filter"])]
            else:
                doomed = body.get("points", [])
            for pid in doomed:
                collection["points"].pop(pid, None)
            return self._ok({"status": "completed"})
        if rest == "/points/payload":
            if self.fail_set_payload:
                return self._error(500, "payload update failed")
            for p in collection["points"].values():
                if self._matches(p["payload"], body.get("filter")):
                    p["payload"].update(body["payload"])
            return self._ok({"status": "completed"})
        return self._error(404, f"Unknown endpoint {request.method} {path}")


class FakeOllama:
    """Ollama /api/embed and /api/chat."""

    def __init__(self) -> None:
        self.embed_calls = 0
        self.fail_embed_on_call: int | None = None
        self.chat_requests: list[dict] = []
        self.answer = "The answer."
        self.fail_chat = False
        self.reject_chat_key = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        if request.url.path == "/api/embed":
            self.embed_calls += 1
            if self.fail_embed_on_call == self.embed_calls:
                return httpx.Response(500, json={"error": "model overloaded"})
            return httpx.Response(200, json={"model": body["model"], "embeddings": [fake_embedding(t) for t in body["input"]]})
        if request.url.path == "/api/chat":
            self.chat_requests.append(body)
            if self.fail_chat:
                return httpx.Response(500, json={"error": "generation failed"})
            if self.reject_chat_key:
                return httpx.Response(401, json={"error": "invalid api key"})
            return httpx.Response(200, json={"model": body["model"], "message": {"role": "assistant", "content": self.answer}, "done": True})
        if request.url.path == "/":
            return httpx.Response(200, text="Ollama is running")
        return httpx.Response(404, json={"error": "not found"})

    @property
    def last_prompt(self) -> str:
        return self.chat_requests[-1]["messages"][-1]["content"]


class FakeWeb:
    """Serves fixed HTML pages by URL."""

    def __init__(self) -> None:
        self.pages: dict[str, str] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        html = self.pages.get(str(request.url))
        if html is None:
            return httpx.Response(404, text="Not Found")
        return httpx.Response(200, text=html, headers={"Content-Type": "text/html"})


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=_logger)


@pytest.fixture
def fake_qdrant() -> FakeQdrant:
    return FakeQdrant()


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def transports(fake_qdrant, fake_ollama, fake_web) -> dict[str, httpx.MockTransport]:
    ollama_transport = httpx.MockTransport(fake_ollama.handler)
    return {
        "rag": httpx.MockTransport(fake_qdrant.handler),
        "embed": ollama_transport,
        "llm": ollama_transport,
        "loader": httpx.MockTransport(fake_web.handler),
    }


@pytest.fixture
def container(helper_config) -> ServiceContainer:
    return ServiceContainer(helper_config=helper_config)


@pytest.fixture
def run(container, transports):
    """Run `fn(container)` inside a booted container and return its result."""

    def _run(fn):
        async def scenario():
            await container.boot(transports=transports)
            try:
                return await fn(container)
            finally:
                await container.close()

        return asyncio.run(scenario())

    return _run


@pytest.fixture
def make_pdf(tmp_path):
    """Write a PDF with the given lines of text and return its path."""
    import fitz

    def _make(name: str, lines: list[str]) -> str:
        path = tmp_path / name
        doc = fitz.open()
        page = doc.new_page()
        for i, line in enumerate(lines):
            page.insert_text((72, 72 + 14 * i), line)
        doc.save(str(path))
        doc.close()
        return str(path)

    return _make
