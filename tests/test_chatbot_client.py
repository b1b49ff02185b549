from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from smartassist.chatbot import (
    ChatbotClient,
    ChatbotError,
    ChatbotTimeoutError,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    parse_reply,
)
from smartassist.config import Settings

API_URL = "http://backend.test/query_response"


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    store: InMemoryKeyValueStore | None = None,
) -> ChatbotClient:
    settings = Settings(chatbot_api_url=API_URL, chatbot_timeout=7.5, connection_test_timeout=2.0)
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return ChatbotClient(settings, store=store or InMemoryKeyValueStore(), http_client=http_client)


def test_send_query_maps_primary_fields() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        captured["timeout"] = request.extensions["timeout"]
        return httpx.Response(
            200,
            json={
                "response": "Hello there",
                "related_documents": [
                    {"document_id": "d1", "document_name": "Guide", "download_url": "/files/guide.pdf"}
                ],
                "doc_urls": ["/files/guide.pdf"],
                "lead_flag": True,
            },
        )

    reply = _client(handler).send_query("What is new?")

    assert captured["url"] == API_URL
    assert captured["body"] == {"user_query": "What is new?"}
    assert captured["timeout"]["read"] == pytest.approx(7.5)
    assert reply.response == "Hello there"
    assert reply.related_documents[0].to_dict() == {
        "documentId": "d1",
        "documentName": "Guide",
        "downloadUrl": "/files/guide.pdf",
    }
    assert reply.doc_urls == ["/files/guide.pdf"]
    assert reply.lead_flag is True


def test_parse_reply_accepts_alternate_field_names() -> None:
    reply = parse_reply({"answer": "From answer", "documents": [{"id": "7", "name": "Deck", "url": "/deck.pptx"}]})

    assert reply.response == "From answer"
    assert reply.related_documents[0].document_id == "7"
    assert reply.related_documents[0].document_name == "Deck"
    assert reply.related_documents[0].download_url == "/deck.pptx"


def test_parse_reply_without_text_uses_placeholder() -> None:
    assert parse_reply({}).response == "No response received"
    assert parse_reply(["unexpected"]).response == "No response received"


def test_user_id_is_persisted_and_sent_on_next_query() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "ok", "user_id": "user-42"})

    store = InMemoryKeyValueStore()
    client = _client(handler, store=store)

    client.send_query("first")
    client.send_query("second")

    assert store.get("user_id") == "user-42"
    assert "user_id" not in bodies[0]
    assert bodies[1]["user_id"] == "user-42"

    client.reset_user()
    assert client.user_id() is None


def test_user_ids_are_kept_per_session() -> None:
    bodies: list[dict] = []
    assigned = iter(["alice-id", "bob-id"])

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return httpx.Response(200, json={"response": "ok", "user_id": body.get("user_id") or next(assigned)})

    store = InMemoryKeyValueStore()
    client = _client(handler, store=store)

    client.send_query("hi", session="alice")
    client.send_query("hi", session="bob")
    client.send_query("again", session="alice")

    assert [body.get("user_id") for body in bodies] == [None, None, "alice-id"]
    assert store.get("user_id:alice") == "alice-id"
    assert client.user_id("bob") == "bob-id"
    assert client.user_id() is None

    client.reset_user("alice")
    assert client.user_id("alice") is None
    assert client.user_id("bob") == "bob-id"


def test_non_success_status_raises_chatbot_error() -> None:
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(ChatbotError) as excinfo:
        client.send_query("hello")

    assert str(excinfo.value) == "Failed to get response: API error: 503 Service Unavailable"
    assert not isinstance(excinfo.value, ChatbotTimeoutError)


def test_timeout_raises_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ChatbotTimeoutError, match="Request timeout. Please try again."):
        _client(handler).send_query("hello")


def test_connection_failure_is_reported_as_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ChatbotError, match="Network error"):
        _client(handler).send_query("hello")


def test_invalid_json_raises_chatbot_error() -> None:
    client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(ChatbotError):
        client.send_query("hello")


def test_test_connection_uses_probe_query_and_short_timeout() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        captured["timeout"] = request.extensions["timeout"]
        return httpx.Response(200, json={"response": "pong"})

    assert _client(handler).test_connection() is True
    assert captured["body"] == {"user_query": "test connection"}
    assert captured["timeout"]["read"] == pytest.approx(2.0)


def test_test_connection_false_on_error_or_bad_status() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    assert _client(refuse).test_connection() is False
    assert _client(lambda request: httpx.Response(500)).test_connection() is False


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "client_state.json"
    store = JsonFileKeyValueStore(path)

    assert store.get("user_id") is None
    store.set("user_id", "abc")

    reopened = JsonFileKeyValueStore(path)
    assert reopened.get("user_id") == "abc"

    reopened.delete("user_id")
    assert JsonFileKeyValueStore(path).get("user_id") is None


def test_json_file_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "client_state.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonFileKeyValueStore(path)

    assert store.get("user_id") is None
    store.set("user_id", "fresh")
    assert store.get("user_id") == "fresh"
