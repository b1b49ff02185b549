from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from smartassist.app import create_app
from smartassist.config import Settings
from smartassist.documents import DocumentCatalog

Handler = Callable[[httpx.Request], httpx.Response]


class Backends:
    """Route outgoing backend requests by host to per-test handlers."""

    def __init__(self) -> None:
        self.handlers: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            return httpx.Response(503, json={"detail": f"no handler for {request.url.host}"})
        return handler(request)


def _settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "chatbot_api_url": "http://chat.test/query_response",
        "lead_api_url": "http://lead.test/generate_lead",
        "upload_backend_url": "http://upload.test",
        "document_backend_url": "http://docs.test",
        "legacy_document_backend_url": "http://docs.test:6000",
        "data_dir": str(tmp_path),
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def backends() -> Backends:
    return Backends()


@pytest.fixture()
def app_factory(tmp_path: Path, backends: Backends):
    def _build(**overrides: Any) -> TestClient:
        settings = _settings(tmp_path, **overrides)
        http_client = httpx.Client(transport=httpx.MockTransport(backends))
        return TestClient(create_app(settings=settings, http_client=http_client))

    return _build


@pytest.fixture()
def client(app_factory) -> TestClient:
    return app_factory()


def _seed(tmp_path: Path) -> DocumentCatalog:
    catalog = DocumentCatalog(tmp_path / "documents.json")
    catalog.add(name="Product Brochure", original_file_name="brochure.pdf", size=2048, keywords=["catalog"])
    catalog.add(name="Sales Deck", original_file_name="deck.pptx", size=4096, description="Quarterly pitch")
    return catalog


def test_chat_page_renders(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert "Smart Assist" in response.text
    assert "How can I help you today?" in response.text


def test_chat_returns_formatted_reply_and_documents(client: TestClient, backends: Backends) -> None:
    def chatbot(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "response": "See **this**: https://example.com/guide.",
                "user_id": "user-1",
                "related_documents": [
                    {"document_id": "d1", "document_name": "Guide", "download_url": "/files/guide.pdf"}
                ],
                "lead_flag": True,
            },
        )

    backends.handlers["chat.test"] = chatbot

    response = client.post("/api/chat", json={"query": "guide please"})

    assert response.status_code == 200
    data = response.json()
    assert data["error"] is False
    assert data["message"] == "See **this**: https://example.com/guide."
    assert data["html"].startswith("<p>See <strong>this</strong>: <a href=\"https://example.com/guide\"")
    assert data["related_documents"] == [
        {"documentId": "d1", "documentName": "Guide", "downloadUrl": "/files/guide.pdf"}
    ]
    assert data["lead_flag"] is True
    assert json.loads(backends.requests[0].content) == {"user_query": "guide please"}

    client.post("/api/chat", json={"query": "again"})
    assert json.loads(backends.requests[1].content) == {"user_query": "again", "user_id": "user-1"}


def test_chat_requires_query(client: TestClient, backends: Backends) -> None:
    response = client.post("/api/chat", json={"query": "   "})

    assert response.status_code == 400
    assert response.json() == {"error": "Query is required."}
    assert backends.requests == []


def test_chat_falls_back_when_backend_fails(client: TestClient, backends: Backends) -> None:
    backends.handlers["chat.test"] = lambda request: httpx.Response(500)

    response = client.post("/api/chat", json={"query": "What does a demo cost?"})

    assert response.status_code == 200
    data = response.json()
    assert data["error"] is True
    assert "+051-8778770" in data["message"]
    assert "info@cymax.com.pk" in data["message"]
    assert data["related_documents"] == []
    assert "<strong>" in data["html"]


def test_chat_status_reports_connection(client: TestClient, backends: Backends) -> None:
    assert client.get("/api/chat/status").json() == {"connected": False}

    backends.handlers["chat.test"] = lambda request: httpx.Response(200, json={"response": "ok"})

    assert client.get("/api/chat/status").json() == {"connected": True}


def test_format_endpoint(client: TestClient) -> None:
    response = client.post("/api/format", json={"text": "* a\n* b"})

    assert response.json() == {"html": '<ul class="list-disc list-inside space-y-1 my-2"><li>a</li><li>b</li></ul>'}


def test_chatbot_proxy_passthrough(client: TestClient, backends: Backends) -> None:
    backends.handlers["chat.test"] = lambda request: httpx.Response(200, json={"response": "hi"})

    response = client.post("/api/chatbot", json={"user_query": "hello"})

    assert response.status_code == 200
    assert response.json() == {"response": "hi"}


def test_chatbot_proxy_rejects_invalid_json(client: TestClient) -> None:
    response = client.post("/api/chatbot", content=b"not json", headers={"content-type": "application/json"})

    assert response.status_code == 400


def test_lead_proxy(client: TestClient, backends: Backends) -> None:
    backends.handlers["lead.test"] = lambda request: httpx.Response(200, json={"message": "Thanks"})

    missing = client.post("/api/lead", json={"name": "Ada"})
    payload = {"name": "Ada", "email": "ada@example.com", "phone": "1", "subject": "Hi", "message": "Call me"}
    accepted = client.post("/api/lead", json=payload)

    assert missing.status_code == 400
    assert missing.json() == {"error": "All fields are required"}
    assert accepted.json() == {"success": True, "message": "Thanks", "data": {"message": "Thanks"}}


def test_upload_proxy_forwards_files(client: TestClient, backends: Backends) -> None:
    captured: dict[str, Any] = {}

    def upload(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = request.content
        return httpx.Response(200, json={"status": "ok"})

    backends.handlers["upload.test"] = upload

    response = client.post(
        "/api/upload",
        files=[("files", ("a.pdf", b"%PDF-a", "application/pdf"))],
        data={"descriptions": ["Alpha"]},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert captured["path"] == "/upload"
    assert b"Alpha" in captured["body"]


def test_upload_proxy_without_files(client: TestClient) -> None:
    response = client.post("/api/upload", data={"descriptions": ["Alpha"]})

    assert response.status_code == 400
    assert response.json() == {"error": "No files provided"}


def test_document_proxy(client: TestClient, backends: Backends) -> None:
    backends.handlers["docs.test"] = lambda request: httpx.Response(
        200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"}
    )

    response = client.get("/api/document", params={"path": "http://docs.test:6000/files/guide.pdf"})

    assert response.status_code == 200
    assert response.content == b"%PDF-1.4"
    assert response.headers["content-disposition"] == 'inline; filename="guide.pdf"'
    assert response.headers["cache-control"] == "public, max-age=3600"
    assert str(backends.requests[0].url) == "http://docs.test/files/guide.pdf"


def test_document_proxy_errors(client: TestClient, backends: Backends) -> None:
    backends.handlers["docs.test"] = lambda request: httpx.Response(500)

    missing = client.get("/api/document")
    failed = client.get("/api/document", params={"path": "/files/guide.pdf"})

    assert missing.status_code == 400
    assert missing.json() == {"error": "Document path is required"}
    assert failed.status_code == 500
    assert failed.json() == {"error": "Failed to fetch document"}


def test_documents_api_filters_and_paginates(client: TestClient, tmp_path: Path) -> None:
    _seed(tmp_path)

    everything = client.get("/api/documents").json()
    decks = client.get("/api/documents", params={"type": "pptx"}).json()
    keyword = client.get("/api/documents", params={"q": "CATALOG", "page_size": 1}).json()

    assert everything["total"] == 2
    assert everything["page"] == 1
    assert everything["page_size"] == 12
    assert [item["name"] for item in decks["data"]] == ["Sales Deck"]
    assert keyword["total"] == 1
    assert keyword["total_pages"] == 1
    assert keyword["data"][0]["original_file_name"] == "brochure.pdf"


def test_documents_api_rejects_invalid_params(client: TestClient) -> None:
    response = client.get("/api/documents", params={"type": "docx"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_documents_page(client: TestClient, tmp_path: Path) -> None:
    _seed(tmp_path)

    response = client.get("/documents", params={"q": "deck"})
    empty = client.get("/documents", params={"q": "nothing"})

    assert response.status_code == 200
    assert "Document Library" in response.text
    assert "Showing 1 of 2 documents" in response.text
    assert "Sales Deck" in response.text
    assert "No documents found" in empty.text


def test_documents_page_invalid_params_fall_back_to_defaults(client: TestClient, tmp_path: Path) -> None:
    _seed(tmp_path)

    response = client.get("/documents", params={"type": "docx"})

    assert response.status_code == 400
    assert "Showing 2 of 2 documents" in response.text


def test_admin_upload_records_document(client: TestClient, backends: Backends, tmp_path: Path) -> None:
    backends.handlers["upload.test"] = lambda request: httpx.Response(200, json={"status": "ok"})

    assert "No documents uploaded yet" in client.get("/admin").text

    response = client.post(
        "/admin/documents",
        data={"document_name": "Guide", "description": "Getting started"},
        files={"file": ("guide.pdf", b"%PDF-guide", "application/pdf")},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert "uploaded=Guide" in response.headers["location"]
    documents = DocumentCatalog(tmp_path / "documents.json").list_documents()
    assert [(doc.name, doc.type, doc.size) for doc in documents] == [("Guide", "pdf", 10)]

    page = client.get("/admin", params={"uploaded": "Guide"})
    assert "Guide" in page.text
    assert "No documents uploaded yet" not in page.text


def test_admin_upload_rejects_invalid_form(client: TestClient, backends: Backends) -> None:
    short_name = client.post(
        "/admin/documents",
        data={"document_name": "ab"},
        files={"file": ("guide.pdf", b"%PDF", "application/pdf")},
    )
    wrong_type = client.post(
        "/admin/documents",
        data={"document_name": "Notes"},
        files={"file": ("notes.txt", b"text", "text/plain")},
    )

    assert short_name.status_code == 400
    assert "Document name must be at least 3 characters" in short_name.text
    assert wrong_type.status_code == 400
    assert "Only PDF and PPTX files are accepted" in wrong_type.text
    assert backends.requests == []


def test_admin_upload_reports_backend_error(client: TestClient, backends: Backends) -> None:
    backends.handlers["upload.test"] = lambda request: httpx.Response(422, json={"detail": "Duplicate file"})

    response = client.post(
        "/admin/documents",
        data={"document_name": "Guide"},
        files={"file": ("guide.pdf", b"%PDF", "application/pdf")},
    )

    assert response.status_code == 422
    assert "Duplicate file" in response.text


def test_metrics_endpoint_disabled_by_default(client: TestClient) -> None:
    response = client.get("/metrics")

    assert response.status_code == 404
    assert response.json() == {"error": "Metrics export disabled"}


def test_metrics_endpoint_exports_proxy_counters(app_factory, backends: Backends) -> None:
    backends.handlers["chat.test"] = lambda request: httpx.Response(200, json={"response": "hi"})
    client = app_factory(observability_prometheus_enabled=True)

    client.post("/api/chatbot", json={"user_query": "hello"})
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "smartassist_proxy_request_total" in response.text
    assert 'target="chatbot"' in response.text


def test_chat_rejects_invalid_json(client: TestClient) -> None:
    response = client.post("/api/chat", content=b"{", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


def test_each_browser_keeps_its_own_chatbot_identity(tmp_path: Path, backends: Backends) -> None:
    sent: list[str | None] = []
    assigned = iter(["alice-id", "bob-id"])

    def chatbot(request: httpx.Request) -> httpx.Response:
        user_id = json.loads(request.content).get("user_id")
        sent.append(user_id)
        return httpx.Response(200, json={"response": "ok", "user_id": user_id or next(assigned)})

    backends.handlers["chat.test"] = chatbot
    http_client = httpx.Client(transport=httpx.MockTransport(backends))
    app = create_app(settings=_settings(tmp_path), http_client=http_client)
    alice = TestClient(app)
    bob = TestClient(app)

    first = alice.post("/api/chat", json={"query": "hello"})
    bob.post("/api/chat", json={"query": "hello"})
    alice.post("/api/chat", json={"query": "again"})
    bob.post("/api/chat", json={"query": "again"})

    assert sent == [None, None, "alice-id", "bob-id"]
    assert "smartassist_session" in first.cookies


def test_lead_proxy_rejects_malformed_email(client: TestClient, backends: Backends) -> None:
    payload = {"name": "Ada", "email": "ada-at-example", "phone": "1", "subject": "Hi", "message": "Call me"}

    response = client.post("/api/lead", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "Please enter a valid email address"
    assert backends.requests == []


def test_documents_api_rejects_page_zero(client: TestClient) -> None:
    api = client.get("/api/documents", params={"page": 0})
    page = client.get("/documents", params={"page": 0})

    assert api.status_code == 400
    assert page.status_code == 400


def test_chat_page_wires_status_indicator_and_lead_form(client: TestClient) -> None:
    html = client.get("/").text

    assert "/api/chat/status" in html
    assert 'id="lead-form"' in html
    assert "/api/lead" in html
    assert "doc_urls" in html
