"""Forward browser requests to the chatbot, lead, upload and document backends."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import time
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from .config import Settings
from .observability import MetricsRecorder
from .validation import LeadForm, validation_messages

logger = logging.getLogger(__name__)

LEAD_FIELDS = ("name", "email", "phone", "subject", "message")


class ProxyError(RuntimeError):
    """A proxied request failed; ``status_code`` is what the browser should see."""

    def __init__(self, message: str, *, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(slots=True)
class ProxyResult:
    payload: Any
    status_code: int = 200


@dataclass(slots=True)
class UploadFile:
    """A file received from the browser, held in memory for forwarding."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class DocumentPayload:
    content: bytes
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)


def extract_error_message(response: httpx.Response, default: str = "Upload failed") -> str:
    """Pull a readable error out of a backend failure response.

    JSON bodies yield ``detail``, then ``message``, then the whole document;
    anything else yields the raw text.
    """

    try:
        data = response.json()
    except ValueError:
        return response.text or default
    if isinstance(data, dict):
        for key in ("detail", "message"):
            value = data.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return json.dumps(data)


def build_upload_form(
    files: Sequence[UploadFile], descriptions: Sequence[str | None]
) -> tuple[list[tuple[str, tuple[str, bytes, str]]], dict[str, list[str]]]:
    """Pair each file with its description; missing ones default to ``"<name> document"``."""

    multipart_files = []
    form_descriptions: list[str] = []
    for index, upload in enumerate(files):
        multipart_files.append(
            ("files", (upload.filename, upload.content, upload.content_type or "application/octet-stream"))
        )
        description = descriptions[index] if index < len(descriptions) else None
        form_descriptions.append((description or "").strip() or f"{upload.filename} document")
    return multipart_files, {"descriptions": form_descriptions}


def resolve_document_url(path: str, *, backend_url: str, legacy_backend_url: str | None) -> str:
    if path.startswith(("http://", "https://")):
        if legacy_backend_url:
            return path.replace(legacy_backend_url, backend_url)
        return path
    return f"{backend_url}{path if path.startswith('/') else '/' + path}"


class BackendProxy:
    """Thin pass-through from the browser-facing API to the backends."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.Client | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._settings = settings
        self._http = http_client or httpx.Client()
        self._metrics = metrics

    def forward_chat(self, payload: Any) -> ProxyResult:
        response = self._send("chatbot", "POST", self._settings.chatbot_api_url, json=payload, timeout=self._settings.chatbot_timeout)
        if not response.is_success:
            return ProxyResult({"error": f"API error: {response.status_code}"}, response.status_code)
        return ProxyResult(self._json(response))

    def forward_lead(self, payload: Any) -> ProxyResult:
        if not isinstance(payload, dict) or any(not payload.get(name) for name in LEAD_FIELDS):
            return ProxyResult({"error": "All fields are required"}, 400)
        try:
            form = LeadForm(**{name: payload[name] for name in LEAD_FIELDS})
        except ValidationError as exc:
            messages = validation_messages(exc)
            logger.warning("proxy.lead.invalid errors=%s", messages)
            return ProxyResult({"error": "; ".join(messages), "errors": messages}, 400)
        body = form.model_dump()
        response = self._send("lead", "POST", self._settings.lead_api_url, json=body, timeout=self._settings.lead_timeout)
        if not response.is_success:
            return ProxyResult({"error": f"Lead API error: {response.status_code}"}, response.status_code)
        data = self._json(response)
        message = data.get("message") if isinstance(data, dict) else None
        return ProxyResult(
            {
                "success": True,
                "message": message or "Lead submitted successfully",
                "data": data,
            }
        )

    def forward_upload(self, files: Sequence[UploadFile], descriptions: Sequence[str | None] = ()) -> ProxyResult:
        if not files:
            return ProxyResult({"error": "No files provided"}, 400)
        limit_mb = self._settings.upload_max_megabytes
        for upload in files:
            if upload.size > self._settings.upload_max_bytes:
                return ProxyResult({"error": f"File {upload.filename} exceeds {limit_mb}MB limit"}, 400)

        multipart_files, data = build_upload_form(files, descriptions)
        url = f"{self._settings.upload_backend_url}/upload"
        response = self._send("upload", "POST", url, files=multipart_files, data=data, timeout=self._settings.upload_timeout)
        if not response.is_success:
            message = extract_error_message(response)
            logger.error("proxy.upload.backend_error status=%s error=%s", response.status_code, message)
            return ProxyResult({"error": message}, response.status_code)
        result = self._json(response)
        logger.info("proxy.upload.completed files=%s", len(files))
        return ProxyResult(result)

    def fetch_document(self, path: str | None) -> DocumentPayload:
        if not path or not path.strip():
            raise ProxyError("Document path is required", status_code=400)
        path = path.strip()
        url = resolve_document_url(
            path,
            backend_url=self._settings.document_backend_url,
            legacy_backend_url=self._settings.legacy_document_backend_url,
        )
        response = self._send("document", "GET", url, timeout=self._settings.document_timeout)
        if not response.is_success:
            raise ProxyError("Failed to fetch document", status_code=response.status_code)
        filename = path.rstrip("/").split("/")[-1]
        return DocumentPayload(
            content=response.content,
            content_type=response.headers.get("content-type") or "application/octet-stream",
            headers={
                "Content-Disposition": f'inline; filename="{filename}"',
                "Cache-Control": "public, max-age=3600",
            },
        )

    def close(self) -> None:
        self._http.close()

    def _send(self, target: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        start = time.perf_counter()
        status: int | str = "error"
        try:
            response = self._http.request(method, url, **kwargs)
            status = response.status_code
            return response
        except httpx.HTTPError as exc:
            logger.error("proxy.%s.failed url=%s error=%s", target, url, exc)
            raise ProxyError(str(exc) or f"Failed to reach {target} backend") from exc
        finally:
            if self._metrics is not None:
                self._metrics.increment("proxy.request", target=target, status=status)
                self._metrics.record_timing("proxy.duration", time.perf_counter() - start, target=target)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProxyError("Backend returned an invalid JSON response", status_code=502) from exc


__all__ = [
    "BackendProxy",
    "DocumentPayload",
    "ProxyError",
    "ProxyResult",
    "UploadFile",
    "build_upload_form",
    "extract_error_message",
    "resolve_document_url",
]
