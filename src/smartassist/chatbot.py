"""Client for the external inference backend that answers chat queries."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
import threading
from typing import Any, Protocol

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

USER_ID_KEY = "user_id"
_NO_RESPONSE = "No response received"


def user_id_key(session: str | None = None) -> str:
    """Store key for the user id of ``session`` (the shared key when ``None``)."""

    return f"{USER_ID_KEY}:{session}" if session else USER_ID_KEY


class ChatbotError(RuntimeError):
    """Raised when the inference backend cannot produce an answer."""


class ChatbotTimeoutError(ChatbotError):
    """Raised when the inference backend does not answer in time."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store, mostly useful for tests and one-off scripts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileKeyValueStore:
    """Small JSON-file backed store for client state such as the user id."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            logger.warning("client_state.corrupt path=%s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)


@dataclass(slots=True)
class DocumentReference:
    document_id: str | None
    document_name: str | None
    download_url: str | None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "documentId": self.document_id,
            "documentName": self.document_name,
            "downloadUrl": self.download_url,
        }


@dataclass(slots=True)
class ChatbotReply:
    """Answer returned by the inference backend, normalized."""

    response: str
    related_documents: list[DocumentReference] = field(default_factory=list)
    user_id: str | None = None
    doc_urls: list[str] | None = None
    lead_flag: bool = False


def _first(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def parse_reply(data: Any) -> ChatbotReply:
    """Map the backend's JSON (which has used several field names) to a reply."""

    if not isinstance(data, dict):
        return ChatbotReply(response=_NO_RESPONSE)

    raw_documents = data.get("related_documents") or data.get("documents") or []
    documents = [
        DocumentReference(
            document_id=_first(item, "document_id", "id"),
            document_name=_first(item, "document_name", "name"),
            download_url=_first(item, "download_url", "url"),
        )
        for item in raw_documents
        if isinstance(item, dict)
    ]

    doc_urls = data.get("doc_urls")
    if doc_urls is not None and not isinstance(doc_urls, list):
        doc_urls = [str(doc_urls)]

    user_id = data.get("user_id")
    return ChatbotReply(
        response=str(_first(data, "response", "answer") or _NO_RESPONSE),
        related_documents=documents,
        user_id=str(user_id) if user_id else None,
        doc_urls=[str(url) for url in doc_urls] if doc_urls else None,
        lead_flag=bool(data.get("lead_flag")),
    )


class ChatbotClient:
    """Send chat queries to the inference backend.

    One client is built per process. The backend-assigned user id is kept in
    the store under a key derived from the browser session, so every visitor
    carries their own conversation identity.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: KeyValueStore | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._store = store if store is not None else InMemoryKeyValueStore()
        self._http = http_client or httpx.Client()

    @property
    def api_url(self) -> str:
        return self._settings.chatbot_api_url

    def user_id(self, session: str | None = None) -> str | None:
        return self._store.get(user_id_key(session))

    def reset_user(self, session: str | None = None) -> None:
        self._store.delete(user_id_key(session))

    def test_connection(self) -> bool:
        """Return ``True`` when the backend answers a probe query."""

        try:
            response = self._http.post(
                self.api_url,
                json={"user_query": "test connection"},
                timeout=self._settings.connection_test_timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("chatbot.connection_test.failed url=%s error=%s", self.api_url, exc)
            return False
        return response.is_success

    def send_query(self, query: str, *, session: str | None = None) -> ChatbotReply:
        """Send ``query`` on behalf of ``session`` and return the normalized reply.

        Raises :class:`ChatbotTimeoutError` on timeouts and :class:`ChatbotError`
        for every other failure.
        """

        payload: dict[str, Any] = {"user_query": query}
        user_id = self.user_id(session)
        if user_id:
            payload["user_id"] = user_id

        logger.info("chatbot.query.start chars=%s user=%s", len(query), user_id or "-")
        try:
            response = self._http.post(self.api_url, json=payload, timeout=self._settings.chatbot_timeout)
        except httpx.TimeoutException as exc:
            logger.error("chatbot.query.timeout url=%s error=%s", self.api_url, exc)
            raise ChatbotTimeoutError("Request timeout. Please try again.") from exc
        except httpx.TransportError as exc:
            logger.error("chatbot.query.failed url=%s error=%s", self.api_url, exc)
            raise ChatbotError(f"Failed to get response: Network error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ChatbotError(f"Failed to get response: {exc}") from exc

        if not response.is_success:
            logger.error("chatbot.query.failed url=%s status=%s", self.api_url, response.status_code)
            raise ChatbotError(
                f"Failed to get response: API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ChatbotError(f"Failed to get response: {exc}") from exc

        reply = parse_reply(data)
        if reply.user_id and reply.user_id != user_id:
            self._store.set(user_id_key(session), reply.user_id)
        logger.info(
            "chatbot.query.completed chars=%s documents=%s lead=%s",
            len(reply.response),
            len(reply.related_documents),
            reply.lead_flag,
        )
        return reply

    def close(self) -> None:
        self._http.close()


__all__ = [
    "ChatbotClient",
    "ChatbotError",
    "ChatbotReply",
    "ChatbotTimeoutError",
    "DocumentReference",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "parse_reply",
    "user_id_key",
]
