"""Document library metadata: storage, search and pagination."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import json
import logging
import math
from pathlib import Path
import threading
from urllib.parse import quote
from typing import Generic, Iterable, Sequence, TypeVar
from uuid import uuid4

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


@dataclass(slots=True)
class Document:
    """Metadata describing a document offered in the library."""

    id: str
    name: str
    description: str
    original_file_name: str
    type: str
    size: int
    upload_date: str
    download_url: str
    keywords: list[str] = field(default_factory=list)
    uploaded_by: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            description=str(data.get("description") or ""),
            original_file_name=str(data.get("original_file_name", "")),
            type=str(data.get("type") or document_type_for(str(data.get("original_file_name", "")))),
            size=int(data.get("size") or 0),
            upload_date=str(data.get("upload_date", "")),
            download_url=str(data.get("download_url", "")),
            keywords=[str(keyword) for keyword in data.get("keywords") or []],
            uploaded_by=data.get("uploaded_by"),
        )


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


def document_type_for(file_name: str) -> str:
    return "pptx" if file_name.lower().endswith((".pptx", ".ppt")) else "pdf"


def format_file_size(size: int) -> str:
    """Human readable size using base 1024 (``1.5 MB``)."""

    if size <= 0:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    if value.is_integer():
        value = int(value)
    return f"{value} {_SIZE_UNITS[index]}"


def filter_documents(documents: Iterable[Document], query: str | None = None, type: str = "all") -> list[Document]:
    """Match ``query`` against name, description and keywords, case-insensitively."""

    needle = (query or "").strip().lower()
    matches: list[Document] = []
    for document in documents:
        if type != "all" and document.type != type:
            continue
        if needle and not (
            needle in document.name.lower()
            or needle in document.description.lower()
            or any(needle in keyword.lower() for keyword in document.keywords)
        ):
            continue
        matches.append(document)
    return matches


def paginate(items: Sequence[T], page: int, page_size: int) -> Page[T]:
    total = len(items)
    total_pages = math.ceil(total / page_size) if page_size > 0 else 0
    start = (page - 1) * page_size
    return Page(
        items=list(items[start : start + page_size]),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


class DocumentCatalog:
    """File-based repository for the documents shown in the library."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._write([])

    @property
    def path(self) -> Path:
        return self._path

    def list_documents(self) -> list[Document]:
        with self._lock:
            records = self._read()
        documents = [Document.from_dict(item) for item in records]
        documents.sort(key=lambda document: document.upload_date, reverse=True)
        return documents

    def get(self, document_id: str) -> Document | None:
        for document in self.list_documents():
            if document.id == document_id:
                return document
        return None

    def add(
        self,
        *,
        name: str,
        original_file_name: str,
        size: int,
        description: str | None = None,
        download_url: str | None = None,
        keywords: Iterable[str] | None = None,
        uploaded_by: str | None = None,
    ) -> Document:
        document_id = uuid4().hex
        document = Document(
            id=document_id,
            name=name,
            description=description or "",
            original_file_name=original_file_name,
            type=document_type_for(original_file_name),
            size=size,
            upload_date=datetime.now(timezone.utc).isoformat(),
            download_url=download_url or f"/api/document?path={quote(original_file_name)}",
            keywords=[keyword.strip() for keyword in keywords or [] if keyword.strip()],
            uploaded_by=uploaded_by,
        )
        with self._lock:
            records = self._read()
            records.append(document.to_dict())
            self._write(records)
        logger.info("catalog.document.added id=%s file=%s", document.id, original_file_name)
        return document

    def remove(self, document_id: str) -> bool:
        with self._lock:
            records = self._read()
            remaining = [item for item in records if item.get("id") != document_id]
            if len(remaining) == len(records):
                return False
            self._write(remaining)
        logger.info("catalog.document.removed id=%s", document_id)
        return True

    def _read(self) -> list[dict]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            logger.warning("catalog.corrupt path=%s", self._path)
            return []
        return [item for item in data if isinstance(item, dict) and item.get("id")] if isinstance(data, list) else []

    def _write(self, records: list[dict]) -> None:
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, indent=2)


__all__ = [
    "Document",
    "DocumentCatalog",
    "Page",
    "document_type_for",
    "filter_documents",
    "format_file_size",
    "paginate",
]
