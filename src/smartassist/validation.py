"""Form and query validation for uploads, library search and leads."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

MAX_DOCUMENT_BYTES = 50 * 1024 * 1024
ACCEPTED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.ms-powerpoint",
    }
)
ACCEPTED_EXTENSIONS = (".pdf", ".pptx")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DocumentTypeFilter = Literal["all", "pdf", "pptx"]


class UploadDocumentForm(BaseModel):
    """Admin upload form: document metadata plus the selected file's details."""

    document_name: str
    description: str | None = Field(default=None, max_length=500)
    file_name: str
    content_type: str | None = None
    size: int = Field(ge=0)

    @field_validator("document_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Document name is required")
        if len(value) < 3:
            raise ValueError("Document name must be at least 3 characters")
        if len(value) > 100:
            raise ValueError("Document name must not exceed 100 characters")
        return value

    @field_validator("description")
    @classmethod
    def _blank_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("file_name")
    @classmethod
    def _check_file_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("File is required")
        return value

    @model_validator(mode="after")
    def _check_file(self) -> "UploadDocumentForm":
        if self.size > MAX_DOCUMENT_BYTES:
            raise ValueError("File size must be less than 50MB")
        if not is_accepted_document(self.file_name, self.content_type):
            raise ValueError("Only PDF and PPTX files are accepted")
        return self


class SearchDocumentsQuery(BaseModel):
    query: str | None = Field(default=None, max_length=200)
    type: DocumentTypeFilter = "all"
    page: int = Field(default=1, gt=0)
    page_size: int = Field(default=12, gt=0, le=100)


class LeadForm(BaseModel):
    name: str
    email: str
    phone: str
    subject: str
    message: str

    @field_validator("name", "email", "phone", "subject", "message")
    @classmethod
    def _required(cls, value: str, info) -> str:
        value = value.strip()
        if not value:
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if value and not _EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address")
        return value


def is_accepted_document(file_name: str, content_type: str | None) -> bool:
    if content_type and content_type in ACCEPTED_CONTENT_TYPES:
        return True
    return file_name.lower().endswith(ACCEPTED_EXTENSIONS)


def validation_messages(exc: ValidationError) -> list[str]:
    """Flatten a pydantic error into the messages shown to users."""

    messages: list[str] = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        if message not in messages:
            messages.append(message)
    return messages


__all__ = [
    "ACCEPTED_CONTENT_TYPES",
    "LeadForm",
    "MAX_DOCUMENT_BYTES",
    "SearchDocumentsQuery",
    "UploadDocumentForm",
    "is_accepted_document",
    "validation_messages",
]
