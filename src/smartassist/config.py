"""Configuration helpers for the Smart Assist front end."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import TYPE_CHECKING, Final

from dotenv import load_dotenv

if TYPE_CHECKING:  # pragma: no cover
    from .observability import MetricsRecorder

load_dotenv()

_DEFAULT_CHATBOT_API_URL: Final[str] = "http://127.0.0.1:8080/query_response"
_DEFAULT_CHATBOT_TIMEOUT: Final[float] = 10.0
_DEFAULT_CONNECTION_TEST_TIMEOUT: Final[float] = 5.0
_DEFAULT_LEAD_API_URL: Final[str] = "http://127.0.0.1:8080/generate_lead"
_DEFAULT_LEAD_TIMEOUT: Final[float] = 10.0
_DEFAULT_DOCUMENT_BACKEND_URL: Final[str] = "http://127.0.0.1:8080"
_DEFAULT_LEGACY_DOCUMENT_BACKEND_URL: Final[str] = "http://127.0.0.1:6000"
_DEFAULT_DOCUMENT_TIMEOUT: Final[float] = 30.0
_DEFAULT_UPLOAD_BACKEND_URL: Final[str] = "http://127.0.0.1:8000"
_DEFAULT_UPLOAD_TIMEOUT: Final[float] = 60.0
_DEFAULT_UPLOAD_MAX_BYTES: Final[int] = 15 * 1024 * 1024
_DEFAULT_DATA_DIR: Final[str] = "data"
_DEFAULT_CONTACT_PHONE: Final[str] = "+051-8778770"
_DEFAULT_CONTACT_EMAIL: Final[str] = "info@cymax.com.pk"
_DEFAULT_NAMESPACE: Final[str] = "smartassist"


def _env_optional_bool(name: str) -> bool | None:
    """Read an optional boolean environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    msg = f"Environment variable {name} must be a boolean value (true/false)."
    raise ValueError(msg)


def _env_optional_int(name: str) -> int | None:
    """Read an optional integer environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_optional_float(name: str) -> float | None:
    """Read an optional float environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with a fallback (preserving zero)."""

    value = _env_optional_float(name)
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    value = _env_optional_bool(name)
    if value is None:
        return default
    return value


def _normalize_base_url(url: str) -> str:
    return url.strip().rstrip("/")


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    chatbot_api_url: str = _DEFAULT_CHATBOT_API_URL
    chatbot_timeout: float = _DEFAULT_CHATBOT_TIMEOUT
    connection_test_timeout: float = _DEFAULT_CONNECTION_TEST_TIMEOUT
    lead_api_url: str = _DEFAULT_LEAD_API_URL
    lead_timeout: float = _DEFAULT_LEAD_TIMEOUT
    document_backend_url: str = _DEFAULT_DOCUMENT_BACKEND_URL
    legacy_document_backend_url: str | None = _DEFAULT_LEGACY_DOCUMENT_BACKEND_URL
    document_timeout: float = _DEFAULT_DOCUMENT_TIMEOUT
    upload_backend_url: str = _DEFAULT_UPLOAD_BACKEND_URL
    upload_timeout: float = _DEFAULT_UPLOAD_TIMEOUT
    upload_max_bytes: int = _DEFAULT_UPLOAD_MAX_BYTES
    data_dir: str = _DEFAULT_DATA_DIR
    contact_phone: str = _DEFAULT_CONTACT_PHONE
    contact_email: str = _DEFAULT_CONTACT_EMAIL
    observability_metrics_enabled: bool = True
    observability_namespace: str = _DEFAULT_NAMESPACE
    observability_prometheus_enabled: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings by reading environment variables."""

        upload_max_bytes = _env_optional_int("UPLOAD_MAX_BYTES")
        legacy_url = os.getenv("LEGACY_DOCUMENT_BACKEND_URL", _DEFAULT_LEGACY_DOCUMENT_BACKEND_URL)

        return cls(
            chatbot_api_url=os.getenv("CHATBOT_API_URL", _DEFAULT_CHATBOT_API_URL).strip(),
            chatbot_timeout=_env_float("CHATBOT_API_TIMEOUT", _DEFAULT_CHATBOT_TIMEOUT),
            connection_test_timeout=_env_float(
                "CHATBOT_CONNECTION_TEST_TIMEOUT", _DEFAULT_CONNECTION_TEST_TIMEOUT
            ),
            lead_api_url=os.getenv("LEAD_API_URL", _DEFAULT_LEAD_API_URL).strip(),
            lead_timeout=_env_float("LEAD_API_TIMEOUT", _DEFAULT_LEAD_TIMEOUT),
            document_backend_url=_normalize_base_url(
                os.getenv("DOCUMENT_BACKEND_URL", _DEFAULT_DOCUMENT_BACKEND_URL)
            ),
            legacy_document_backend_url=_normalize_base_url(legacy_url) if legacy_url.strip() else None,
            document_timeout=_env_float("DOCUMENT_TIMEOUT", _DEFAULT_DOCUMENT_TIMEOUT),
            upload_backend_url=_normalize_base_url(
                os.getenv("UPLOAD_BACKEND_URL", _DEFAULT_UPLOAD_BACKEND_URL)
            ),
            upload_timeout=_env_float("UPLOAD_TIMEOUT", _DEFAULT_UPLOAD_TIMEOUT),
            upload_max_bytes=max(1, upload_max_bytes) if upload_max_bytes is not None else _DEFAULT_UPLOAD_MAX_BYTES,
            data_dir=os.getenv("DATA_DIR", _DEFAULT_DATA_DIR),
            contact_phone=os.getenv("CONTACT_PHONE", _DEFAULT_CONTACT_PHONE),
            contact_email=os.getenv("CONTACT_EMAIL", _DEFAULT_CONTACT_EMAIL),
            observability_metrics_enabled=_env_bool("OBSERVABILITY_METRICS_ENABLED", True),
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", _DEFAULT_NAMESPACE),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
        )

    @property
    def upload_max_megabytes(self) -> int:
        return max(1, round(self.upload_max_bytes / (1024 * 1024)))

    def catalog_path(self) -> Path:
        """Return the JSON file that backs the document library."""

        return Path(self.data_dir).resolve() / "documents.json"

    def user_store_path(self) -> Path:
        """Return the JSON file that persists the chatbot user id."""

        return Path(self.data_dir).resolve() / "client_state.json"

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Instantiate the configured metrics recorder."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )


__all__ = ["Settings"]
