"""Smart Assist web front end and backend-for-frontend package."""

from __future__ import annotations

from .config import Settings
from .formatter import ResponseFormatter, format_bot_response

__all__ = [
    "Settings",
    "ResponseFormatter",
    "format_bot_response",
    "ChatbotClient",
    "create_app",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "ChatbotClient":
        from .chatbot import ChatbotClient

        return ChatbotClient
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'smartassist' has no attribute {name}")
