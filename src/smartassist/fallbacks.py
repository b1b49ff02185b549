"""Replies shown in the chat when the inference backend is unavailable."""

from __future__ import annotations

_UNAVAILABLE = (
    "⚠️ Our AI assistant is temporarily unavailable. "
    "For immediate assistance, please contact us directly."
)

_TOPICS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("greeting", ("hello", "hi", "hey", "greetings")),
    ("contact", ("contact", "phone", "email", "reach")),
    ("product", ("product", "solution", "service", "offer")),
    ("pricing", ("price", "cost", "quote")),
    ("demo", ("demo", "trial", "presentation")),
)


def contact_block(phone: str, email: str) -> str:
    return f"\n\n📞 **Direct Contact:**\nPhone: {phone}\nEmail: {email}"


def classify_error(message: str) -> str | None:
    """Map a client error message to ``timeout``, ``network`` or ``server``."""

    if "timeout" in message:
        return "timeout"
    if "Network" in message or "Failed to fetch" in message:
        return "network"
    if "500" in message:
        return "server"
    return None


def detect_topic(query: str) -> str | None:
    lowered = query.lower()
    for topic, words in _TOPICS:
        if any(word in lowered for word in words):
            return topic
    return None


def compose_fallback_reply(error_message: str, query: str, *, phone: str, email: str) -> str:
    """Build the degraded-mode reply for a failed query.

    Transport failures get a reply describing the failure; anything else
    falls back to a reply chosen from the words in the user's query.
    """

    contact = contact_block(phone, email)
    kind = classify_error(error_message or "")
    if kind == "timeout":
        return (
            "⏰ The server is taking longer than usual to respond. "
            "Please try again or contact us directly for immediate assistance." + contact
        )
    if kind == "network":
        return (
            "🌐 Unable to connect to our AI assistant. "
            "Please check your internet connection or contact us directly." + contact
        )
    if kind == "server":
        return _UNAVAILABLE + contact

    topic = detect_topic(query)
    if topic == "greeting":
        return (
            "Hello! I'm having trouble connecting to our AI assistant right now, "
            f"but I'm here to help.\n\n{_UNAVAILABLE}{contact}"
        )
    if topic == "contact":
        return (
            f"📞 **Contact Information:**\nPhone: {phone}\nEmail: {email}\n"
            "Address: CyMax Technologies\n\n"
            "Feel free to reach out through any of these channels. We're here to help!"
        )
    if topic == "product":
        return (
            "🚀 CyMax Technologies specializes in AI, Cybersecurity, ICT, and ERP solutions.\n\n"
            "⚠️ Our AI assistant is temporarily unavailable, but you can learn more about "
            f"our offerings by contacting our sales team directly.{contact}"
        )
    if topic == "pricing":
        return (
            "💰 For pricing information and custom quotes, please contact our sales team "
            f"directly.{contact}\n\n"
            "We'll be happy to discuss your requirements and provide a tailored solution."
        )
    if topic == "demo":
        return (
            "🎯 We'd love to show you a demo of our solutions!\n\n"
            "⚠️ Our AI assistant is temporarily unavailable. "
            f"Please contact us directly to schedule a demonstration.{contact}"
        )
    return _UNAVAILABLE + contact


__all__ = ["classify_error", "compose_fallback_reply", "contact_block", "detect_topic"]
