"""Probe the chatbot backend and optionally print a formatted answer."""

from __future__ import annotations

import argparse
import sys

from smartassist import Settings
from smartassist.chatbot import ChatbotClient, ChatbotError, InMemoryKeyValueStore
from smartassist.formatter import format_bot_response


def main(query: str | None, *, html: bool) -> int:
    settings = Settings.from_env()
    client = ChatbotClient(settings, store=InMemoryKeyValueStore())
    try:
        if not client.test_connection():
            print(f"Backend unreachable: {settings.chatbot_api_url}")
            return 1
        print(f"Backend reachable: {settings.chatbot_api_url}")
        if not query:
            return 0
        try:
            reply = client.send_query(query)
        except ChatbotError as exc:
            print(f"Query failed: {exc}")
            return 1
        print(format_bot_response(reply.response) if html else reply.response)
        for document in reply.related_documents:
            print(f"- {document.document_name}: {document.download_url}")
        return 0
    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--query", type=str, default=None, help="Send this query after the probe succeeds")
    parser.add_argument("--html", action="store_true", help="Print the answer as rendered HTML")
    args = parser.parse_args()
    sys.exit(main(args.query, html=args.html))
