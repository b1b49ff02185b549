"""Render assistant replies as lightly styled HTML.

The formatter is an ordered pipeline of small text stages. Link detection
runs first on whitespace-delimited tokens so that URLs are turned into
anchors before any markdown-style substitution touches the text; every
later stage works on the rejoined string, anchors included.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any, Callable, Sequence

logger = logging.getLogger(__name__)

LINK_CLASS = "chat-link"
LIST_CLASS = "list-disc list-inside space-y-1 my-2"
MAX_LINK_DISPLAY = 50
TRUNCATED_LINK_DISPLAY = 47

_WHITESPACE_SPLIT_RE = re.compile(r"(\s+)")
_URL_PREFIX_RE = re.compile(r"^(?:https?://|www\.)")
_TRAILING_PUNCTUATION_RE = re.compile(r"[.,;!?]+$")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_BULLET_ITEM_RE = re.compile(r"^[*\-+]\s+(.+)$", re.MULTILINE)
_NUMBERED_ITEM_RE = re.compile(r"^\d+\.\s+(.+)$", re.MULTILINE)
_LIST_ITEM = r"<li>(?:(?!<li>).)*?</li>"
_LIST_RUN_RE = re.compile(rf"{_LIST_ITEM}(?:(?:<br>)?{_LIST_ITEM})*")


def _render_link(token: str) -> str:
    match = _TRAILING_PUNCTUATION_RE.search(token)
    trailing = match.group(0) if match else ""
    url = token[: len(token) - len(trailing)] if trailing else token
    if not url or not _URL_PREFIX_RE.match(url):
        return token
    href = f"https://{url}" if url.startswith("www.") else url
    display = url
    if len(url) > MAX_LINK_DISPLAY:
        display = f"{url[:TRUNCATED_LINK_DISPLAY]}..."
    return (
        f'<a href="{href}" target="_blank" rel="noopener noreferrer" '
        f'class="{LINK_CLASS}">{display}</a>{trailing}'
    )


def linkify(text: str) -> str:
    """Turn bare ``http(s)://`` and ``www.`` tokens into anchors.

    Post-condition: every other character of ``text`` is preserved, including
    the exact whitespace between tokens.
    """

    parts = _WHITESPACE_SPLIT_RE.split(text)
    rendered: list[str] = []
    for part in parts:
        if not part or part.isspace() or "<" in part or ">" in part:
            rendered.append(part)
        elif _URL_PREFIX_RE.match(part):
            rendered.append(_render_link(part))
        else:
            rendered.append(part)
    return "".join(rendered)


def bold(text: str) -> str:
    """``**x**`` becomes ``<strong>x</strong>``; must run before :func:`italic`."""

    return _BOLD_RE.sub(r"<strong>\1</strong>", text)


def italic(text: str) -> str:
    """Any remaining ``*x*`` pair becomes ``<em>x</em>``, stray stars included."""

    return _ITALIC_RE.sub(r"<em>\1</em>", text)


def bullet_items(text: str) -> str:
    return _BULLET_ITEM_RE.sub(r"<li>\1</li>", text)


def numbered_items(text: str) -> str:
    return _NUMBERED_ITEM_RE.sub(r"<li>\1</li>", text)


def line_breaks(text: str) -> str:
    """Newlines become ``<br>``; no raw newline survives this stage."""

    return text.replace("\n", "<br>")


def paragraphs(text: str) -> str:
    """Blank lines (two adjacent ``<br>``) become a paragraph boundary."""

    return text.replace("<br><br>", "</p><p>")


def _wrap_list(match: re.Match[str]) -> str:
    items = match.group(0).replace("</li><br><li>", "</li><li>")
    return f'<ul class="{LIST_CLASS}">{items}</ul>'


def group_lists(text: str) -> str:
    """Wrap each run of consecutive ``<li>`` elements in a single ``<ul>``.

    Bulleted and numbered items are not distinguished; a run only ends at
    something other than a single ``<br>``.
    """

    return _LIST_RUN_RE.sub(_wrap_list, text)


def outer_wrap(text: str) -> str:
    """Guarantee block-level output.

    Text that already holds paragraph markup gets one more ``<p>`` around it,
    which nests when the text itself started with ``<p>``. Text with neither
    paragraphs nor a list is wrapped in a single paragraph.
    """

    if "<p>" in text:
        return f"<p>{text}</p>"
    if "<ul" not in text:
        return f"<p>{text}</p>"
    return text


@dataclass(frozen=True, slots=True)
class Stage:
    name: str
    apply: Callable[[str], str]


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage("linkify", linkify),
    Stage("bold", bold),
    Stage("italic", italic),
    Stage("bullet_items", bullet_items),
    Stage("numbered_items", numbered_items),
    Stage("line_breaks", line_breaks),
    Stage("paragraphs", paragraphs),
    Stage("group_lists", group_lists),
    Stage("outer_wrap", outer_wrap),
)


class ResponseFormatter:
    """Run raw assistant text through the formatting stages in order."""

    def __init__(self, stages: Sequence[Stage] = DEFAULT_STAGES) -> None:
        self._stages = tuple(stages)

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    def format(self, text: Any) -> str:
        if not text:
            return ""
        if not isinstance(text, str):
            logger.warning("formatter.coerce type=%s", type(text).__name__)
            text = str(text)
        for stage in self._stages:
            text = stage.apply(text)
        return text


_DEFAULT_FORMATTER = ResponseFormatter()


def format_bot_response(text: Any) -> str:
    """Return HTML for an assistant reply; empty input yields ``""``."""

    return _DEFAULT_FORMATTER.format(text)


__all__ = [
    "DEFAULT_STAGES",
    "ResponseFormatter",
    "Stage",
    "format_bot_response",
]
