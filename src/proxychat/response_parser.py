"""Split raw bot replies into a display body and clickable suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from .exceptions import is_error_text

SUGGESTION_PATTERN = re.compile(r"\[Suggestion:\s*([^\]]+?)\]")


@dataclass(frozen=True)
class ParsedReply:
    body: str
    suggestions: list[str] = field(default_factory=list)


def parse_reply(raw_text: str | None) -> ParsedReply:
    """Extract ``[Suggestion: ...]`` spans left to right.

    Never fails. Error strings are returned verbatim with no suggestions, and
    unmatched brackets stay in the body as literal text.
    """
    text = raw_text or ""
    if is_error_text(text):
        return ParsedReply(body=text)

    suggestions: list[str] = []

    def _collect(match: re.Match[str]) -> str:
        suggestion = match.group(1).strip()
        if suggestion:
            suggestions.append(suggestion)
        return ""

    body = SUGGESTION_PATTERN.sub(_collect, text).strip()
    return ParsedReply(body=body, suggestions=suggestions)
