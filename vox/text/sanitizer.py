"""
Text cleanup before synthesis.

Selected text usually comes from browsers, terminals or chat tools and carries
markup that sounds terrible when read aloud. `clean` strips it down to plain
prose. It is deterministic, never raises and is idempotent.
"""

import re
from typing import List, Tuple

# (pattern, replacement), applied in order
_RULES: List[Tuple["re.Pattern[str]", str]] = [
    # URLs
    (re.compile(r"https?://[^\s<>\]\)\"']+"), ""),
    # Markdown images go before links, otherwise the link rule eats "[alt](src)"
    (re.compile(r"!\[[^\]]*\]\([^\)]*\)"), ""),
    # Markdown links keep their text; the target may already be empty after URL removal
    (re.compile(r"\[([^\]]+)\]\([^\)]*\)"), r"\1"),
    # Bold / italic / underline keep their text
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"_([^_]+)_"), r"\1"),
    # Headings
    (re.compile(r"(?m)^#{1,6}\s+"), ""),
    # Fenced code blocks are dropped entirely, inline code keeps its text
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`([^`]+)`"), r"\1"),
    # Footnote markers like [3]
    (re.compile(r"\[\d+\]"), ""),
    # HTML tags
    (re.compile(r"<[^>]+>"), ""),
    # Email addresses
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), ""),
    # File system paths with at least two segments
    (re.compile(r"(?:/[\w.-]+){2,}"), ""),
    # Whitespace runs
    (re.compile(r"\s{2,}"), " "),
    # Bullet and numbered list markers at line start (repeated for nested markers)
    (re.compile(r"(?m)^[ \t]*(?:(?:[-*•]|\d+\.)[ \t]+)+"), ""),
]


def clean(text: str) -> str:
    """Strip markup and noise from `text`, returning speakable prose."""
    if not text:
        return ""
    # Removing one construct can expose another (a footnote inside link text,
    # an email between "]" and "("), so repeat until nothing changes.
    # Every rule only shortens the text, which bounds the loop.
    result = text
    while True:
        cleaned = _apply_rules(result).strip()
        if cleaned == result:
            return cleaned
        result = cleaned


def _apply_rules(text: str) -> str:
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)
    return text
