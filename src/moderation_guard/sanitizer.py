"""Markup stripping for user-submitted text.

Sanitized text is what gets stored and what the pre-submission analyzer
reads. The scanning engine scores the raw text instead.
"""

from __future__ import annotations
import re

SCRIPT_STYLE_RE = re.compile(
    r"<\s*(script|style)[^>]*>[\s\S]*?<\s*/\s*\1>", re.IGNORECASE
)
TAG_RE = re.compile(r"<[^>]*>?")


def sanitize(text: str) -> str:
    """Removes script/style blocks and remaining tags, then trims.

    Args:
        text: The text to sanitize.

    Returns:
        The text without markup. Sanitizing twice yields the same result.
    """
    if not text:
        return ""
    cleaned = SCRIPT_STYLE_RE.sub("", text)
    cleaned = TAG_RE.sub("", cleaned)
    return cleaned.strip()
