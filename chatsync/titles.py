"""Conversation title derivation."""

from __future__ import annotations

ELLIPSIS = "..."


def derive_title(text: str, word_count: int = 5) -> str:
    """First ``word_count`` space-separated words, with ``...`` if shortened."""
    trimmed = text.strip()
    first_words = " ".join(trimmed.split(" ")[:word_count])
    if len(first_words) < len(trimmed):
        return f"{first_words}{ELLIPSIS}"
    return first_words
