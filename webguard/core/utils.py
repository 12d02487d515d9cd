"""Small text helpers shared by the error and validation layers."""

from __future__ import annotations


def uc_first(text: str) -> str:
    """Upper-case the first character of ``text`` and leave the rest untouched."""
    if not text:
        return text
    return text[0].upper() + text[1:]
