"""HTML to plain text conversion for rich-text repository properties."""

from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup

_WHITESPACE = re.compile(r"\s+")


def html_to_text(html: Optional[str]) -> str:
    """Strip markup and collapse whitespace; ``None`` and blank input give ``""``."""
    if not html or not html.strip():
        return ""
    if "<" not in html and "&" not in html:
        return _WHITESPACE.sub(" ", html).strip()
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()


__all__ = ["html_to_text"]
