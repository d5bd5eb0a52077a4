"""Utilities for turning model output into plain speakable text.

Piper must never be fed:
- internal reasoning / thinking traces
- markdown control characters (emphasis, headings, code markers)
"""

from __future__ import annotations

import re

_TAG_REASONING_RE = re.compile(r"<(reasoning|think)>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"</?\w+?>")
_MARKUP_RE = re.compile(r"[*#`~]|(?<!\w)_+|_+(?!\w)")
_WS_RE = re.compile(r"\s+")


def to_speakable(text: str) -> str:
    """Return `text` with reasoning blocks, tags and markup characters removed.

    Underscores inside words (snake_case, file_names) are kept.
    """
    raw = (text or "").strip()
    if not raw:
        return ""

    raw = _TAG_REASONING_RE.sub("", raw)
    raw = _TAG_RE.sub("", raw)
    raw = _MARKUP_RE.sub("", raw)
    return _WS_RE.sub(" ", raw).strip()
