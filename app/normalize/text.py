from __future__ import annotations

import re
from typing import Any

ANONYMOUS_IDENTITY = "anonymous"
MIN_IDENTITY_LENGTH = 6

_LINE_BREAK_RE = re.compile(r"\r\n?")
_HORIZONTAL_SPACE_RE = re.compile(r"[ \t]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def normalize_text(raw: Any = None) -> str:
    """Canonical form of submitted CV text.

    Unifies line endings, collapses spaces/tabs to one space, keeps at most one
    blank line between paragraphs and strips the ends. Idempotent.
    """
    if raw is None:
        return ""
    text = raw if isinstance(raw, str) else str(raw)
    text = _LINE_BREAK_RE.sub("\n", text)
    text = _HORIZONTAL_SPACE_RE.sub(" ", text)
    # Collapsing spaces can leave " \n" pairs; trim them so blank lines are empty.
    text = re.sub(r" ?\n ?", "\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def normalize_identity(email: Any = None) -> str:
    if not isinstance(email, str):
        return ANONYMOUS_IDENTITY
    value = email.strip().lower()
    if "@" not in value or len(value) < MIN_IDENTITY_LENGTH:
        return ANONYMOUS_IDENTITY
    return value


def is_anonymous(identity: str) -> bool:
    return identity == ANONYMOUS_IDENTITY
