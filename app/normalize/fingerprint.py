from __future__ import annotations

import hashlib

SHORT_FINGERPRINT_LENGTH = 12


def fingerprint(normalized_text: str) -> str:
    return hashlib.sha256((normalized_text or "").encode("utf-8", errors="surrogatepass")).hexdigest()


def short_fingerprint(value: str) -> str:
    """Opaque correlation id for responses and logs; never the raw text."""
    return (value or "")[:SHORT_FINGERPRINT_LENGTH]
