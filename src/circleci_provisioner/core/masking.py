"""One-way representations of secret values.

``hash_value`` is what gets persisted in state: it lets the engine notice that
a secret changed without ever writing the secret to disk. ``censor_value``
mimics CircleCI's own masked echo (``xxxx`` + a short suffix) and is only used
to redact values in logs and terminal output.
"""

from __future__ import annotations

import base64
import hashlib

CENSOR_FILLER = "xxxx"
_CENSOR_MAX_REVEALED = 4


def hash_value(value: str) -> str:
    """SHA-256 of the UTF-8 value, base64 encoded."""
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def censor_value(value: str) -> str:
    """Replace all but a short suffix of *value* with a fixed filler.

    One more trailing character is revealed for every two characters of
    input, capped at four; inputs of length <= 1 reveal nothing.
    """
    revealed = min(len(value) // 2, _CENSOR_MAX_REVEALED)
    if revealed == 0:
        return CENSOR_FILLER
    return CENSOR_FILLER + value[-revealed:]
