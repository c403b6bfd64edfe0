"""Hashing utilities."""

from __future__ import annotations

import hashlib
from typing import Any, Mapping

import orjson


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha256(data).hexdigest()


def sha256_payload(payload: Mapping[str, Any]) -> str:
    """Return hex digest for a JSON-serialisable mapping, independent of key order."""
    return sha256_bytes(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS))
