"""Deterministic JSON serialization and content hashing."""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from typing import Any


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def stable_json_dumps(value: Any) -> str:
    """
    Serialize to JSON with sorted keys and compact separators.

    Two payloads that differ only in key order serialize identically.
    """
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_default
    )


def sha256_hex(text: str) -> str:
    """SHA-256 hex digest of a UTF-8 string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(payload: Any) -> str:
    """Content hash of a payload after canonicalization."""
    return sha256_hex(stable_json_dumps(payload))
