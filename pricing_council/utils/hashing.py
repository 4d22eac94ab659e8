"""
Hashing utilities for snapshot integrity and auditability.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def sha256_hash(content: str | bytes) -> str:
    """Return the SHA-256 hex digest of the given content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def canonical_json(value: Any) -> str:
    """Stable JSON encoding (sorted keys) used for hashing and diffing."""
    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


def content_hash(value: Any) -> str:
    """Hash of the canonical JSON form of a JSON-like value."""
    return sha256_hash(canonical_json(value))
