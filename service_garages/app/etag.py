"""
Content fingerprints used as snapshot ETags.
"""

import hashlib
import json
from typing import Any


def canonical_bytes(payload: Any) -> bytes:
    """
    Serialize ``payload`` to compact JSON in insertion key order.

    Keys are deliberately not sorted: the same snapshot built in the same
    order always yields the same bytes, and that order is what the client
    sees on the wire.
    """
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")


def fingerprint(payload: Any) -> str:
    """Return the 40-character SHA-1 hex digest of ``payload``."""
    return hashlib.sha1(canonical_bytes(payload)).hexdigest()
