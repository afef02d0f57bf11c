"""
Canonical Hashing

Deterministic hashes for import and ranking audit trails.
"""

import hashlib
import json
from typing import Any

# Generated per request, never part of a hash
VOLATILE_FIELDS = frozenset([
    "generated_at",
    "timestamp",
    "import_hash",
    "ranking_hash",
])


def canonicalize(obj: Any) -> str:
    """
    Canonical JSON: sorted keys, no whitespace, floats rounded,
    volatile fields removed.
    """
    def _clean(o: Any) -> Any:
        if isinstance(o, dict):
            return {k: _clean(v) for k, v in sorted(o.items()) if k not in VOLATILE_FIELDS}
        if isinstance(o, (list, tuple)):
            return [_clean(i) for i in o]
        if isinstance(o, float):
            return round(o, 10)
        return o

    return json.dumps(_clean(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def canonicalize_and_hash(obj: Any) -> str:
    """Returns "sha256:<64-char-hex>"."""
    digest = hashlib.sha256(canonicalize(obj).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
