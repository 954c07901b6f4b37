"""
Hashing helpers for visitor identity and cache fingerprints.

Raw client IPs are never stored: the redirect path hashes them with
``hash_visitor`` before a click event is written, and every analytics view
works on that hash only.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def hash_visitor(ip_address: str, secret: str) -> str:
    """Return the salted one-way visitor id for *ip_address*.

    Args:
        ip_address: Client IP as seen by the redirect service.
        secret: Deployment-wide salt (``IP_HASH_SECRET``).

    Returns:
        First 16 hex chars of ``sha256(ip_address + secret)``.
    """
    return hashlib.sha256((ip_address + secret).encode("utf-8")).hexdigest()[:16]


def fingerprint(params: dict[str, Any], length: int = 8) -> str:
    """Return a stable short hash of *params*.

    Keys are sorted and values rendered with ``str`` for non-JSON types
    (datetimes), so two equal parameter dicts always hash the same.
    """
    canonical = json.dumps(params, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()[:length]
