"""
API key checks.
"""

from __future__ import annotations

import secrets

from core import settings


def is_valid_api_key(candidate: str | None) -> bool:
    """
    Constant-time comparison against every configured key.
    """
    raw = (candidate or "").strip()
    if not raw:
        return False
    matched = False
    for key in settings.api_keys():
        if secrets.compare_digest(raw.encode("utf-8"), key.encode("utf-8")):
            matched = True
    return matched
