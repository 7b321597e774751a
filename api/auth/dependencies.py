"""
Auth dependencies for protected FastAPI routes.
"""

from __future__ import annotations

import logging

from fastapi import Header, HTTPException, status

from . import security

logger = logging.getLogger(__name__)


def error_detail(error: str, code: str, details: str) -> dict:
    return {"error": error, "code": code, "details": details}


async def require_api_key(x_api_key: str | None = Header(default=None)) -> str:
    raw = (x_api_key or "").strip()
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail(
                "API key manquante",
                "MISSING_API_KEY",
                "Fournissez votre clé API dans le header X-API-Key",
            ),
        )

    if not security.is_valid_api_key(raw):
        logger.warning("api_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_detail(
                "API key invalide",
                "INVALID_API_KEY",
                "La clé API fournie n'est pas valide",
            ),
        )
    return raw
