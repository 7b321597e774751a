"""
Company registry HTTP client (recherche-entreprises.api.gouv.fr).

Used endpoint:
- GET /search?q=<siren>&per_page=1  -> {"results": [{"siren": "...", "dirigeants": [...], ...}]}

Rate limiting is not done here: callers acquire a limiter unit per call.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


# Registry failures are explicit and separable from other runtime errors.
class RegistryError(RuntimeError):
    pass


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise RegistryError("REGISTRY_BASE_URL is empty.")
    return base_url.rstrip("/")


class RegistryClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self.timeout_s = timeout_s
        self._transport = transport

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                headers={"Accept": "application/json"},
                transport=self._transport,
            ) as client:
                resp = await client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise RegistryError(f"Registry request failed: {exc}") from exc

        if resp.status_code != 200:
            # Avoid dumping huge bodies; include a small snippet.
            body = resp.text[:300]
            raise RegistryError(f"Registry request failed: {resp.status_code} {body}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise RegistryError("Registry returned a non-JSON body.") from exc
        if not isinstance(data, dict):
            raise RegistryError("Registry returned an unexpected payload.")
        return data

    async def lookup_by_identifier(self, siren: str) -> dict[str, Any] | None:
        """
        Raw registry record for `siren`, or None when the registry has no match.

        A first result for another siren (full-text search fallback) counts as a miss.
        """
        data = await self._get("/search", {"q": siren, "per_page": 1})
        results = data.get("results")
        if not isinstance(results, list) or not results:
            return None

        record = results[0]
        if not isinstance(record, dict):
            raise RegistryError("Registry result is not an object.")
        if str(record.get("siren") or "") != siren:
            logger.debug("registry_siren_mismatch requested=%s got=%s", siren, record.get("siren"))
            return None
        return record
