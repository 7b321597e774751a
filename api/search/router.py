"""
Text search API endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from auth import dependencies as auth_dependencies
from cadastre.repository import GeoStoreError
from registry import service as registry_service
from registry.service import RegistryEnricher

from . import service

logger = logging.getLogger(__name__)

router = APIRouter()


def _store_unavailable(exc: GeoStoreError) -> HTTPException:
    logger.error("search_store_failed error=%s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=auth_dependencies.error_detail("Base de données indisponible", "GEO_STORE_ERROR", str(exc)),
    )


@router.get("/search/address")
async def search_address(
    adresse: str = Query(..., min_length=3),
    departement: str | None = Query(default=None, max_length=3),
    code_postal: str | None = Query(default=None, min_length=2, max_length=5),
    limit: int | None = Query(default=None, ge=1),
    api_key: str = Depends(auth_dependencies.require_api_key),
    enricher: RegistryEnricher = Depends(registry_service.enricher),
) -> dict:
    try:
        result = await service.search_address(
            adresse,
            departement=departement,
            postal_code=code_postal,
            limit=limit,
            enricher=enricher,
        )
    except GeoStoreError as exc:
        raise _store_unavailable(exc) from exc
    return {"query": {"adresse": adresse, "departement": departement, "code_postal": code_postal}, **result}


@router.get("/search/siren")
async def search_siren(
    siren: str = Query(..., min_length=1),
    departement: str | None = Query(default=None, max_length=3),
    api_key: str = Depends(auth_dependencies.require_api_key),
    enricher: RegistryEnricher = Depends(registry_service.enricher),
) -> dict:
    try:
        result = await service.search_siren(siren, departement=departement, enricher=enricher)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=auth_dependencies.error_detail("SIREN invalide", "INVALID_SIREN", str(exc)),
        ) from exc
    except GeoStoreError as exc:
        raise _store_unavailable(exc) from exc
    return {"query": {"siren": siren, "departement": departement}, **result}


@router.get("/search/owner")
async def search_owner(
    denomination: str = Query(..., min_length=2),
    departement: str | None = Query(default=None, max_length=3),
    limit: int | None = Query(default=None, ge=1),
    api_key: str = Depends(auth_dependencies.require_api_key),
    enricher: RegistryEnricher = Depends(registry_service.enricher),
) -> dict:
    try:
        result = await service.search_owner(
            denomination,
            departement=departement,
            limit=limit,
            enricher=enricher,
        )
    except GeoStoreError as exc:
        raise _store_unavailable(exc) from exc
    return {"query": {"denomination": denomination, "departement": departement}, **result}


@router.get("/departments")
async def departments(api_key: str = Depends(auth_dependencies.require_api_key)) -> dict:
    try:
        items = await service.list_departments()
    except GeoStoreError as exc:
        raise _store_unavailable(exc) from exc
    return {"departements": items, "total": len(items)}
