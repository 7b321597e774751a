"""
Registry enrichment.

Flow for one owner:
1) validate the siren (9 digits) before touching the network
2) look it up through the shared rate limiter
3) map the raw record to `CompanyEnrichment`
4) walk legal-entity directors down to natural persons (beneficial owners)

Enrichment is best-effort: every failure ends as `None` and is logged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from core import settings
from core.ratelimit import RateLimiter

from .client import RegistryClient, RegistryError
from .schemas import BeneficialOwner, CompanyEnrichment, ControlChainLink, Director, Headquarters

logger = logging.getLogger(__name__)

MAX_DEPTH = 5

NATURAL_PERSON = "personne physique"
LEGAL_ENTITY = "personne morale"

SIREN_RE = re.compile(r"[0-9]{9}")

HEADCOUNT_BANDS: dict[str, str] = {
    "00": "0 salarié",
    "01": "1 ou 2 salariés",
    "02": "3 à 5 salariés",
    "03": "6 à 9 salariés",
    "11": "10 à 19 salariés",
    "12": "20 à 49 salariés",
    "21": "50 à 99 salariés",
    "22": "100 à 199 salariés",
    "31": "200 à 249 salariés",
    "32": "250 à 499 salariés",
    "41": "500 à 999 salariés",
    "42": "1000 à 1999 salariés",
    "51": "2000 à 4999 salariés",
    "52": "5000 à 9999 salariés",
    "53": "10000 salariés et plus",
}

Lookup = Callable[[str], Awaitable[dict[str, Any] | None]]


def is_siren(value: str | None) -> bool:
    return SIREN_RE.fullmatch(value or "") is not None


def decode_headcount_band(code: Any) -> str:
    return HEADCOUNT_BANDS.get(str(code or "").strip(), "Non renseigné")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _map_directors(raw_directors: list[Any]) -> list[Director]:
    directors: list[Director] = []
    for d in raw_directors:
        if not isinstance(d, dict):
            continue
        kind = d.get("type_dirigeant")
        if kind == NATURAL_PERSON:
            directors.append(
                Director(
                    nom=_text(d.get("nom")),
                    prenoms=_text(d.get("prenoms")),
                    qualite=_text(d.get("qualite")),
                    type="personne_physique",
                    annee_naissance=_optional_text(d.get("annee_de_naissance")),
                )
            )
        elif kind == LEGAL_ENTITY:
            directors.append(
                Director(
                    nom=_text(d.get("denomination")),
                    qualite=_text(d.get("qualite")),
                    type="personne_morale",
                    siren=_optional_text(d.get("siren")),
                    denomination=_optional_text(d.get("denomination")),
                )
            )
    return directors


def _map_headquarters(siege: dict[str, Any]) -> Headquarters:
    street = [_text(siege.get(k)) for k in ("numero_voie", "type_voie", "libelle_voie")]
    return Headquarters(
        adresse=" ".join(part for part in street if part),
        code_postal=_text(siege.get("code_postal")),
        commune=_text(siege.get("libelle_commune")),
        latitude=_optional_text(siege.get("latitude")),
        longitude=_optional_text(siege.get("longitude")),
    )


def _raw_directors(record: dict[str, Any]) -> list[Any]:
    directors = record.get("dirigeants")
    return directors if isinstance(directors, list) else []


class RegistryEnricher:
    """
    Looks up owners in the company registry, one rate-limited call at a time.
    """

    def __init__(self, lookup: Lookup, rate_limiter: RateLimiter, *, max_depth: int = MAX_DEPTH) -> None:
        self._lookup = lookup
        self._rate_limiter = rate_limiter
        self.max_depth = max_depth

    async def _fetch(self, siren: str) -> dict[str, Any] | None:
        await self._rate_limiter.acquire()
        try:
            return await self._lookup(siren)
        except RegistryError as exc:
            logger.warning("registry_lookup_failed siren=%s error=%s", siren, exc)
            return None

    async def enrich(self, identifier: str) -> CompanyEnrichment | None:
        siren = _text(identifier)
        if not is_siren(siren):
            return None

        record = await self._fetch(siren)
        if record is None:
            return None

        try:
            beneficial_owners = await self.resolve_beneficial_owners(
                _raw_directors(record),
                chain=(),
                visited={siren},
                depth=0,
            )
            return self._to_enrichment(record, beneficial_owners)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("registry_payload_malformed siren=%s error=%s", siren, exc)
            return None

    async def _fetch_directors(self, siren: str) -> list[Any]:
        record = await self._fetch(siren)
        if record is None:
            return []
        return _raw_directors(record)

    async def resolve_beneficial_owners(
        self,
        raw_directors: list[Any],
        *,
        chain: tuple[ControlChainLink, ...],
        visited: set[str],
        depth: int,
    ) -> list[BeneficialOwner]:
        """
        Depth-first walk from directors to natural persons.

        `chain` is the path of intermediary entities so far; `visited` is shared
        across the whole walk and already holds the root siren. A legal-entity
        branch is dropped at `max_depth`, on a revisited siren, or when the
        entity has no directors.
        """
        owners: list[BeneficialOwner] = []

        for d in raw_directors:
            if not isinstance(d, dict):
                continue
            kind = d.get("type_dirigeant")

            if kind == NATURAL_PERSON:
                owners.append(
                    BeneficialOwner(
                        nom=_text(d.get("nom")),
                        prenoms=_text(d.get("prenoms")),
                        qualite=_text(d.get("qualite")),
                        annee_naissance=_optional_text(d.get("annee_de_naissance")),
                        chaine_controle=list(chain),
                    )
                )
                continue

            entity_siren = _text(d.get("siren"))
            if kind != LEGAL_ENTITY or not entity_siren:
                continue

            if depth >= self.max_depth:
                logger.debug("beneficial_owner_depth_limit siren=%s depth=%s", entity_siren, depth)
                continue
            if entity_siren in visited:
                logger.debug("beneficial_owner_cycle siren=%s", entity_siren)
                continue
            visited.add(entity_siren)

            entity_directors = await self._fetch_directors(entity_siren)
            if not entity_directors:
                continue

            link = ControlChainLink(
                siren=entity_siren,
                denomination=_text(d.get("denomination")),
                qualite=_text(d.get("qualite")),
            )
            owners.extend(
                await self.resolve_beneficial_owners(
                    entity_directors,
                    chain=(*chain, link),
                    visited=visited,
                    depth=depth + 1,
                )
            )

        return owners

    def _to_enrichment(self, record: dict[str, Any], beneficial_owners: list[BeneficialOwner]) -> CompanyEnrichment:
        siege = record.get("siege")
        return CompanyEnrichment(
            siren=_text(record.get("siren")),
            nom_complet=_text(record.get("nom_complet")),
            nom_raison_sociale=_text(record.get("nom_raison_sociale")),
            sigle=_optional_text(record.get("sigle")),
            nature_juridique=_text(record.get("nature_juridique")),
            date_creation=_text(record.get("date_creation")),
            etat_administratif=_text(record.get("etat_administratif")),
            categorie_entreprise=_text(record.get("categorie_entreprise")),
            tranche_effectif=decode_headcount_band(record.get("tranche_effectif_salarie")),
            siege=_map_headquarters(siege if isinstance(siege, dict) else {}),
            dirigeants=_map_directors(_raw_directors(record)),
            beneficiaires_effectifs=beneficial_owners,
            nombre_etablissements=int(record.get("nombre_etablissements_ouverts") or 0),
        )


_enricher: RegistryEnricher | None = None


def init_enricher() -> RegistryEnricher:
    """
    Build the process-wide enricher (and its shared rate limiter) once.
    """
    global _enricher
    if _enricher is not None:
        return _enricher
    client = RegistryClient(
        base_url=settings.registry_base_url(),
        timeout_s=settings.registry_timeout_s(),
    )
    limiter = RateLimiter(settings.registry_max_requests_per_second(), window_s=1.0)
    _enricher = RegistryEnricher(
        client.lookup_by_identifier,
        limiter,
        max_depth=settings.registry_max_depth(),
    )
    logger.info(
        "registry_enricher_ready base_url=%s max_rps=%s max_depth=%s",
        client.base_url,
        limiter.max_requests,
        _enricher.max_depth,
    )
    return _enricher


def close_enricher() -> None:
    global _enricher
    _enricher = None


def enricher() -> RegistryEnricher:
    if _enricher is None:
        raise RuntimeError("Registry enricher is not initialized. Call init_enricher() on startup.")
    return _enricher
