"""
Text lookups: by address, by siren, by owner name.

All three reuse the geographic pipeline pieces:
- a `RowFilter` fetched owner by owner (`cadastre.repository.rows_for`)
- `cadastre.aggregation.aggregate` for grouping
- `cadastre.service.enrich_owners` for capped registry enrichment
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from cadastre import repository as geo_repository
from cadastre.aggregation import aggregate
from cadastre.normalize import strip_accents
from cadastre.repository import RowFilter
from cadastre.service import enrich_owners
from core import settings
from registry.service import RegistryEnricher, is_siren

from . import repository

logger = logging.getLogger(__name__)

# Leading street-type words dropped from a typed address before matching nom_voie.
STREET_TYPE_WORDS = {
    "rue", "avenue", "av", "boulevard", "bd", "impasse", "imp", "passage", "pas",
    "allee", "all", "place", "pl", "square", "sq", "chemin", "che", "route", "rte",
    "cours", "crs", "quai", "voie", "villa", "vla", "cite", "residence", "res",
    "sentier", "sen", "traverse", "tra", "hameau", "ham", "lotissement", "lot",
}

_HOUSE_NUMBER_RE = re.compile(r"^(\d{1,4})\s*(?:bis|ter|b|t)?\s+(.+)$", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_SPACES_RE = re.compile(r"\s+")

# Cities whose communes are split into arrondissements: (max arrondissement, name).
ARRONDISSEMENT_CITIES: dict[str, tuple[int, str]] = {
    "75": (20, "PARIS"),
    "69": (9, "LYON"),
    "13": (16, "MARSEILLE"),
}


@dataclass(frozen=True)
class AddressParts:
    number: str | None
    street: str


def normalize_for_search(text: str | None) -> str:
    folded = strip_accents(text or "").lower()
    folded = _NON_ALNUM_RE.sub(" ", folded)
    return _SPACES_RE.sub(" ", folded).strip()


def extract_address_parts(address: str) -> AddressParts:
    """
    "5 bis rue de Bruxelles" -> AddressParts(number="0005", street="de bruxelles").
    """
    text = (address or "").strip()
    number: str | None = None
    match = _HOUSE_NUMBER_RE.match(text)
    if match:
        number = match.group(1).zfill(4)
        text = match.group(2)

    words = normalize_for_search(text).split()
    if words and words[0] in STREET_TYPE_WORDS:
        words = words[1:]
    return AddressParts(number=number, street=" ".join(words))


def arrondissement_commune(city: str, number: int) -> str:
    if city == "PARIS":
        return f"PARIS {number:02d}"
    suffix = "1ER" if number == 1 else f"{number}EME"
    return f"{city} {suffix}"


def postal_code_filter(postal_code: str) -> tuple[str, str | None]:
    """
    Postal code -> (departement, commune name or None).

    The commune is only known for Paris, Lyon and Marseille arrondissements.
    """
    code = (postal_code or "").strip()
    departement = code[:2]
    if len(code) != 5 or not code.isdigit():
        return departement, None

    city = ARRONDISSEMENT_CITIES.get(departement)
    if city is None:
        return departement, None
    max_number, name = city
    number = int(code[2:])
    if 1 <= number <= max_number:
        return departement, arrondissement_commune(name, number)
    return departement, None


def _like_pattern(words: list[str]) -> str:
    return "%" + "%".join(words) + "%"


def _clamp_limit(limit: int | None) -> int:
    if limit is None:
        return settings.search_default_limit()
    return max(1, min(int(limit), settings.search_max_limit()))


def _empty(**debug: Any) -> dict[str, Any]:
    out: dict[str, Any] = {"proprietaires": [], "total_proprietaires": 0, "total_lots": 0, "enrichis": 0}
    if debug:
        out["debug"] = debug
    return out


async def _lookup(row_filter: RowFilter, owner_cap: int, *, enricher: RegistryEnricher) -> dict[str, Any]:
    rows = await geo_repository.rows_for(row_filter, owner_cap)
    owners = aggregate(rows)
    enriched = await enrich_owners(owners, enricher, settings.max_enrichment_batch())
    return {
        "proprietaires": [o.model_dump(mode="json") for o in owners],
        "total_proprietaires": len(owners),
        "total_lots": len(rows),
        "enrichis": enriched,
    }


async def search_address(
    address: str,
    *,
    departement: str | None = None,
    postal_code: str | None = None,
    limit: int | None = None,
    enricher: RegistryEnricher,
) -> dict[str, Any]:
    parts = extract_address_parts(address)
    commune: str | None = None
    if postal_code:
        departement, commune = postal_code_filter(postal_code)

    debug = {
        "numero_recherche": parts.number,
        "nom_voie_recherche": parts.street,
        "departement": departement or None,
        "commune": commune,
    }
    if len(parts.street) < 2:
        logger.info("address_search_skipped reason=street_too_short")
        return _empty(**debug)

    row_filter = repository.address_filter(
        _like_pattern(parts.street.split()),
        number=parts.number,
        departement=departement or None,
        commune=commune,
    )
    result = await _lookup(row_filter, _clamp_limit(limit), enricher=enricher)
    logger.info(
        "address_search_done owners=%s lots=%s numero=%s dept=%s",
        result["total_proprietaires"],
        result["total_lots"],
        parts.number,
        departement,
    )
    result["debug"] = debug
    return result


async def search_siren(siren: str, *, departement: str | None = None, enricher: RegistryEnricher) -> dict[str, Any]:
    """
    Every property of one owner, grouped by address.
    """
    value = (siren or "").strip()
    if not is_siren(value):
        raise ValueError("SIREN must be exactly 9 digits.")
    row_filter = repository.siren_filter(value, departement=departement or None)
    return await _lookup(row_filter, 1, enricher=enricher)


async def search_owner(
    denomination: str,
    *,
    departement: str | None = None,
    limit: int | None = None,
    enricher: RegistryEnricher,
) -> dict[str, Any]:
    words = [w for w in normalize_for_search(denomination).split() if len(w) >= 2]
    if not words:
        return _empty()
    row_filter = repository.denomination_filter(_like_pattern(words), departement=departement or None)
    return await _lookup(row_filter, _clamp_limit(limit), enricher=enricher)


async def list_departments() -> list[str]:
    return await repository.list_departments()
