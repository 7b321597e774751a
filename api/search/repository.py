"""
Text lookup SQL (raw).

Filters over `proprietaires_geo` for:
- street address (accent-insensitive street name, optional house number)
- owner siren
- owner denomination

Each builder returns a `RowFilter`, so rows are fetched owner by owner with
the same capped two-step query as geographic search.
"""

from __future__ import annotations

from typing import Any

from cadastre.repository import RowFilter, fetch_all

# Accent folding done in SQL on the stored (upper/lower case) MAJIC text.
_ACCENTED = "àâäéèêëïîôùûüçÀÂÄÉÈÊËÏÎÔÙÛÜÇ"
_FOLDED = "aaaeeeeiioouucAAAEEEEIIOOUUC"


def _folded(column: str) -> str:
    return f"LOWER(TRANSLATE({column}, '{_ACCENTED}', '{_FOLDED}'))"


def address_filter(
    street_pattern: str,
    *,
    number: str | None = None,
    departement: str | None = None,
    commune: str | None = None,
) -> RowFilter:
    """
    `number` is the 4-digit padded house number ("0005"); rows stored padded
    or unpadded both match.
    """
    conditions = [f"{_folded('p.nom_voie')} ILIKE $1"]
    args: list[Any] = [street_pattern]

    if number:
        unpadded = number.lstrip("0") or "0"
        conditions.append(
            f"(p.numero_voirie = ${len(args) + 1} OR LTRIM(p.numero_voirie, '0') = ${len(args) + 2})"
        )
        args.extend([number, unpadded])

    if departement:
        conditions.append(f"p.departement = ${len(args) + 1}")
        args.append(departement)

    if commune:
        conditions.append(f"UPPER(p.nom_commune) = ${len(args) + 1}")
        args.append(commune)

    return RowFilter(predicate=" AND ".join(conditions), args=tuple(args))


def siren_filter(siren: str, *, departement: str | None = None) -> RowFilter:
    if departement:
        return RowFilter(predicate="BTRIM(p.siren) = $1 AND p.departement = $2", args=(siren, departement))
    return RowFilter(predicate="BTRIM(p.siren) = $1", args=(siren,))


def denomination_filter(pattern: str, *, departement: str | None = None) -> RowFilter:
    predicate = f"{_folded('BTRIM(p.denomination)')} ILIKE $1"
    if departement:
        return RowFilter(predicate=f"{predicate} AND p.departement = $2", args=(pattern, departement))
    return RowFilter(predicate=predicate, args=(pattern,))


async def list_departments() -> list[str]:
    rows = await fetch_all(
        """
        SELECT DISTINCT departement
        FROM proprietaires_geo
        WHERE departement IS NOT NULL AND departement <> ''
        ORDER BY departement
        """
    )
    return [str(r["departement"]) for r in rows]
