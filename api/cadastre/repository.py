"""
Geographic property SQL (raw, PostGIS).

This module contains Postgres queries over `proprietaires_geo` for:
- counting owners matching a filter (polygon, radius, or a text lookup)
- fetching every row of the first N owners (never a partial owner)
- geocoding coverage statistics

Driver failures are re-raised as `GeoStoreError`; nothing here retries.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import asyncpg

from core import db

from .aggregation import UNKNOWN_OWNER, PropertyRow
from .geometry import Polygon, RadiusQuery, Region


class GeoStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class RegionCount:
    unique_owners: int
    total_rows: int


# Must stay identical to aggregation.owner_key().
OWNER_KEY_SQL = f"COALESCE(NULLIF(BTRIM(p.siren), ''), NULLIF(BTRIM(p.denomination), ''), '{UNKNOWN_OWNER}')"

ROW_COLUMNS = """
  p.id,
  p.departement,
  p.code_commune,
  p.nom_commune,
  p.prefixe_section,
  p.section,
  p.numero_plan,
  p.numero_voirie,
  p.nature_voie,
  p.nom_voie,
  p.adresse_complete,
  p.siren,
  p.denomination,
  p.forme_juridique,
  p.ban_type,
  ST_X(p.geom) AS lon,
  ST_Y(p.geom) AS lat
"""

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RowFilter:
    """
    A WHERE clause over `proprietaires_geo p` whose placeholders start at $1.
    """

    predicate: str
    args: tuple[Any, ...] = ()
    # Orders owners and rows: row id, or distance for radius queries.
    order_by: str = "p.id"
    distance: str | None = None


def region_filter(region: Region) -> RowFilter:
    if isinstance(region, Polygon):
        return RowFilter(
            predicate="ST_Within(p.geom, ST_GeomFromText($1, 4326))",
            args=(region.to_wkt(),),
            order_by="p.id",
        )
    if isinstance(region, RadiusQuery):
        center = "ST_SetSRID(ST_MakePoint($1, $2), 4326)::geography"
        distance = f"ST_Distance(p.geom::geography, {center})"
        return RowFilter(
            predicate=f"ST_DWithin(p.geom::geography, {center}, $3)",
            args=(region.center.lon, region.center.lat, region.radius_m),
            order_by=distance,
            distance=distance,
        )
    raise TypeError(f"Unsupported region: {type(region).__name__}")


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    try:
        return await db.fetch_all(sql, *args)
    except _DRIVER_ERRORS as exc:
        raise GeoStoreError(f"{type(exc).__name__}: {exc}") from exc


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    try:
        return await db.fetch_one(sql, *args)
    except _DRIVER_ERRORS as exc:
        raise GeoStoreError(f"{type(exc).__name__}: {exc}") from exc


async def count_unique_owners(row_filter: RowFilter) -> RegionCount:
    row = await fetch_one(
        f"""
        SELECT
          COUNT(DISTINCT {OWNER_KEY_SQL}) AS unique_owners,
          COUNT(*) AS total_rows
        FROM proprietaires_geo p
        WHERE {row_filter.predicate}
        """,
        *row_filter.args,
    )
    if not row:
        return RegionCount(unique_owners=0, total_rows=0)
    return RegionCount(
        unique_owners=int(row.get("unique_owners") or 0),
        total_rows=int(row.get("total_rows") or 0),
    )


async def owner_keys(row_filter: RowFilter, owner_cap: int) -> list[str]:
    """
    The first `owner_cap` owner keys matching the filter, in stable order.
    """
    if owner_cap <= 0:
        return []
    cap_param = len(row_filter.args) + 1
    rows = await fetch_all(
        f"""
        SELECT owner_key
        FROM (
          SELECT {OWNER_KEY_SQL} AS owner_key, MIN({row_filter.order_by}) AS first_seen
          FROM proprietaires_geo p
          WHERE {row_filter.predicate}
          GROUP BY 1
        ) k
        ORDER BY first_seen, owner_key
        LIMIT ${cap_param}
        """,
        *row_filter.args,
        owner_cap,
    )
    return [str(r["owner_key"]) for r in rows]


async def rows_for(row_filter: RowFilter, owner_cap: int) -> list[PropertyRow]:
    """
    Every matching row of the first `owner_cap` owners.

    Two queries: owner keys first, then their rows, so the cap never splits
    one owner's properties.
    """
    keys = await owner_keys(row_filter, owner_cap)
    if not keys:
        return []

    keys_param = len(row_filter.args) + 1
    distance_column = f",\n  {row_filter.distance} AS distance" if row_filter.distance else ""
    records = await fetch_all(
        f"""
        SELECT
        {ROW_COLUMNS}{distance_column}
        FROM proprietaires_geo p
        WHERE {row_filter.predicate}
          AND {OWNER_KEY_SQL} = ANY(${keys_param}::text[])
        ORDER BY {row_filter.order_by}, p.id
        """,
        *row_filter.args,
        keys,
    )
    return [PropertyRow.from_record(r) for r in records]


async def count_unique_owners_in(region: Region) -> RegionCount:
    return await count_unique_owners(region_filter(region))


async def rows_in(region: Region, owner_cap: int) -> list[PropertyRow]:
    return await rows_for(region_filter(region), owner_cap)


async def geo_stats() -> dict[str, Any]:
    totals = await fetch_one(
        """
        SELECT
          COUNT(*) AS total,
          COUNT(geom) AS geocoded
        FROM proprietaires_geo
        """
    )
    by_type = await fetch_all(
        """
        SELECT ban_type, COUNT(*) AS cnt
        FROM proprietaires_geo
        WHERE geom IS NOT NULL
        GROUP BY ban_type
        ORDER BY cnt DESC
        """
    )
    total = int((totals or {}).get("total") or 0)
    geocoded = int((totals or {}).get("geocoded") or 0)
    return {
        "total_proprietaires": total,
        "proprietaires_geocodes": geocoded,
        "pourcentage_geocode": round(100.0 * geocoded / total, 2) if total else 0.0,
        "par_type": {(r.get("ban_type") or "unknown"): int(r["cnt"]) for r in by_type},
    }
