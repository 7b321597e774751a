"""
Geographic owner search orchestration.

Flow (one pipeline, two delivery modes):
1) validate the region (polygon or radius)
2) count distinct owners inside it
3) fetch every row of the first N owners
4) group rows by owner, then by address
5) enrich owners that carry a siren, one at a time
   - batch: until `max_enrichment_batch` owners are enriched, then return everything
   - streaming: uncapped, each owner handed over right after its own lookup

Store faults and invalid regions end as structured results (`etat` = error /
empty) with a `raison`; nothing raises past this module.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from core import settings
from registry.schemas import CompanyEnrichment
from registry.service import RegistryEnricher, is_siren

from . import repository
from .aggregation import aggregate
from .geometry import InvalidRegion, Polygon, RadiusQuery, Region
from .repository import GeoStoreError, RegionCount
from .schemas import AppliedLimits, GeoSearchResult, OwnerResult

logger = logging.getLogger(__name__)

NO_OWNERS_REASON = "Aucun propriétaire dans la zone."

CancelCheck = Callable[[], Union[bool, Awaitable[bool]]]
OwnerCallback = Callable[["OwnerReady"], Union[None, Awaitable[None]]]


class SearchState(str, Enum):
    VALIDATING = "validating"
    COUNTING = "counting"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    ENRICHING = "enriching"
    DONE = "done"
    EMPTY = "empty"
    ERROR = "error"


@dataclass
class OwnerReady:
    index: int
    total: int
    owner: OwnerResult

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "proprietaire",
            "index": self.index + 1,
            "total": self.total,
            "data": self.owner.model_dump(mode="json"),
        }


@dataclass
class StreamSummary:
    state: SearchState
    reason: str | None = None
    total_in_zone: int = 0
    rows_in_zone: int = 0
    total_owners: int = 0
    total_lots: int = 0
    enriched: int = 0
    emitted: int = 0
    cancelled: bool = False
    max_results: int = 0
    debug: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "summary",
            "etat": self.state.value,
            "raison": self.reason,
            "total_proprietaires": self.total_owners,
            "total_dans_zone": self.total_in_zone,
            "total_lignes_zone": self.rows_in_zone,
            "total_lots": self.total_lots,
            "enrichis": self.enriched,
            "emis": self.emitted,
            "limites_appliquees": {"max_resultats": self.max_results, "max_enrichissement": None},
            "debug": self.debug,
        }


@dataclass
class _Collected:
    state: SearchState
    reason: str | None = None
    count: RegionCount = field(default_factory=lambda: RegionCount(unique_owners=0, total_rows=0))
    owners: list[OwnerResult] = field(default_factory=list)
    total_lots: int = 0
    owner_cap: int = 0
    debug: dict[str, Any] = field(default_factory=dict)


# Registry calls abandoned by a disconnected stream; kept referenced until they settle.
_orphaned: set[asyncio.Task] = set()


def _log_state(state: SearchState, **fields: Any) -> None:
    extra = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.debug("geo_search_state state=%s %s", state.value, extra)


def _owner_cap(limit: int | None) -> int:
    cap = settings.max_results()
    if limit is None:
        return cap
    return max(1, min(int(limit), cap))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def _collect(build_region: Callable[[], Region], limit: int | None) -> _Collected:
    """
    Validating -> Counting -> Fetching -> Aggregating.

    Stops early on an invalid region, an empty region or a store fault.
    """
    owner_cap = _owner_cap(limit)
    _log_state(SearchState.VALIDATING)
    try:
        region = build_region()
    except InvalidRegion as exc:
        logger.info("geo_search_rejected reason=%s", exc)
        return _Collected(state=SearchState.EMPTY, reason=str(exc), owner_cap=owner_cap)

    debug: dict[str, Any] = {}
    if isinstance(region, Polygon):
        debug["wkt"] = region.to_wkt()
    elif isinstance(region, RadiusQuery):
        debug["centre"] = [region.center.lon, region.center.lat]
        debug["rayon_metres"] = region.radius_m

    try:
        _log_state(SearchState.COUNTING)
        started = time.perf_counter()
        count = await repository.count_unique_owners_in(region)
        debug["count_time_ms"] = _elapsed_ms(started)
        if count.unique_owners == 0:
            return _Collected(
                state=SearchState.EMPTY,
                reason=NO_OWNERS_REASON,
                count=count,
                owner_cap=owner_cap,
                debug=debug,
            )

        _log_state(SearchState.FETCHING, owner_cap=owner_cap)
        started = time.perf_counter()
        rows = await repository.rows_in(region, owner_cap)
        debug["query_time_ms"] = _elapsed_ms(started)
    except GeoStoreError as exc:
        logger.error("geo_store_failed error=%s", exc)
        return _Collected(state=SearchState.ERROR, reason=str(exc), owner_cap=owner_cap, debug=debug)

    _log_state(SearchState.AGGREGATING, rows=len(rows))
    owners = aggregate(rows)
    return _Collected(
        state=SearchState.ENRICHING,
        count=count,
        owners=owners,
        total_lots=len(rows),
        owner_cap=owner_cap,
        debug=debug,
    )


async def _safe_enrich(enricher: RegistryEnricher, siren: str) -> CompanyEnrichment | None:
    try:
        return await enricher.enrich(siren)
    except Exception:
        # One owner's lookup never aborts the search.
        logger.exception("owner_enrichment_failed siren=%s", siren)
        return None


async def enrich_owners(owners: list[OwnerResult], enricher: RegistryEnricher, max_enriched: int) -> int:
    """
    Look up siren-keyed owners in order until `max_enriched` of them got a
    registry record. Misses and failed lookups do not count.
    """
    enriched = 0
    for owner in owners:
        if enriched >= max_enriched:
            break
        if not is_siren(owner.cle):
            continue
        owner.entreprise = await _safe_enrich(enricher, owner.cle)
        if owner.entreprise is not None:
            enriched += 1
    return enriched


def _result(collected: _Collected, *, state: SearchState, enriched: int = 0) -> GeoSearchResult:
    owners = collected.owners if state is SearchState.DONE else []
    return GeoSearchResult(
        etat=state.value,
        raison=collected.reason,
        proprietaires=owners,
        total_proprietaires=len(owners),
        total_dans_zone=collected.count.unique_owners,
        total_lignes_zone=collected.count.total_rows,
        total_lots=collected.total_lots if state is SearchState.DONE else 0,
        enrichis=enriched,
        limites_appliquees=AppliedLimits(
            max_resultats=collected.owner_cap,
            max_enrichissement=settings.max_enrichment_batch(),
        ),
        debug=collected.debug,
    )


async def _search_batch(build_region: Callable[[], Region], limit: int | None, enricher: RegistryEnricher) -> GeoSearchResult:
    collected = await _collect(build_region, limit)
    if collected.state is not SearchState.ENRICHING:
        return _result(collected, state=collected.state)

    _log_state(SearchState.ENRICHING, owners=len(collected.owners))
    enriched = await enrich_owners(collected.owners, enricher, settings.max_enrichment_batch())

    logger.info(
        "geo_search_done owners=%s in_zone=%s lots=%s enriched=%s",
        len(collected.owners),
        collected.count.unique_owners,
        collected.total_lots,
        enriched,
    )
    return _result(collected, state=SearchState.DONE, enriched=enriched)


async def search_polygon(points: Any, limit: int | None = None, *, enricher: RegistryEnricher) -> GeoSearchResult:
    """
    Owners of the properties inside a polygon ([[lon, lat], ...], auto-closed).
    """
    return await _search_batch(
        lambda: Polygon.from_coordinates(points, max_points=settings.max_polygon_points()),
        limit,
        enricher,
    )


async def search_radius(
    lon: Any,
    lat: Any,
    radius_meters: Any,
    limit: int | None = None,
    *,
    enricher: RegistryEnricher,
) -> GeoSearchResult:
    """
    Owners of the properties within `radius_meters` of a point, nearest first.
    """
    return await _search_batch(
        lambda: RadiusQuery.build(lon, lat, radius_meters, max_radius_m=settings.max_radius_meters()),
        limit,
        enricher,
    )


async def _is_cancelled(check: CancelCheck | None) -> bool:
    if check is None:
        return False
    outcome = check()
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return bool(outcome)


def _settle_orphan(task: asyncio.Task) -> None:
    _orphaned.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("orphaned_enrichment_failed error=%s", exc)


def _detach(task: asyncio.Task) -> None:
    if task.done():
        return
    _orphaned.add(task)
    task.add_done_callback(_settle_orphan)


async def _enrich_unless_cancelled(
    enricher: RegistryEnricher,
    siren: str,
    is_cancelled: CancelCheck | None,
) -> tuple[CompanyEnrichment | None, bool]:
    """
    Wait for one lookup while polling for cancellation.

    Returns (enrichment, cancelled). A cancelled lookup keeps running
    detached and its result is dropped.
    """
    task = asyncio.ensure_future(_safe_enrich(enricher, siren))
    poll_s = settings.stream_cancel_poll_s()
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_s)
            if done:
                return task.result(), False
            if await _is_cancelled(is_cancelled):
                _detach(task)
                return None, True
    except asyncio.CancelledError:
        # Response body task cancelled on client disconnect.
        _detach(task)
        raise


async def iter_polygon_owners(
    points: Any,
    limit: int | None = None,
    *,
    enricher: RegistryEnricher,
    is_cancelled: CancelCheck | None = None,
) -> AsyncIterator[OwnerReady | StreamSummary]:
    """
    Streaming polygon search: yields one `OwnerReady` per owner, each right
    after its enrichment, then a single `StreamSummary`.

    Enrichment is uncapped here. `is_cancelled` is checked before each owner,
    while a lookup is in flight and before each emission; once it reports
    true no further lookups start and nothing else but the summary is yielded.
    """
    collected = await _collect(
        lambda: Polygon.from_coordinates(points, max_points=settings.max_polygon_points()),
        limit,
    )
    summary = StreamSummary(
        state=collected.state,
        reason=collected.reason,
        total_in_zone=collected.count.unique_owners,
        rows_in_zone=collected.count.total_rows,
        max_results=collected.owner_cap,
        debug=collected.debug,
    )
    if collected.state is not SearchState.ENRICHING:
        yield summary
        return

    owners = collected.owners
    summary.total_owners = len(owners)
    summary.total_lots = collected.total_lots
    _log_state(SearchState.ENRICHING, owners=len(owners), mode="stream")

    for index, owner in enumerate(owners):
        if await _is_cancelled(is_cancelled):
            summary.cancelled = True
            break
        if is_siren(owner.cle):
            owner.entreprise, cancelled = await _enrich_unless_cancelled(enricher, owner.cle, is_cancelled)
            if cancelled:
                summary.cancelled = True
                break
            if owner.entreprise is not None:
                summary.enriched += 1
        if await _is_cancelled(is_cancelled):
            summary.cancelled = True
            break
        summary.emitted += 1
        yield OwnerReady(index=index, total=len(owners), owner=owner)

    summary.state = SearchState.DONE
    if summary.cancelled:
        logger.info("geo_stream_cancelled emitted=%s of=%s", summary.emitted, len(owners))
    else:
        logger.info(
            "geo_stream_done owners=%s in_zone=%s lots=%s enriched=%s",
            len(owners),
            summary.total_in_zone,
            summary.total_lots,
            summary.enriched,
        )
    yield summary


async def search_polygon_streaming(
    points: Any,
    limit: int | None,
    on_owner_ready: OwnerCallback,
    *,
    enricher: RegistryEnricher,
    is_cancelled: CancelCheck | None = None,
) -> StreamSummary:
    """
    Callback form of `iter_polygon_owners`; returns the final summary.
    """
    summary: StreamSummary | None = None
    async for event in iter_polygon_owners(points, limit, enricher=enricher, is_cancelled=is_cancelled):
        if isinstance(event, StreamSummary):
            summary = event
            continue
        outcome = on_owner_ready(event)
        if inspect.isawaitable(outcome):
            await outcome
    if summary is None:
        raise RuntimeError("Streaming search ended without a summary.")
    return summary
