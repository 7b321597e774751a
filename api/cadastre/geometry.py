"""
Query regions for geographic search.

Coordinates are WGS84 degrees, GeoJSON order: [longitude, latitude].
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union


class InvalidRegion(ValueError):
    pass


@dataclass(frozen=True)
class GeoPoint:
    lon: float
    lat: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lon) and math.isfinite(self.lat)):
            raise InvalidRegion("Coordinates must be finite numbers.")
        if not -180.0 <= self.lon <= 180.0:
            raise InvalidRegion(f"Longitude out of range: {self.lon}")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidRegion(f"Latitude out of range: {self.lat}")

    @classmethod
    def from_pair(cls, pair: Any) -> "GeoPoint":
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise InvalidRegion("Each point must be [longitude, latitude].")
        lon, lat = pair
        # bool is an int subclass; reject it explicitly.
        if isinstance(lon, bool) or isinstance(lat, bool) or not all(isinstance(v, (int, float)) for v in pair):
            raise InvalidRegion("Each point must be [longitude, latitude] (numbers).")
        return cls(lon=float(lon), lat=float(lat))


@dataclass(frozen=True)
class Polygon:
    points: tuple[GeoPoint, ...]

    @classmethod
    def from_coordinates(cls, coordinates: Any, *, max_points: int | None = None) -> "Polygon":
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 3:
            raise InvalidRegion("Polygon must have at least 3 points [[lng, lat], ...].")
        if max_points is not None and len(coordinates) > max_points:
            raise InvalidRegion(f"Polygon must not exceed {max_points} points.")
        return cls(points=tuple(GeoPoint.from_pair(p) for p in coordinates))

    def closed(self) -> tuple[GeoPoint, ...]:
        """
        Points with the first one repeated at the end when the ring is open.
        """
        if self.points[0] == self.points[-1]:
            return self.points
        return (*self.points, self.points[0])

    def to_wkt(self) -> str:
        coords = ", ".join(f"{p.lon!r} {p.lat!r}" for p in self.closed())
        return f"POLYGON(({coords}))"


@dataclass(frozen=True)
class RadiusQuery:
    center: GeoPoint
    radius_m: float

    @classmethod
    def build(cls, lon: Any, lat: Any, radius_m: Any, *, max_radius_m: float) -> "RadiusQuery":
        center = GeoPoint.from_pair([lon, lat])
        if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)) or not math.isfinite(radius_m):
            raise InvalidRegion("Radius must be a number of meters.")
        if radius_m <= 0 or radius_m > max_radius_m:
            raise InvalidRegion(f"Radius must be > 0 and at most {max_radius_m:g} meters.")
        return cls(center=center, radius_m=float(radius_m))


Region = Union[Polygon, RadiusQuery]
