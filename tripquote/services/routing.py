"""
Route Estimator — deterministic distance/duration model for multi-stop trips.

Model:
  1. Static lookup table for well-known origin/destination pairs
  2. Otherwise great-circle distance between consecutive waypoints
  3. Road correction factor on the total (by distance bucket, airport override)
  4. Time-of-day speed, faster when the whole trip is outside the urban zone
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from tripquote.config import settings
from tripquote.services.locations import (
    Coordinates, LocationResolver, city_center, is_airport_label, normalize_label,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# ── Road correction ────────────────────────────────────────

CORRECTION_BUCKETS = [
    (3.0, 1.3),    # < 3 km → dense streets
    (10.0, 1.2),   # < 10 km
]
CORRECTION_LONG = 1.1
CORRECTION_AIRPORT = 1.15

# ── Speed model (km/h) ─────────────────────────────────────

PEAK_WINDOWS = [(7, 10), (17, 20)]   # [start, end) hours
PEAK_SPEED = 20.0
NIGHT_SPEED = 40.0
DEFAULT_SPEED = 30.0
OUT_OF_TOWN_BONUS = 20.0

# Precomputed (distance m, duration s) for frequent pairs, keyed by normalized labels.
KNOWN_ROUTES: dict[tuple[str, str], tuple[float, float]] = {
    ("paris", "charles de gaulle"): (34_000.0, 2_700.0),
    ("paris", "orly"): (18_000.0, 1_800.0),
    ("paris", "beauvais"): (85_000.0, 4_500.0),
    ("charles de gaulle", "orly"): (45_000.0, 3_000.0),
    ("paris", "disneyland"): (42_000.0, 2_700.0),
    ("paris", "versailles"): (21_000.0, 1_800.0),
}


@dataclass
class Leg:
    start_label: str
    end_label: str
    distance_meters: float
    duration_seconds: float


@dataclass
class RouteResult:
    total_distance_meters: float
    total_duration_seconds: float
    legs: list[Leg] = field(default_factory=list)
    source: str = "estimate"          # "estimate" | "lookup"
    correction_factor: float = 1.0
    speed_kmh: float | None = None

    @property
    def distance_km(self) -> float:
        return self.total_distance_meters / 1000

    @property
    def duration_min(self) -> float:
        return self.total_duration_seconds / 60


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km on a spherical earth."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def correction_factor(raw_total_km: float, airport: bool = False) -> float:
    if airport:
        return CORRECTION_AIRPORT
    for threshold, factor in CORRECTION_BUCKETS:
        if raw_total_km < threshold:
            return factor
    return CORRECTION_LONG


def is_night(at: datetime) -> bool:
    return at.hour >= 22 or at.hour < 6


def average_speed(at: datetime, out_of_town: bool = False) -> float:
    """Average speed for the hour of departure."""
    hour = at.hour
    if any(start <= hour < end for start, end in PEAK_WINDOWS):
        speed = PEAK_SPEED
    elif is_night(at):
        speed = NIGHT_SPEED
    else:
        speed = DEFAULT_SPEED
    if out_of_town:
        speed += OUT_OF_TOWN_BONUS
    return speed


class RouteEstimator:
    def __init__(
        self,
        resolver: LocationResolver | None = None,
        lookup: dict[tuple[str, str], tuple[float, float]] | None = None,
        center: Coordinates | None = None,
        urban_radius_km: float | None = None,
    ):
        self.resolver = resolver or LocationResolver()
        self.lookup = KNOWN_ROUTES if lookup is None else lookup
        self.center = center or city_center()
        self.urban_radius_km = (
            settings.URBAN_RADIUS_KM if urban_radius_km is None else urban_radius_km
        )

    def _lookup(self, origin: str, destination: str) -> tuple[float, float] | None:
        o, d = normalize_label(origin), normalize_label(destination)
        return self.lookup.get((o, d)) or self.lookup.get((d, o))

    def _in_urban_zone(self, point: Coordinates) -> bool:
        return haversine_distance(
            self.center.lat, self.center.lng, point.lat, point.lng,
        ) <= self.urban_radius_km

    def estimate(
        self,
        origin: str,
        destination: str,
        stops: list[str] | None = None,
        at: datetime | None = None,
    ) -> RouteResult:
        """
        Estimate a route through origin → stops → destination.

        Leg distances/durations always sum to the totals; there is
        one leg per consecutive waypoint pair.
        """
        stops = stops or []
        at = at or datetime.now()

        if not stops:
            known = self._lookup(origin, destination)
            if known is not None:
                distance_m, duration_s = round(known[0], 1), round(known[1], 1)
                logger.debug("Route lookup hit: %s → %s", origin, destination)
                return RouteResult(
                    total_distance_meters=distance_m,
                    total_duration_seconds=duration_s,
                    legs=[Leg(origin, destination, distance_m, duration_s)],
                    source="lookup",
                )

        labels = [origin, *stops, destination]
        points = [self.resolver.resolve(label) for label in labels]

        raw_legs_km = [
            haversine_distance(a.lat, a.lng, b.lat, b.lng)
            for a, b in zip(points, points[1:])
        ]
        raw_total_km = sum(raw_legs_km)

        factor = correction_factor(
            raw_total_km,
            airport=is_airport_label(origin) or is_airport_label(destination),
        )
        out_of_town = not self._in_urban_zone(points[0]) and not self._in_urban_zone(points[-1])
        speed = average_speed(at, out_of_town)

        legs = []
        for (start, end), raw_km in zip(zip(labels, labels[1:]), raw_legs_km):
            distance_m = round(raw_km * factor * 1000, 1)
            duration_s = round(distance_m / 1000 / speed * 3600, 1)
            legs.append(Leg(start, end, distance_m, duration_s))

        return RouteResult(
            total_distance_meters=sum(leg.distance_meters for leg in legs),
            total_duration_seconds=sum(leg.duration_seconds for leg in legs),
            legs=legs,
            source="estimate",
            correction_factor=factor,
            speed_kmh=speed,
        )
