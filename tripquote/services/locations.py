"""
Location Resolver — free-text place name → approximate coordinate.

Resolution order:
  1. "lat,lng" pin text is used as-is
  2. Known-place registry (two-way substring match on normalized text)
  3. Category fallback: airport-like or station-like tokens
  4. Synthetic coordinate near the city center (deterministic per label)

Resolution never fails.
"""

from __future__ import annotations
import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Callable

from tripquote.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


# ── Known places ───────────────────────────────────────────
# Order matters: the first two-way substring match wins, so broad
# names ("paris") go last.

KNOWN_PLACES: dict[str, Coordinates] = {
    "charles de gaulle": Coordinates(49.0097, 2.5479),
    "roissy": Coordinates(49.0097, 2.5479),
    "orly": Coordinates(48.7262, 2.3652),
    "beauvais": Coordinates(49.4544, 2.1128),
    "gare du nord": Coordinates(48.8809, 2.3553),
    "gare de lyon": Coordinates(48.8443, 2.3744),
    "gare montparnasse": Coordinates(48.8412, 2.3210),
    "gare saint lazare": Coordinates(48.8763, 2.3253),
    "gare de l est": Coordinates(48.8768, 2.3592),
    "tour eiffel": Coordinates(48.8584, 2.2945),
    "louvre": Coordinates(48.8606, 2.3376),
    "notre dame": Coordinates(48.8530, 2.3499),
    "arc de triomphe": Coordinates(48.8738, 2.2950),
    "montmartre": Coordinates(48.8867, 2.3431),
    "la defense": Coordinates(48.8918, 2.2362),
    "versailles": Coordinates(48.8049, 2.1204),
    "disneyland": Coordinates(48.8722, 2.7758),
    "paris": Coordinates(48.8566, 2.3522),
}

AIRPORT_TOKENS = frozenset({"airport", "aeroport", "aerodrome", "cdg", "orly", "terminal"})
STATION_TOKENS = frozenset({"gare", "station", "sncf", "train"})

DEFAULT_AIRPORT = KNOWN_PLACES["charles de gaulle"]
DEFAULT_STATION = KNOWN_PLACES["gare du nord"]


def normalize_label(text: str) -> str:
    """Lower-case, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = re.sub(r"[^\w\s]|_", " ", ascii_text.lower())
    return " ".join(cleaned.split())


def is_airport_label(text: str) -> bool:
    """True when the label names an airport (token or known airport)."""
    normalized = normalize_label(text)
    if AIRPORT_TOKENS.intersection(normalized.split()):
        return True
    return any(name in normalized for name in ("charles de gaulle", "roissy", "beauvais"))


def _parse_lat_lng(text: str) -> Coordinates | None:
    """Parse 'lat,lng' text (e.g. a dropped map pin)."""
    if not text or "," not in text:
        return None
    parts = text.strip().split(",", 1)
    try:
        lat, lng = float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None
    if -90 <= lat <= 90 and -180 <= lng <= 180:
        return Coordinates(lat, lng)
    return None


# ── Fallback strategy ──────────────────────────────────────

class HashedOffsetGenerator:
    """
    Deterministic pseudo-coordinate near a center point.

    The SHA-256 of the normalized label picks a displacement in
    [-max_offset_deg, +max_offset_deg] on each axis, so the same label
    always lands on the same spot.
    """

    def __init__(self, center: Coordinates, max_offset_deg: float = 0.05):
        self.center = center
        self.max_offset_deg = max_offset_deg

    def __call__(self, label: str) -> Coordinates:
        digest = hashlib.sha256(label.encode()).digest()
        lat_unit = int.from_bytes(digest[:4], "big") / 0xFFFFFFFF
        lng_unit = int.from_bytes(digest[4:8], "big") / 0xFFFFFFFF
        return Coordinates(
            self.center.lat + (lat_unit * 2 - 1) * self.max_offset_deg,
            self.center.lng + (lng_unit * 2 - 1) * self.max_offset_deg,
        )


FallbackGenerator = Callable[[str], Coordinates]


def city_center() -> Coordinates:
    return Coordinates(settings.CITY_CENTER_LAT, settings.CITY_CENTER_LNG)


class LocationResolver:
    def __init__(
        self,
        places: dict[str, Coordinates] | None = None,
        fallback: FallbackGenerator | None = None,
    ):
        self.places = KNOWN_PLACES if places is None else places
        self.fallback = fallback or HashedOffsetGenerator(
            city_center(), settings.FALLBACK_MAX_OFFSET_DEG,
        )

    def resolve(self, label: str) -> Coordinates:
        pin = _parse_lat_lng(label)
        if pin is not None:
            return pin

        normalized = normalize_label(label)
        if normalized:
            for name, coords in self.places.items():
                if name in normalized or normalized in name:
                    return coords

            tokens = set(normalized.split())
            if tokens & AIRPORT_TOKENS:
                return DEFAULT_AIRPORT
            if tokens & STATION_TOKENS:
                return DEFAULT_STATION

        coords = self.fallback(normalized)
        logger.debug("Unresolved location %r, using synthetic %s", label, coords)
        return coords
