"""Tests for the location resolver."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from tripquote.services.locations import (
    DEFAULT_AIRPORT, DEFAULT_STATION, KNOWN_PLACES, Coordinates, HashedOffsetGenerator,
    LocationResolver, is_airport_label, normalize_label,
)

CENTER = Coordinates(48.8566, 2.3522)


def _resolver(**kwargs):
    kwargs.setdefault("fallback", HashedOffsetGenerator(CENTER, 0.05))
    return LocationResolver(**kwargs)


def test_normalize_label():
    """Punctuation, accents and extra spaces should be stripped."""
    assert normalize_label("  Gare-du-Nord!! ") == "gare du nord"
    assert normalize_label("Aéroport d'Orly") == "aeroport d orly"
    assert normalize_label("") == ""


def test_known_place_contained_in_text():
    """Registry name inside the label should match."""
    assert _resolver().resolve("Tour Eiffel, Paris") == KNOWN_PLACES["tour eiffel"]


def test_text_contained_in_known_place():
    """Partial label inside a registry name should match too."""
    assert _resolver().resolve("Eiffel") == KNOWN_PLACES["tour eiffel"]


def test_airport_category_fallback():
    """Unknown airport should resolve to the default airport."""
    assert _resolver().resolve("Aeroport international") == DEFAULT_AIRPORT


def test_station_category_fallback():
    """Unknown station should resolve to the default station."""
    assert _resolver().resolve("Main station Lille") == DEFAULT_STATION


def test_lat_lng_pin():
    """'lat,lng' text should be used directly."""
    assert _resolver().resolve("48.85, 2.35") == Coordinates(48.85, 2.35)


def test_unknown_location_is_deterministic():
    """Same unknown label should always resolve to the same point near the center."""
    resolver = _resolver()
    first = resolver.resolve("12 rue inconnue")
    second = resolver.resolve("12 Rue Inconnue!")
    assert first == second
    assert abs(first.lat - CENTER.lat) <= 0.05
    assert abs(first.lng - CENTER.lng) <= 0.05


def test_unknown_locations_differ():
    """Different unknown labels should spread around the center."""
    resolver = _resolver()
    assert resolver.resolve("12 rue inconnue") != resolver.resolve("99 avenue imaginaire")


def test_injected_fallback_strategy():
    """A custom fallback generator should be used for unresolved labels."""
    resolver = LocationResolver(fallback=lambda label: Coordinates(1.0, 2.0))
    assert resolver.resolve("nowhere special") == Coordinates(1.0, 2.0)


def test_custom_registry():
    """An injected registry should replace the built-in places."""
    resolver = _resolver(places={"depot": Coordinates(45.0, 5.0)})
    assert resolver.resolve("Depot north") == Coordinates(45.0, 5.0)


def test_is_airport_label():
    assert is_airport_label("CDG Terminal 2")
    assert is_airport_label("Aéroport de Beauvais")
    assert not is_airport_label("Gare de Lyon")
