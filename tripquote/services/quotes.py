"""
Quote Orchestrator — itemized trip price.

  price = base + distance × rate/km + duration × rate/min
        + fixed surcharges
        − promotion discount (computed on the pre-floor price)
  total = max(price, minimum price), rounded to 2 decimals

Multiplicative surcharge factors (night, weekend, holiday, vehicle class)
are reported in the quote but only applied when APPLY_SURCHARGE_FACTORS
is enabled.
"""

from __future__ import annotations
import logging
import math
from dataclasses import asdict, dataclass

from tripquote.config import settings
from tripquote.schemas import DEFAULT_RATES, CustomZone, Promotion, QuoteRequest, RateTable
from tripquote.services.locations import Coordinates
from tripquote.services.promotions import PromotionPolicy, get_promotion_policy
from tripquote.services.routing import RouteEstimator, RouteResult, haversine_distance
from tripquote.services.surcharges import SurchargeItem, calculate_surcharges

logger = logging.getLogger(__name__)


@dataclass
class Quote:
    base_price: float
    distance_price: float
    duration_price: float
    surcharges: dict[str, SurchargeItem]
    surcharge_total: float
    discount: float
    discount_details: dict | None
    total_price: float
    route: RouteResult
    factor_multiplier: float = 1.0
    zone: str | None = None
    minimum_applied: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def match_zone(
    zones: list[CustomZone], origin: Coordinates, destination: Coordinates,
) -> CustomZone | None:
    """First fixed-price zone whose from/to areas contain origin/destination."""
    for zone in zones:
        from_km = haversine_distance(zone.from_lat, zone.from_lng, origin.lat, origin.lng)
        to_km = haversine_distance(zone.to_lat, zone.to_lng, destination.lat, destination.lng)
        if from_km <= zone.radius_km and to_km <= zone.radius_km:
            return zone
    return None


class QuoteOrchestrator:
    def __init__(
        self,
        route_estimator: RouteEstimator | None = None,
        promotion_policy: PromotionPolicy | None = None,
        apply_surcharge_factors: bool | None = None,
    ):
        self.route_estimator = route_estimator or RouteEstimator()
        self.promotion_policy = promotion_policy or get_promotion_policy()
        self.apply_surcharge_factors = (
            settings.APPLY_SURCHARGE_FACTORS
            if apply_surcharge_factors is None else apply_surcharge_factors
        )

    def quote(
        self,
        request: QuoteRequest,
        rates: RateTable | None = None,
        promotion: Promotion | None = None,
    ) -> Quote:
        rates = rates or DEFAULT_RATES
        route = self.route_estimator.estimate(
            request.origin, request.destination, request.stops, request.date_time,
        )

        zone = None
        if rates.custom_zones:
            resolver = self.route_estimator.resolver
            zone = match_zone(
                rates.custom_zones,
                resolver.resolve(request.origin),
                resolver.resolve(request.destination),
            )

        if zone is not None:
            base_price, distance_price, duration_price = zone.fixed_price, 0.0, 0.0
        else:
            base_price = rates.base_price
            distance_price = route.distance_km * rates.price_per_km
            duration_price = route.duration_min * rates.price_per_minute
        price = base_price + distance_price + duration_price

        surcharge = calculate_surcharges(
            rates,
            request.date_time,
            vehicle_class=request.vehicle_class,
            luggage_count=request.luggage_count,
            with_pet=request.with_pet,
            is_airport=request.is_airport,
            waiting_minutes=request.waiting_minutes,
        )

        multiplier = 1.0
        if self.apply_surcharge_factors:
            multiplier = math.prod(surcharge.factors.values())
            price *= multiplier
        price += surcharge.total

        applied = self.promotion_policy.evaluate(request, price, promotion)
        discount = applied.amount if applied else 0.0
        price -= discount

        minimum_applied = price < rates.minimum_price
        if minimum_applied:
            price = rates.minimum_price

        quote = Quote(
            base_price=round(base_price, 2),
            distance_price=round(distance_price, 2),
            duration_price=round(duration_price, 2),
            surcharges=surcharge.details,
            surcharge_total=round(surcharge.total, 2),
            discount=round(discount, 2),
            discount_details=(
                {
                    "code": applied.code,
                    "type": applied.type.value,
                    "value": applied.value,
                    "label": applied.label,
                    "amount": round(applied.amount, 2),
                }
                if applied else None
            ),
            total_price=round(price, 2),
            route=route,
            factor_multiplier=multiplier,
            zone=zone.name if zone else None,
            minimum_applied=minimum_applied,
        )
        logger.info(
            "Quote: %s → %s (%d stops) distance=%.0fm total=%.2f",
            request.origin, request.destination, len(request.stops),
            route.total_distance_meters, quote.total_price,
        )
        return quote


def estimate_price(
    request: QuoteRequest,
    rates: RateTable | None = None,
    promotion: Promotion | None = None,
) -> Quote:
    """Quote with a default orchestrator built from settings."""
    return QuoteOrchestrator().quote(request, rates, promotion)
