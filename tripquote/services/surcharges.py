"""
Surcharge Calculator — calendar and trip-attribute price adjustments.

Two kinds of entries:
  - fixed amounts (luggage, pet, airport, waiting) → summed into ``total``
  - multiplicative factors (night, weekend, holiday, vehicle class) →
    reported only; applying them is the caller's decision
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime

from tripquote.schemas import RateTable, VehicleClass
from tripquote.services.routing import is_night

MAX_CHARGED_LUGGAGE = 3

# Fixed-date public holidays (month, day)
HOLIDAYS = {
    (1, 1),    # New Year's Day
    (5, 1),    # Labour Day
    (5, 8),    # Victory in Europe Day
    (7, 14),   # Bastille Day
    (8, 15),   # Assumption
    (11, 1),   # All Saints' Day
    (11, 11),  # Armistice Day
    (12, 25),  # Christmas
}

VAN_FACTOR = 1.3
LUXURY_FACTOR = 2.0


@dataclass
class SurchargeItem:
    label: str
    amount: float | None = None
    factor: float | None = None

    @property
    def is_fixed(self) -> bool:
        return self.amount is not None


@dataclass
class SurchargeResult:
    details: dict[str, SurchargeItem] = field(default_factory=dict)
    total: float = 0.0

    @property
    def factors(self) -> dict[str, float]:
        return {k: v.factor for k, v in self.details.items() if v.factor is not None}


def is_holiday(day: date) -> bool:
    return (day.month, day.day) in HOLIDAYS


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def vehicle_factor(rates: RateTable, vehicle_class: VehicleClass) -> float | None:
    if vehicle_class == VehicleClass.PREMIUM:
        return rates.premium_vehicle_factor
    if vehicle_class == VehicleClass.VAN:
        return VAN_FACTOR
    if vehicle_class == VehicleClass.LUXURY:
        return LUXURY_FACTOR
    return None


def calculate_surcharges(
    rates: RateTable,
    at: datetime,
    vehicle_class: VehicleClass = VehicleClass.STANDARD,
    luggage_count: int = 0,
    with_pet: bool = False,
    is_airport: bool = False,
    waiting_minutes: float = 0.0,
) -> SurchargeResult:
    """
    Evaluate every surcharge rule independently.

    ``total`` only accumulates the fixed-amount rules.
    """
    result = SurchargeResult()
    details = result.details

    if is_night(at):
        details["night"] = SurchargeItem("Night surcharge", factor=rates.night_surcharge_factor)
    if is_weekend(at.date()):
        details["weekend"] = SurchargeItem("Weekend surcharge", factor=rates.weekend_surcharge_factor)
    if is_holiday(at.date()):
        details["holiday"] = SurchargeItem("Public holiday surcharge", factor=rates.holiday_surcharge_factor)

    if luggage_count > 0:
        charged = min(luggage_count, MAX_CHARGED_LUGGAGE)
        amount = charged * rates.luggage_surcharge_unit
        details["luggage"] = SurchargeItem(f"Luggage ({charged})", amount=amount)
        result.total += amount

    if with_pet:
        details["pet"] = SurchargeItem("Pet", amount=rates.pet_surcharge_amount)
        result.total += rates.pet_surcharge_amount

    if is_airport:
        details["airport"] = SurchargeItem("Airport", amount=rates.airport_surcharge_amount)
        result.total += rates.airport_surcharge_amount

    factor = vehicle_factor(rates, vehicle_class)
    if factor is not None:
        details["vehicle"] = SurchargeItem(f"Vehicle class: {vehicle_class.value}", factor=factor)

    if waiting_minutes > 0:
        amount = waiting_minutes / 60 * rates.waiting_price_per_hour
        details["waiting"] = SurchargeItem(f"Waiting time ({waiting_minutes:g} min)", amount=amount)
        result.total += amount

    return result
