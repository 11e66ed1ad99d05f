"""Quote request and rate table schemas."""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from tripquote.exceptions import ConfigurationError


class VehicleClass(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"
    VAN = "van"
    LUXURY = "luxury"


class Requester(BaseModel):
    """Opaque identity of whoever asks for the quote (user and/or client reference)."""

    user_id: str | None = None
    client_id: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None and self.client_id is None


class QuoteRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    stops: list[str] = Field(default_factory=list)
    date_time: datetime = Field(default_factory=datetime.now)
    vehicle_class: VehicleClass = VehicleClass.STANDARD
    passenger_count: int = Field(default=1, ge=1)
    luggage_count: int = Field(default=0, ge=0)
    with_pet: bool = False
    is_airport: bool = False
    waiting_minutes: float = Field(default=0.0, ge=0)
    promotion_code: str | None = None
    requester: Requester | None = None


class CustomZone(BaseModel):
    """Fixed-price corridor between two areas (e.g. city center ↔ airport)."""

    name: str
    fixed_price: float = Field(ge=0)
    from_lat: float
    from_lng: float
    to_lat: float
    to_lng: float
    radius_km: float = Field(default=2.0, gt=0)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class RateTable(BaseModel):
    """
    Per-organization tariff. All numeric fields are required and non-negative.

    Accepts snake_case names as well as the camelCase keys stored in
    organization tariff settings (``basePrice``, ``nightSurcharge``...).
    """

    base_price: float = Field(ge=0, validation_alias=_alias("base_price", "basePrice"))
    price_per_km: float = Field(ge=0, validation_alias=_alias("price_per_km", "pricePerKm"))
    price_per_minute: float = Field(ge=0, validation_alias=_alias("price_per_minute", "pricePerMinute"))
    minimum_price: float = Field(ge=0, validation_alias=_alias("minimum_price", "minimumPrice"))
    night_surcharge_factor: float = Field(
        ge=0, validation_alias=_alias("night_surcharge_factor", "nightSurchargeFactor", "nightSurcharge"),
    )
    weekend_surcharge_factor: float = Field(
        ge=0, validation_alias=_alias("weekend_surcharge_factor", "weekendSurchargeFactor", "weekendSurcharge"),
    )
    holiday_surcharge_factor: float = Field(
        ge=0, validation_alias=_alias("holiday_surcharge_factor", "holidaySurchargeFactor", "holidaySurcharge"),
    )
    luggage_surcharge_unit: float = Field(
        ge=0, validation_alias=_alias("luggage_surcharge_unit", "luggageSurchargeUnit", "luggageSurcharge"),
    )
    pet_surcharge_amount: float = Field(
        ge=0, validation_alias=_alias("pet_surcharge_amount", "petSurchargeAmount", "petSurcharge"),
    )
    airport_surcharge_amount: float = Field(
        ge=0, validation_alias=_alias("airport_surcharge_amount", "airportSurchargeAmount", "airportSurcharge"),
    )
    premium_vehicle_factor: float = Field(
        ge=0, validation_alias=_alias("premium_vehicle_factor", "premiumVehicleFactor"),
    )
    waiting_price_per_hour: float = Field(
        ge=0, validation_alias=_alias("waiting_price_per_hour", "waitingPricePerHour"),
    )
    custom_zones: list[CustomZone] = Field(
        default_factory=list, validation_alias=_alias("custom_zones", "customZones"),
    )

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> RateTable:
        """Build a rate table from a settings mapping, raising ConfigurationError on bad input."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise ConfigurationError(f"Invalid rate table fields: {', '.join(fields)}") from e

    def with_overrides(self, overrides: Mapping[str, Any]) -> RateTable:
        """
        Merge organization overrides over this table.

        The four core tariff fields must be strictly positive when overridden.
        """
        for key in CORE_RATE_FIELDS:
            for name in (key, _camel(key)):
                if name in overrides:
                    value = overrides[name]
                    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                        raise ConfigurationError(f"Rate field {name} is required and must be positive")
        merged = self.model_dump()
        for name, value in overrides.items():
            merged[_snake(name)] = value
        return RateTable.from_config(merged)


CORE_RATE_FIELDS = ("base_price", "price_per_km", "price_per_minute", "minimum_price")

# Keys stored by organization tariff settings that don't map 1:1 onto field names.
_LEGACY_KEYS = {
    "nightSurcharge": "night_surcharge_factor",
    "weekendSurcharge": "weekend_surcharge_factor",
    "holidaySurcharge": "holiday_surcharge_factor",
    "luggageSurcharge": "luggage_surcharge_unit",
    "petSurcharge": "pet_surcharge_amount",
    "airportSurcharge": "airport_surcharge_amount",
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def _snake(name: str) -> str:
    if name in _LEGACY_KEYS:
        return _LEGACY_KEYS[name]
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


DEFAULT_RATES = RateTable(
    base_price=2.5,
    price_per_km=1.05,
    price_per_minute=0.35,
    minimum_price=7.0,
    night_surcharge_factor=1.5,
    weekend_surcharge_factor=1.2,
    holiday_surcharge_factor=1.5,
    luggage_surcharge_unit=2.0,
    pet_surcharge_amount=5.0,
    airport_surcharge_amount=5.0,
    premium_vehicle_factor=1.5,
    waiting_price_per_hour=20.0,
)
