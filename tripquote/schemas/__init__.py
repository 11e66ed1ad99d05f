"""Pydantic schemas shared by the pricing and promotion services."""

from tripquote.schemas.quote import (
    CORE_RATE_FIELDS, DEFAULT_RATES, CustomZone, QuoteRequest, RateTable, Requester, VehicleClass,
)
from tripquote.schemas.promotion import (
    ALL_VEHICLE_CLASSES, HourRange, Promotion, PromotionCheck, PromotionCreate,
    PromotionType, PromotionUpdate, PromotionUsage,
)

__all__ = [
    "CORE_RATE_FIELDS", "DEFAULT_RATES", "CustomZone", "QuoteRequest", "RateTable",
    "Requester", "VehicleClass",
    "ALL_VEHICLE_CLASSES", "HourRange", "Promotion", "PromotionCheck", "PromotionCreate",
    "PromotionType", "PromotionUpdate", "PromotionUsage",
]
