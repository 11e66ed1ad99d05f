"""
TripQuote — trip pricing and promotion engine.

Turns a ride request into an itemized quote and validates / redeems
promotion codes against their eligibility rules.
"""

from tripquote.config import configure_logging, get_settings
from tripquote.exceptions import (
    ConfigurationError, DuplicatePromotionCode, PromotionError, PromotionNotFound,
)
from tripquote.schemas import (
    DEFAULT_RATES, Promotion, PromotionType, QuoteRequest, RateTable, Requester, VehicleClass,
)
from tripquote.services.quotes import Quote, QuoteOrchestrator, estimate_price

__version__ = "1.0.0"

__all__ = [
    "configure_logging", "get_settings",
    "ConfigurationError", "DuplicatePromotionCode", "PromotionError", "PromotionNotFound",
    "DEFAULT_RATES", "Promotion", "PromotionType", "QuoteRequest", "RateTable",
    "Requester", "VehicleClass",
    "Quote", "QuoteOrchestrator", "estimate_price",
]
