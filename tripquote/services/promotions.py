"""
Promotion rules — eligibility, discount amount, and the quote-time policies.

Two interchangeable policies feed the quote orchestrator:
  - RulePromotionPolicy: full Promotion rule set (validator + discount)
  - WelcomePromotionPolicy: hard-coded WELCOME code, flat 10% off
Selected with PROMOTION_MODE ("rules" | "stub").
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from tripquote.config import settings
from tripquote.exceptions import ConfigurationError
from tripquote.schemas import Promotion, PromotionType, QuoteRequest, Requester, VehicleClass

logger = logging.getLogger(__name__)

EligibilityPredicate = Callable[[Promotion, Requester | None, datetime], bool]
PromotionLookup = Callable[[str], Promotion | None]


def always_eligible(promotion: Promotion, requester: Requester | None, at: datetime) -> bool:
    return True


def never_eligible(promotion: Promotion, requester: Requester | None, at: datetime) -> bool:
    return False


def reserved_flag_predicate(policy: str | None = None) -> EligibilityPredicate:
    """Default predicate for the new-customer / first-ride flags."""
    policy = (policy or settings.RESERVED_FLAG_POLICY).lower()
    if policy == "pass":
        return always_eligible
    if policy == "fail":
        return never_eligible
    raise ConfigurationError(f"Unknown RESERVED_FLAG_POLICY: {policy!r}")


def weekday_index(at: datetime) -> int:
    """Day of week with 0 = Sunday … 6 = Saturday."""
    return (at.weekday() + 1) % 7


class PromotionValidator:
    """
    Checks a promotion against the request context.

    Pure: never mutates the promotion, so repeated calls with the same
    inputs give the same verdict.
    """

    def __init__(
        self,
        new_customer_check: EligibilityPredicate | None = None,
        first_ride_check: EligibilityPredicate | None = None,
    ):
        default = reserved_flag_predicate()
        self.new_customer_check = new_customer_check or default
        self.first_ride_check = first_ride_check or default

    def failed_check(
        self,
        promotion: Promotion,
        requester: Requester | None = None,
        order_amount: float = 0.0,
        vehicle_class: VehicleClass | None = None,
        at: datetime | None = None,
    ) -> str | None:
        """Name of the first failing check, or None when the promotion applies."""
        now = at or datetime.now()

        if not promotion.is_active:
            return "inactive"
        if promotion.valid_from is not None and now < promotion.valid_from:
            return "not_started"
        if promotion.valid_until is not None and now > promotion.valid_until:
            return "expired"
        if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
            return "usage_limit"
        if order_amount < promotion.min_order_amount:
            return "min_order_amount"
        # an empty class list means every class
        if (
            vehicle_class is not None
            and promotion.applicable_vehicle_classes
            and vehicle_class not in promotion.applicable_vehicle_classes
        ):
            return "vehicle_class"
        if weekday_index(now) in promotion.excluded_weekdays:
            return "excluded_weekday"
        if any(window.contains(now.hour) for window in promotion.excluded_hours):
            return "excluded_hour"
        if promotion.for_new_customers_only and not self.new_customer_check(promotion, requester, now):
            return "new_customers_only"
        if promotion.first_ride_only and not self.first_ride_check(promotion, requester, now):
            return "first_ride_only"

        usage = promotion.find_usage(requester)
        if usage is not None and usage.usage_count >= promotion.limit_per_user:
            return "limit_per_user"
        return None

    def is_valid(
        self,
        promotion: Promotion,
        requester: Requester | None = None,
        order_amount: float = 0.0,
        vehicle_class: VehicleClass | None = None,
        at: datetime | None = None,
    ) -> bool:
        return self.failed_check(promotion, requester, order_amount, vehicle_class, at) is None


def calculate_discount(promotion: Promotion, order_amount: float) -> float:
    """Discount granted by a (valid) promotion on an order amount."""
    if promotion.type == PromotionType.PERCENTAGE:
        discount = order_amount * promotion.value / 100
        if promotion.max_value:  # 0 means uncapped
            discount = min(discount, promotion.max_value)
        return discount
    if promotion.type == PromotionType.FIXED:
        return min(promotion.value, order_amount)
    if promotion.type == PromotionType.FREE:
        return order_amount
    return 0.0


# ── Quote-time policies ────────────────────────────────────

@dataclass
class AppliedDiscount:
    code: str
    amount: float
    label: str
    type: PromotionType
    value: float


class PromotionPolicy(Protocol):
    def evaluate(
        self, request: QuoteRequest, amount: float, promotion: Promotion | None = None,
    ) -> AppliedDiscount | None: ...


class RulePromotionPolicy:
    def __init__(
        self,
        validator: PromotionValidator | None = None,
        lookup: PromotionLookup | None = None,
    ):
        self.validator = validator or PromotionValidator()
        self.lookup = lookup

    def evaluate(
        self, request: QuoteRequest, amount: float, promotion: Promotion | None = None,
    ) -> AppliedDiscount | None:
        if not request.promotion_code:
            return None
        code = request.promotion_code.strip().upper()

        if promotion is None and self.lookup is not None:
            promotion = self.lookup(code)
        if promotion is None or promotion.code != code:
            logger.info("Promotion %s not found", code)
            return None

        failed = self.validator.failed_check(
            promotion, request.requester, amount, request.vehicle_class, request.date_time,
        )
        if failed:
            logger.info("Promotion %s rejected: %s", code, failed)
            return None

        return AppliedDiscount(
            code=promotion.code,
            amount=calculate_discount(promotion, amount),
            label=promotion.description or f"Promotion {promotion.code}",
            type=promotion.type,
            value=promotion.value,
        )


class WelcomePromotionPolicy:
    """Registry-free stub: WELCOME grants 10% off, nothing else applies."""

    CODE = "WELCOME"
    PERCENT = 10.0

    def evaluate(
        self, request: QuoteRequest, amount: float, promotion: Promotion | None = None,
    ) -> AppliedDiscount | None:
        if not request.promotion_code or request.promotion_code.strip().upper() != self.CODE:
            return None
        return AppliedDiscount(
            code=self.CODE,
            amount=amount * self.PERCENT / 100,
            label=f"Welcome code ({self.PERCENT:g}%)",
            type=PromotionType.PERCENTAGE,
            value=self.PERCENT,
        )


def get_promotion_policy(
    mode: str | None = None,
    lookup: PromotionLookup | None = None,
    validator: PromotionValidator | None = None,
) -> PromotionPolicy:
    mode = (mode or settings.PROMOTION_MODE).lower()
    if mode == "rules":
        return RulePromotionPolicy(validator, lookup)
    if mode == "stub":
        return WelcomePromotionPolicy()
    raise ConfigurationError(f"Unknown PROMOTION_MODE: {mode!r}")
