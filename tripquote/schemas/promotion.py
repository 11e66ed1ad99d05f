"""Promotion code schemas."""

from __future__ import annotations
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from tripquote.schemas.quote import Requester, VehicleClass


class PromotionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE = "free"


ALL_VEHICLE_CLASSES = [
    VehicleClass.STANDARD, VehicleClass.PREMIUM, VehicleClass.VAN, VehicleClass.LUXURY,
]


class HourRange(BaseModel):
    """Half-open hour window [start, end)."""

    start: int = Field(ge=0, le=23)
    end: int = Field(ge=0, le=24)

    @model_validator(mode="after")
    def _ordered(self) -> HourRange:
        if self.start >= self.end:
            raise ValueError(f"hour range must end after it starts: {self.start}-{self.end}")
        return self

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


def _check_weekdays(days: set[int] | None) -> set[int] | None:
    for day in days or ():
        if not 0 <= day <= 6:
            raise ValueError(f"weekday out of range: {day}")
    return days


class PromotionUsage(BaseModel):
    user_id: str | None = None
    client_id: str | None = None
    usage_count: int = Field(default=1, ge=0)
    last_used_at: datetime = Field(default_factory=datetime.now)

    def matches(self, requester: Requester) -> bool:
        """Same user reference or same client reference."""
        return bool(
            (requester.user_id and self.user_id == requester.user_id)
            or (requester.client_id and self.client_id == requester.client_id)
        )


class PromotionCreate(BaseModel):
    code: str = Field(min_length=1)
    type: PromotionType = PromotionType.PERCENTAGE
    value: float = Field(ge=0)
    max_value: float | None = Field(default=None, ge=0)
    min_order_amount: float = Field(default=0.0, ge=0)
    description: str = ""
    usage_limit: int | None = Field(default=None, ge=1)
    limit_per_user: int = Field(default=1, ge=1)
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    applicable_vehicle_classes: list[VehicleClass] = Field(
        default_factory=lambda: list(ALL_VEHICLE_CLASSES)
    )
    excluded_weekdays: set[int] = Field(default_factory=set)  # 0 = Sunday
    excluded_hours: list[HourRange] = Field(default_factory=list)
    for_new_customers_only: bool = False
    first_ride_only: bool = False
    created_by: str | None = None

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("excluded_weekdays")
    @classmethod
    def _weekday_range(cls, v: set[int]) -> set[int]:
        return _check_weekdays(v)


class Promotion(PromotionCreate):
    """A redeemable promotion with its usage counters."""

    usage_count: int = Field(default=0, ge=0)
    used_by: list[PromotionUsage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _usage_covers_identities(self) -> Promotion:
        per_identity = sum(u.usage_count for u in self.used_by)
        if self.usage_count < per_identity:
            raise ValueError("usage_count is lower than the sum of per-identity usage")
        return self

    def find_usage(self, requester: Requester | None) -> PromotionUsage | None:
        if requester is None or requester.is_anonymous:
            return None
        for usage in self.used_by:
            if usage.matches(requester):
                return usage
        return None


class PromotionUpdate(BaseModel):
    """Mutable promotion fields; code and type are fixed at creation."""

    value: float | None = Field(default=None, ge=0)
    max_value: float | None = Field(default=None, ge=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    description: str | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    limit_per_user: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    applicable_vehicle_classes: list[VehicleClass] | None = None
    excluded_weekdays: set[int] | None = None
    excluded_hours: list[HourRange] | None = None
    for_new_customers_only: bool | None = None
    first_ride_only: bool | None = None

    @field_validator("excluded_weekdays")
    @classmethod
    def _weekday_range(cls, v: set[int] | None) -> set[int] | None:
        return _check_weekdays(v)


class PromotionCheck(BaseModel):
    """Outcome of a verify / apply call."""

    valid: bool
    code: str
    message: str | None = None
    type: PromotionType | None = None
    value: float | None = None
    discount: float = 0.0
    description: str | None = None
    valid_until: datetime | None = None
    final_amount: float | None = None
