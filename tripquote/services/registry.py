"""
Promotion Registry — in-process promotion store with the admin and
redemption flows built on top of the validator and usage recorder.
"""

from __future__ import annotations
import calendar
import logging
import secrets
import string
import threading
from datetime import datetime, timedelta

from tripquote.exceptions import DuplicatePromotionCode, PromotionNotFound
from tripquote.schemas import (
    Promotion, PromotionCheck, PromotionCreate, PromotionType, PromotionUpdate,
    Requester, VehicleClass,
)
from tripquote.services.promotions import PromotionValidator, calculate_discount
from tripquote.services.usage import PromotionUsageRecorder

logger = logging.getLogger(__name__)

BATCH_MAX = 100
SUFFIX_LENGTH = 6
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
TOP_CODES = 5
RECENT_USAGE = 10

MSG_UNKNOWN = "Invalid or unknown promotion code"
MSG_NOT_APPLICABLE = "Promotion code is not applicable in this context"
MSG_LIMIT_REACHED = "Promotion usage limit reached"


def _months_ago(now: datetime, months: int) -> datetime:
    month_index = now.month - 1 - months
    year = now.year + month_index // 12
    month = month_index % 12 + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def period_start(period: str | None, now: datetime) -> datetime:
    """Start of a stats window: week, month, year (default: 3 months)."""
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return _months_ago(now, 1)
    if period == "year":
        return _months_ago(now, 12)
    return _months_ago(now, 3)


class PromotionRegistry:
    def __init__(
        self,
        validator: PromotionValidator | None = None,
        recorder: PromotionUsageRecorder | None = None,
    ):
        self.validator = validator or PromotionValidator()
        self.recorder = recorder or PromotionUsageRecorder()
        self._promotions: dict[str, Promotion] = {}
        self._lock = threading.Lock()

    # ── Lookup / admin ─────────────────────────────────────

    def get(self, code: str) -> Promotion | None:
        return self._promotions.get(code.strip().upper())

    def create(self, data: PromotionCreate) -> Promotion:
        promotion = Promotion(**data.model_dump())
        with self._lock:
            if promotion.code in self._promotions:
                raise DuplicatePromotionCode(promotion.code)
            self._promotions[promotion.code] = promotion
        logger.info("Promotion created: code=%s type=%s", promotion.code, promotion.type.value)
        return promotion

    def update(self, code: str, data: PromotionUpdate) -> Promotion:
        """Apply the fields set on ``data``; the merged record must still validate."""
        with self._lock:
            promotion = self.get(code)
            if promotion is None:
                raise PromotionNotFound(code.upper())
            changes = data.model_dump(exclude_unset=True)
            merged = Promotion.model_validate({**promotion.model_dump(), **changes})
            for field in changes:
                setattr(promotion, field, getattr(merged, field))
        return promotion

    def delete(self, code: str) -> None:
        with self._lock:
            if self._promotions.pop(code.strip().upper(), None) is None:
                raise PromotionNotFound(code.upper())

    def list_promotions(
        self,
        active: bool | None = None,
        expired: bool | None = None,
        type: PromotionType | None = None,
        now: datetime | None = None,
    ) -> list[Promotion]:
        """Filtered promotions, newest first."""
        now = now or datetime.now()
        result = []
        for promotion in self._promotions.values():
            if active is not None and promotion.is_active != active:
                continue
            if expired is not None:
                is_expired = promotion.valid_until is not None and promotion.valid_until < now
                if is_expired != expired:
                    continue
            if type is not None and promotion.type != type:
                continue
            result.append(promotion)
        return sorted(result, key=lambda p: p.created_at, reverse=True)

    def generate_batch(self, prefix: str, count: int, template: PromotionCreate) -> list[Promotion]:
        """Create up to 100 codes: prefix + 6 random characters, all sharing the template rules."""
        count = min(BATCH_MAX, max(1, count))
        created = []
        while len(created) < count:
            suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
            data = template.model_copy(update={"code": f"{prefix}{suffix}".upper()})
            try:
                created.append(self.create(data))
            except DuplicatePromotionCode:
                continue
        return created

    def stats(self, period: str | None = None, now: datetime | None = None) -> dict:
        now = now or datetime.now()
        since = period_start(period, now)
        promotions = list(self._promotions.values())

        usage_by_type: dict[str, int] = {}
        for p in promotions:
            usage_by_type[p.type.value] = usage_by_type.get(p.type.value, 0) + p.usage_count

        top = sorted(promotions, key=lambda p: p.usage_count, reverse=True)[:TOP_CODES]
        recent = [
            {
                "code": p.code,
                "type": p.type.value,
                "value": p.value,
                "used_at": usage.last_used_at,
                "usage_count": usage.usage_count,
            }
            for p in promotions
            for usage in p.used_by
            if usage.last_used_at >= since
        ]
        recent.sort(key=lambda u: u["used_at"], reverse=True)

        return {
            "total_codes": len(promotions),
            "active_codes": sum(1 for p in promotions if p.is_active),
            "expired_codes": sum(1 for p in promotions if p.valid_until and p.valid_until < now),
            "total_usage": sum(p.usage_count for p in promotions),
            "usage_by_type": usage_by_type,
            "top_codes": [
                {
                    "code": p.code,
                    "type": p.type.value,
                    "value": p.value,
                    "usage_count": p.usage_count,
                    "is_active": p.is_active,
                }
                for p in top
            ],
            "recent_usage": recent[:RECENT_USAGE],
        }

    # ── Redemption ─────────────────────────────────────────

    def verify(
        self,
        code: str,
        amount: float,
        vehicle_class: VehicleClass | None = None,
        at: datetime | None = None,
        requester: Requester | None = None,
    ) -> PromotionCheck:
        """Check a code against an order without recording anything."""
        promotion = self.get(code)
        if promotion is None:
            return PromotionCheck(valid=False, code=code.strip().upper(), message=MSG_UNKNOWN)

        failed = self.validator.failed_check(promotion, requester, amount, vehicle_class, at)
        if failed:
            logger.info("Promotion %s rejected: %s", promotion.code, failed)
            return PromotionCheck(valid=False, code=promotion.code, message=MSG_NOT_APPLICABLE)

        return PromotionCheck(
            valid=True,
            code=promotion.code,
            type=promotion.type,
            value=promotion.value,
            discount=round(calculate_discount(promotion, amount), 2),
            description=promotion.description,
            valid_until=promotion.valid_until,
        )

    async def apply(
        self,
        code: str,
        amount: float,
        vehicle_class: VehicleClass | None = None,
        at: datetime | None = None,
        requester: Requester | None = None,
    ) -> PromotionCheck:
        """Verify, then record the redemption atomically."""
        check = self.verify(code, amount, vehicle_class, at, requester)
        if not check.valid:
            return check

        promotion = self.get(code)
        if not await self.recorder.record(promotion, requester):
            return PromotionCheck(valid=False, code=promotion.code, message=MSG_LIMIT_REACHED)

        check.final_amount = round(max(0.0, amount - check.discount), 2)
        return check
