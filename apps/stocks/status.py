"""
Derived stock and expiry status.

Every function here is pure: the same inputs always give the same label, and
the caller passes `now` explicitly so one report never mixes two clocks.
"""
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Union

from django.db import models
from django.utils import timezone

NEAR_REORDER_FACTOR = Decimal('1.1')
EXPIRING_SOON_DAYS = 30

# Reorder suggestion heuristic; not an inventory-theory optimum
DEFAULT_AVERAGE_USAGE = 10
LEAD_TIME_DAYS = 7
SAFETY_STOCK_RATIO = Decimal('0.2')
MINIMUM_ORDER_QUANTITY = 50

SECONDS_PER_DAY = 24 * 60 * 60


class StockStatus(models.TextChoices):
    OUT_OF_STOCK = 'out_of_stock', 'Out of Stock'
    LOW_STOCK = 'low_stock', 'Low Stock'
    NEAR_REORDER = 'near_reorder', 'Near Reorder'
    IN_STOCK = 'in_stock', 'In Stock'


class ExpiryStatus(models.TextChoices):
    EXPIRED = 'expired', 'Expired'
    EXPIRING_SOON = 'expiring_soon', 'Expiring Soon'
    VALID = 'valid', 'Valid'
    NO_EXPIRY = 'no_expiry', 'No Expiry'


def stock_status(quantity: int, reorder_level: int) -> StockStatus:
    """
    Classify a balance against its reorder level.

    Boundaries fall on the lower class: quantity == reorder_level is low stock,
    quantity == reorder_level * 1.1 is near reorder.
    """
    if quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= reorder_level:
        return StockStatus.LOW_STOCK
    if Decimal(quantity) <= Decimal(reorder_level) * NEAR_REORDER_FACTOR:
        return StockStatus.NEAR_REORDER
    return StockStatus.IN_STOCK


def _aware(now: datetime) -> datetime:
    # Naive clocks are read in the project timezone
    if timezone.is_naive(now):
        return timezone.make_aware(now)
    return now


def _as_datetime(value: Union[date, datetime], tzinfo) -> datetime:
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return timezone.make_aware(value, tzinfo)
        return value
    return datetime.combine(value, time.min, tzinfo=tzinfo)


def days_until_expiry(expiry_date: Optional[Union[date, datetime]], now: datetime) -> Optional[int]:
    """
    Calendar-day ceiling of (expiry_date - now). A plain date means midnight in
    now's timezone, so stock expiring today reports 0 all day.
    """
    if expiry_date is None:
        return None
    now = _aware(now)
    expiry = _as_datetime(expiry_date, now.tzinfo)
    return math.ceil((expiry - now).total_seconds() / SECONDS_PER_DAY)


def days_since_expiry(expiry_date: Union[date, datetime], now: datetime) -> int:
    now = _aware(now)
    expiry = _as_datetime(expiry_date, now.tzinfo)
    return math.ceil((now - expiry).total_seconds() / SECONDS_PER_DAY)


def expiry_status(expiry_date: Optional[Union[date, datetime]], now: datetime) -> ExpiryStatus:
    days = days_until_expiry(expiry_date, now)
    if days is None:
        return ExpiryStatus.NO_EXPIRY
    if days < 0:
        return ExpiryStatus.EXPIRED
    if days <= EXPIRING_SOON_DAYS:
        return ExpiryStatus.EXPIRING_SOON
    return ExpiryStatus.VALID


def suggested_reorder_quantity(reorder_level: int, average_usage: Union[int, float] = DEFAULT_AVERAGE_USAGE,
                               lead_time_days: int = LEAD_TIME_DAYS) -> int:
    """
    Suggested order size for a low-stock product:
    max(2 x reorder level, lead-time stock + safety stock, minimum order).
    """
    safety_stock = math.ceil(Decimal(reorder_level) * SAFETY_STOCK_RATIO)
    lead_time_stock = math.ceil(Decimal(str(average_usage)) / 30 * lead_time_days)
    return max(reorder_level * 2, lead_time_stock + safety_stock, MINIMUM_ORDER_QUANTITY)
