"""
Stock ledger: the only writer of Product.quantity.

Every change is an appended StockMovement carrying the balance it produced.
apply_movement locks the product row for the read-modify-write so that two
concurrent movements on one product serialize instead of losing an update.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, NamedTuple, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Max, Q
from django.utils import timezone

from apps.products.models import Product
from apps.stocks.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from apps.stocks.models import MovementType, StockMovement

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = {choice.value for choice in MovementType}

INITIAL_STOCK_REASON = 'Initial Stock'

# Suggested reasons per movement type; free text is still accepted.
MOVEMENT_REASONS = {
    MovementType.IN: [
        'New Purchase',
        'Return from Customer',
        'Transfer from Another Location',
        'Correction - Count Error',
        'Donation Received',
        INITIAL_STOCK_REASON,
        'Other',
    ],
    MovementType.OUT: [
        'Sale',
        'Expired - Disposed',
        'Damaged - Disposed',
        'Transfer to Another Location',
        'Correction - Count Error',
        'Theft/Loss',
        'Other',
    ],
    MovementType.ADJUSTMENT: [
        'Physical Count Correction',
        'System Error Correction',
        'Audit Adjustment',
        'Reconciliation',
        'Other',
    ],
}

DATE_RANGES = {
    '7days': timedelta(days=7),
    '30days': timedelta(days=30),
    '90days': timedelta(days=90),
    'all': None,
}


class MovementResult(NamedTuple):
    balance: int
    movement: StockMovement


def next_balance(current: int, movement_type: str, quantity: int) -> int:
    """Balance after applying one movement; 'adjustment' overwrites, it is not a delta."""
    if movement_type == MovementType.IN:
        return current + quantity
    if movement_type == MovementType.OUT:
        return current - quantity
    if movement_type == MovementType.ADJUSTMENT:
        return quantity
    raise ValidationError(f"Unknown movement type: {movement_type}")


def replay_balance(movements: Iterable[StockMovement]) -> int:
    """Fold movements (oldest first) from a zero balance."""
    balance = 0
    for movement in movements:
        balance = next_balance(balance, movement.movement_type, movement.quantity)
    return balance


def _validate_movement(product_id, movement_type, quantity, reason):
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(sorted(MOVEMENT_TYPES))}",
            product_id=product_id,
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", product_id=product_id)
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer", product_id=product_id, quantity=quantity)
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required", product_id=product_id, quantity=quantity)
    return reason.strip()


def _product_queryset(warehouse_id=None):
    qs = Product.objects.filter(active=True)
    if warehouse_id is not None:
        qs = qs.filter(warehouse_id=warehouse_id)
    return qs


def get_product(product_id, warehouse_id=None, for_update: bool = False) -> Product:
    qs = _product_queryset(warehouse_id)
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=product_id)
    except (Product.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError("Product not found", product_id=product_id)


def apply_movement(
    product_id,
    movement_type: str,
    quantity: int,
    reason: str,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    actor: str = 'system',
    warehouse_id=None,
    now: Optional[datetime] = None,
) -> MovementResult:
    """
    Apply one stock movement and persist it together with the new balance.

    Raises ValidationError, NotFoundError, InsufficientStockError or
    PersistenceError. Nothing is retried here.
    """
    reason = _validate_movement(product_id, movement_type, quantity, reason)
    applied_at = now or timezone.now()

    try:
        with transaction.atomic():
            product = get_product(product_id, warehouse_id=warehouse_id, for_update=True)
            current = product.quantity

            if movement_type == MovementType.OUT and quantity > current:
                logger.warning(
                    f"Rejected out movement for product {product.product_id}: "
                    f"requested {quantity}, available {current}"
                )
                raise InsufficientStockError(product.product_id, quantity, current)

            new_balance = next_balance(current, movement_type, quantity)
            last_sequence = product.stock_movements.aggregate(last=Max('sequence'))['last'] or 0

            movement = StockMovement.objects.create(
                product=product,
                sequence=last_sequence + 1,
                movement_type=movement_type,
                quantity=quantity,
                reason=reason,
                reference=reference or None,
                notes=notes or None,
                balance_before=current,
                balance_after=new_balance,
                created_at=applied_at,
                created_by=actor or 'system',
            )

            product.quantity = new_balance
            product.last_stock_update = applied_at
            product.save(update_fields=['quantity', 'last_stock_update', 'updated_at'])
    except DatabaseError as e:
        logger.error(f"Stock movement failed for product {product_id}: {str(e)}", exc_info=True)
        raise PersistenceError(
            "Stock movement could not be saved",
            product_id=product_id,
            quantity=quantity,
        ) from e

    logger.info(
        f"Applied {movement_type} {quantity} to product {product.product_id}: "
        f"{current} -> {new_balance} by {movement.created_by}"
    )
    return MovementResult(new_balance, movement)


def list_movements(
    product_id,
    movement_type: Optional[str] = None,
    date_range: Optional[str] = None,
    search_text: Optional[str] = None,
    warehouse_id=None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[StockMovement]:
    """Movements of one product, newest first, filtered by type, relative date range and text."""
    product = get_product(product_id, warehouse_id=warehouse_id)
    qs = StockMovement.objects.filter(product=product)

    if movement_type and movement_type != 'all':
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type: {movement_type}", product_id=product_id)
        qs = qs.filter(movement_type=movement_type)

    if date_range:
        if date_range not in DATE_RANGES:
            raise ValidationError(
                f"date_range must be one of: {', '.join(DATE_RANGES)}",
                product_id=product_id,
            )
        window = DATE_RANGES[date_range]
        if window is not None:
            qs = qs.filter(created_at__gte=(now or timezone.now()) - window)

    if search_text:
        qs = qs.filter(
            Q(reason__icontains=search_text)
            | Q(reference__icontains=search_text)
            | Q(created_by__icontains=search_text)
        )

    qs = qs.order_by('-created_at', '-sequence')
    if limit is not None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer", product_id=product_id)
        qs = qs[:limit]
    return list(qs)
