"""
Stock and expiry reports built from product balances and the derived status
functions. Every report takes one `now` and uses it for the whole result.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F, Prefetch

from apps.products.models import Disposal, Product
from apps.stocks.aggregation import usage_stats
from apps.stocks.exceptions import NotFoundError, ValidationError
from apps.stocks.models import StockMovement
from apps.stocks.status import (
    DEFAULT_AVERAGE_USAGE,
    ExpiryStatus,
    StockStatus,
    days_since_expiry,
    days_until_expiry,
    expiry_status,
    stock_status,
    suggested_reorder_quantity,
)

logger = logging.getLogger(__name__)

ALERT_TYPES = {'stock', 'expiry', 'all'}


def product_snapshot(product: Product, now: datetime) -> Dict[str, Any]:
    """Plain dict of a product with its derived status labels."""
    return {
        'product_id': str(product.product_id),
        'sku': product.sku,
        'name': product.name,
        'unit': product.unit,
        'quantity': product.quantity,
        'reorder_level': product.reorder_level,
        'max_stock_level': product.max_stock_level,
        'price': float(product.price),
        'cost': float(product.cost),
        'expiry_date': product.expiry_date.isoformat() if product.expiry_date else None,
        'batch_number': product.batch_number,
        'stock_status': stock_status(product.quantity, product.reorder_level).value,
        'expiry_status': expiry_status(product.expiry_date, now).value,
        'days_until_expiry': days_until_expiry(product.expiry_date, now),
        'current_value': float(product.price * product.quantity),
        'is_disposed': product.is_disposed,
        'last_stock_update': product.last_stock_update.isoformat() if product.last_stock_update else None,
    }


def _active_products(warehouse_id):
    return Product.objects.filter(warehouse_id=warehouse_id, active=True)


def stock_alerts(warehouse_id, now: datetime, alert_type: str = 'all') -> Dict[str, Any]:
    """Group active, undisposed products by stock and expiry alert category."""
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(ALERT_TYPES))}")

    products = _active_products(warehouse_id).filter(is_disposed=False).order_by('quantity', 'expiry_date')

    stock_buckets = {
        StockStatus.OUT_OF_STOCK: [],
        StockStatus.LOW_STOCK: [],
        StockStatus.NEAR_REORDER: [],
    }
    expiry_buckets = {
        ExpiryStatus.EXPIRED: [],
        ExpiryStatus.EXPIRING_SOON: [],
    }

    total = 0
    for product in products:
        total += 1
        snapshot = product_snapshot(product, now)
        stock_key = StockStatus(snapshot['stock_status'])
        expiry_key = ExpiryStatus(snapshot['expiry_status'])
        if stock_key in stock_buckets:
            stock_buckets[stock_key].append(snapshot)
        if expiry_key in expiry_buckets:
            expiry_buckets[expiry_key].append(snapshot)

    stock_summary = {
        'out_of_stock': len(stock_buckets[StockStatus.OUT_OF_STOCK]),
        'low_stock': len(stock_buckets[StockStatus.LOW_STOCK]),
        'near_reorder': len(stock_buckets[StockStatus.NEAR_REORDER]),
    }
    stock_summary['total'] = sum(stock_summary.values())
    expiry_summary = {
        'expired': len(expiry_buckets[ExpiryStatus.EXPIRED]),
        'expiring_soon': len(expiry_buckets[ExpiryStatus.EXPIRING_SOON]),
    }
    expiry_summary['total'] = sum(expiry_summary.values())

    summary: Dict[str, Any] = {
        'total_products': total,
        'total_alerts': stock_summary['total'] + expiry_summary['total'],
        'generated_at': now.isoformat(),
    }
    result: Dict[str, Any] = {'summary': summary}

    if alert_type in ('stock', 'all'):
        summary['stock_alerts'] = stock_summary
        result['stock_alerts'] = {key.value: items for key, items in stock_buckets.items()}
    if alert_type in ('expiry', 'all'):
        summary['expiry_alerts'] = expiry_summary
        result['expiry_alerts'] = {key.value: items for key, items in expiry_buckets.items()}

    return result


def low_stock_report(warehouse_id, now: datetime) -> List[Dict[str, Any]]:
    """
    Products at or below their reorder level (out of stock first), with a
    suggested order quantity based on the usage in their movement history.
    """
    products = (
        _active_products(warehouse_id)
        .filter(is_disposed=False, quantity__lte=F('reorder_level'))
        .order_by('quantity', 'name')
        .prefetch_related(Prefetch(
            'stock_movements',
            queryset=StockMovement.objects.order_by('-created_at', '-sequence'),
        ))
    )

    report = []
    for product in products:
        stats = usage_stats(list(product.stock_movements.all()))
        average_usage = stats['average_monthly_usage'] or DEFAULT_AVERAGE_USAGE
        suggested = suggested_reorder_quantity(product.reorder_level, average_usage)

        if product.reorder_level > 0:
            stock_percentage = round(product.quantity / product.reorder_level * 100)
        else:
            stock_percentage = 0

        if product.quantity > 0:
            days_until_stock_out = math.floor(product.quantity / (average_usage / 30))
        else:
            days_until_stock_out = 0

        row = product_snapshot(product, now)
        row.update({
            'stock_percentage': stock_percentage,
            'average_usage': average_usage,
            'usage_trend': stats['trend'],
            'suggested_order_quantity': suggested,
            'estimated_cost': float(product.cost * suggested),
            'days_until_stock_out': days_until_stock_out,
        })
        report.append(row)

    return report


def expiring_report(warehouse_id, now: datetime, days: int = 90) -> List[Dict[str, Any]]:
    """Products expired or expiring within `days`, earliest expiry first."""
    if days < 0:
        raise ValidationError("days cannot be negative")

    try:
        horizon = now.date() + timedelta(days=days)
    except OverflowError:
        raise ValidationError("days is out of range")
    products = (
        _active_products(warehouse_id)
        .filter(expiry_date__isnull=False, expiry_date__lte=horizon)
        .order_by('expiry_date', 'name')
    )

    report = []
    for product in products:
        row = product_snapshot(product, now)
        row.update({
            'total_value': float(product.price * product.quantity),
            'is_expired': row['expiry_status'] == ExpiryStatus.EXPIRED.value,
        })
        report.append(row)
    return report


def expired_report(warehouse_id, now: datetime) -> List[Dict[str, Any]]:
    """Products past their expiry date with disposal details, most recently expired first."""
    products = (
        _active_products(warehouse_id)
        .filter(expiry_date__lt=now.date())
        .order_by('-expiry_date', 'name')
    )

    report = []
    for product in products:
        row = product_snapshot(product, now)
        row.update({
            'days_expired': days_since_expiry(product.expiry_date, now),
            'total_value': float(product.price * product.quantity),
            'total_cost': float(product.cost * product.quantity),
            'disposal_date': product.disposal_date.isoformat() if product.disposal_date else None,
            'disposal_method': product.disposal_method,
            'disposal_reason': product.disposal_reason,
        })
        report.append(row)
    return report


def dispose_products(
    warehouse_id,
    product_ids: Iterable,
    disposal_method: str,
    disposal_reason: str,
    now: datetime,
    notes: Optional[str] = None,
    disposed_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Flag products as disposed and record a Disposal row for each one.
    The stock ledger is not touched; unknown ids are skipped.
    """
    product_ids = list(product_ids or [])
    if not product_ids:
        raise ValidationError("product_ids must be a non-empty list")
    if not disposal_method or not disposal_reason:
        raise ValidationError("disposal_method and disposal_reason are required")

    disposed_by = disposed_by or 'system'
    try:
        with transaction.atomic():
            products = list(
                _active_products(warehouse_id)
                .select_for_update()
                .filter(product_id__in=product_ids)
            )
            for product in products:
                product.is_disposed = True
                product.disposal_date = now
                product.disposal_method = disposal_method
                product.disposal_reason = disposal_reason
                product.disposal_notes = notes or ''
                product.disposed_by = disposed_by
                product.save(update_fields=[
                    'is_disposed', 'disposal_date', 'disposal_method',
                    'disposal_reason', 'disposal_notes', 'disposed_by', 'updated_at',
                ])

            Disposal.objects.bulk_create([
                Disposal(
                    warehouse_id=warehouse_id,
                    product=product,
                    disposal_method=disposal_method,
                    disposal_reason=disposal_reason,
                    notes=notes or '',
                    quantity_on_hand=product.quantity,
                    disposed_by=disposed_by,
                    disposal_date=now,
                )
                for product in products
            ])
    except DjangoValidationError as e:
        raise ValidationError(f"Invalid product id: {e.messages[0]}")

    logger.info(f"Disposed {len(products)} products in warehouse {warehouse_id} ({disposal_method})")
    return {
        'disposed_count': len(products),
        'product_ids': [str(p.product_id) for p in products],
        'disposal_date': now.isoformat(),
    }


def update_reorder_levels(warehouse_id, updates: Iterable[Dict[str, Any]]) -> List[Product]:
    """Set reorder_level (and optionally max_stock_level) for several products at once."""
    updates = list(updates or [])
    if not updates:
        raise ValidationError("updates must be a non-empty list")

    updated = []
    with transaction.atomic():
        for update in updates:
            product_id = update.get('product_id')
            reorder_level = update.get('reorder_level')
            if product_id is None or reorder_level is None:
                raise ValidationError("Each update must have product_id and reorder_level")
            if isinstance(reorder_level, bool) or not isinstance(reorder_level, int) or reorder_level < 0:
                raise ValidationError("reorder_level must be a non-negative integer", product_id=product_id)

            try:
                product = _active_products(warehouse_id).select_for_update().get(pk=product_id)
            except (Product.DoesNotExist, DjangoValidationError, ValueError):
                raise NotFoundError("Product not found", product_id=product_id)

            product.reorder_level = reorder_level
            fields = ['reorder_level', 'updated_at']
            if update.get('max_stock_level') is not None:
                product.max_stock_level = update['max_stock_level']
                fields.append('max_stock_level')
            product.save(update_fields=fields)
            updated.append(product)

    logger.info(f"Updated reorder levels for {len(updated)} products in warehouse {warehouse_id}")
    return updated
