import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction

from apps.products.models import Product
from apps.stocks.exceptions import ValidationError
from apps.stocks.ledger import INITIAL_STOCK_REASON, apply_movement

logger = logging.getLogger(__name__)


def create_product(
    warehouse,
    sku: str,
    name: str,
    unit: str = 'unit',
    price: Decimal = Decimal('0.00'),
    cost: Decimal = Decimal('0.00'),
    reorder_level: int = 0,
    expiry_date=None,
    batch_number: Optional[str] = None,
    initial_quantity: int = 0,
    actor: str = 'system',
) -> Product:
    """
    Create a product at zero stock. A non-zero opening count is posted as an
    'in' movement so the balance still replays from the ledger.
    """
    if initial_quantity < 0:
        raise ValidationError("initial_quantity cannot be negative", quantity=initial_quantity)
    if reorder_level < 0:
        raise ValidationError("reorder_level cannot be negative")

    with transaction.atomic():
        product = Product.objects.create(
            warehouse=warehouse,
            sku=sku,
            name=name,
            unit=unit,
            price=price,
            cost=cost,
            reorder_level=reorder_level,
            expiry_date=expiry_date,
            batch_number=batch_number,
            quantity=0,
        )
        if initial_quantity:
            apply_movement(
                product.product_id,
                'in',
                initial_quantity,
                INITIAL_STOCK_REASON,
                actor=actor,
            )
            product.refresh_from_db()

    logger.info(f"Created product {product.sku} in warehouse {warehouse.warehouse_id} with {product.quantity} units")
    return product
