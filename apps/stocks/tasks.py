"""
Celery tasks for the stocks app.
"""
from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def scan_stock_alerts():
    """
    Compute the stock and expiry alert summary for every warehouse and log it.
    """
    from apps.warehouses.models import Warehouse
    from apps.stocks.reports import stock_alerts
    from django.utils import timezone

    try:
        now = timezone.now()
        results = {}
        for warehouse in Warehouse.objects.all():
            summary = stock_alerts(warehouse.warehouse_id, now)['summary']
            results[str(warehouse.warehouse_id)] = summary
            if summary['total_alerts']:
                logger.warning(
                    f"Warehouse {warehouse.name}: {summary['stock_alerts']['total']} stock alerts, "
                    f"{summary['expiry_alerts']['total']} expiry alerts"
                )

        logger.info(f"Scanned stock alerts for {len(results)} warehouses")
        return results
    except Exception as e:
        logger.error(f"Stock alert scan failed: {str(e)}")
        raise


@shared_task
def verify_ledger_balances():
    """
    Replay each active product's movement log and report products whose stored
    quantity differs from the replayed balance. Nothing is corrected here.
    """
    from apps.products.models import Product
    from apps.stocks.ledger import replay_balance
    from apps.stocks.models import StockMovement
    from django.db.models import Prefetch

    try:
        products = Product.objects.filter(active=True).prefetch_related(Prefetch(
            'stock_movements',
            queryset=StockMovement.objects.order_by('sequence'),
        ))

        checked = 0
        mismatches = []
        for product in products.iterator(chunk_size=500):
            checked += 1
            replayed = replay_balance(product.stock_movements.all())
            if replayed != product.quantity:
                mismatches.append({
                    'product_id': str(product.product_id),
                    'sku': product.sku,
                    'quantity': product.quantity,
                    'replayed': replayed,
                })
                logger.warning(
                    f"Ledger mismatch for product {product.sku}: stored {product.quantity}, replayed {replayed}"
                )

        logger.info(f"Verified {checked} product balances, {len(mismatches)} mismatches")
        return {'checked': checked, 'mismatches': mismatches}
    except Exception as e:
        logger.error(f"Ledger verification failed: {str(e)}")
        raise
