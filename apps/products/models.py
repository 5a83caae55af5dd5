import uuid
from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal


class Product(models.Model):
    """
    Product model representing a drug or stock item held in a warehouse.
    The quantity field is the running balance of the stock ledger and is only
    written by apps.stocks.ledger.
    """
    product_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    warehouse = models.ForeignKey(
        'warehouses.Warehouse',
        on_delete=models.CASCADE,
        db_column='warehouse_id',
        related_name='products'
    )
    sku = models.TextField(max_length=100, help_text="Stock Keeping Unit / drug code")
    name = models.TextField(max_length=255, help_text="Product name")
    unit = models.CharField(max_length=50, default='unit', help_text="Display unit (box, strip, bottle)")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Retail price per unit"
    )
    cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Purchase cost per unit"
    )
    quantity = models.PositiveIntegerField(default=0, help_text="Current stock balance")
    reorder_level = models.PositiveIntegerField(default=0, help_text="Low stock alert threshold")
    max_stock_level = models.PositiveIntegerField(null=True, blank=True, help_text="Optional stock ceiling")
    expiry_date = models.DateField(null=True, blank=True, help_text="Expiry date of the stock on hand")
    batch_number = models.CharField(max_length=100, null=True, blank=True)
    active = models.BooleanField(default=True, help_text="Whether product is active")
    last_stock_update = models.DateTimeField(null=True, blank=True, help_text="Last ledger movement timestamp")

    # Disposal of expired stock is a flag, never a ledger deletion
    is_disposed = models.BooleanField(default=False)
    disposal_date = models.DateTimeField(null=True, blank=True)
    disposal_method = models.CharField(max_length=100, null=True, blank=True)
    disposal_reason = models.TextField(null=True, blank=True)
    disposal_notes = models.TextField(null=True, blank=True)
    disposed_by = models.CharField(max_length=100, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, help_text="Product creation timestamp")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'products'
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        indexes = [
            models.Index(fields=['warehouse', 'sku'], name='products_wh_sku_idx'),
            models.Index(fields=['warehouse', 'active'], name='products_wh_active_idx'),
            models.Index(fields=['warehouse', 'quantity'], name='products_wh_quantity_idx'),
            models.Index(fields=['expiry_date'], name='products_expiry_date_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['warehouse', 'sku'],
                name='unique_warehouse_sku'
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.sku})"


class Disposal(models.Model):
    """
    Audit record written each time a product is flagged as disposed.
    """
    disposal_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    warehouse = models.ForeignKey(
        'warehouses.Warehouse',
        on_delete=models.CASCADE,
        db_column='warehouse_id',
        related_name='disposals'
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        db_column='product_id',
        related_name='disposals'
    )
    disposal_method = models.CharField(max_length=100)
    disposal_reason = models.TextField()
    notes = models.TextField(blank=True, default='')
    quantity_on_hand = models.PositiveIntegerField(default=0, help_text="Stock balance at disposal time")
    disposed_by = models.CharField(max_length=100, default='system')
    disposal_date = models.DateTimeField()

    class Meta:
        db_table = 'disposals'
        verbose_name = 'Disposal'
        verbose_name_plural = 'Disposals'
        indexes = [
            models.Index(fields=['warehouse', 'disposal_date'], name='disposals_wh_date_idx'),
        ]

    def __str__(self):
        return f"Disposal: {self.product.name} ({self.disposal_method})"
