import uuid
from django.db import models
from django.core.validators import MinValueValidator


class MovementType(models.TextChoices):
    IN = 'in', 'Stock In'
    OUT = 'out', 'Stock Out'
    ADJUSTMENT = 'adjustment', 'Adjustment'


class ImmutableMovementError(Exception):
    """Raised when code tries to edit or delete a recorded movement."""


class StockMovement(models.Model):
    """
    StockMovement model representing one entry of the stock ledger.
    Each movement stores the balance snapshot it produced and is never
    updated or deleted once written.

    For 'in' and 'out' the quantity is the magnitude of the change; for
    'adjustment' it is the new absolute balance.
    """
    movement_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(
        'products.Product',
        on_delete=models.CASCADE,
        db_column='product_id',
        related_name='stock_movements'
    )
    sequence = models.PositiveIntegerField(help_text="Position of this movement in the product ledger")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Magnitude for in/out, new absolute total for adjustment"
    )
    reason = models.TextField(max_length=255)
    reference = models.CharField(max_length=100, null=True, blank=True, help_text="External document id")
    notes = models.TextField(null=True, blank=True)
    balance_before = models.PositiveIntegerField(help_text="Stock balance before this movement")
    balance_after = models.PositiveIntegerField(help_text="Stock balance after this movement")
    created_at = models.DateTimeField(help_text="When the movement was applied")
    created_by = models.CharField(max_length=100, default='system')

    class Meta:
        db_table = 'stock_movements'
        verbose_name = 'Stock Movement'
        verbose_name_plural = 'Stock Movements'
        ordering = ['-created_at', '-sequence']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='stock_mov_product_time_idx'),
            models.Index(fields=['movement_type'], name='stock_mov_type_idx'),
            models.Index(fields=['created_at'], name='stock_mov_created_at_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'sequence'],
                name='unique_product_movement_sequence'
            ),
        ]

    @property
    def delta(self) -> int:
        return self.balance_after - self.balance_before

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableMovementError("Stock movements are immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableMovementError("Stock movements cannot be deleted")

    def __str__(self):
        return f"Stock Movement: {self.product.name} {self.movement_type} {self.quantity} -> {self.balance_after}"
