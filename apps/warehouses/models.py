import uuid
from django.db import models


class Warehouse(models.Model):
    """
    Warehouse model representing a pharmacy store or stock location.
    Each warehouse owns its own products and authenticates with its own API key.
    """
    warehouse_id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.TextField(max_length=255, help_text="Warehouse name")
    api_key_hash = models.TextField(max_length=255, help_text="Hashed API key for authentication")
    created_at = models.DateTimeField(auto_now_add=True, help_text="Warehouse creation timestamp")

    class Meta:
        db_table = 'warehouses'
        verbose_name = 'Warehouse'
        verbose_name_plural = 'Warehouses'
        indexes = [
            models.Index(fields=['created_at'], name='warehouses_created_at_idx'),
            models.Index(fields=['name'], name='warehouses_name_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.warehouse_id})"
