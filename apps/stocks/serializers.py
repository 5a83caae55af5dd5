from rest_framework import serializers

from apps.stocks.ledger import DATE_RANGES
from apps.stocks.models import MovementType, StockMovement


class StockMovementSerializer(serializers.ModelSerializer):
    """Read serializer for ledger entries"""

    product_id = serializers.UUIDField(source='product.product_id', read_only=True)
    type = serializers.CharField(source='movement_type', read_only=True)
    type_display = serializers.CharField(source='get_movement_type_display', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'movement_id',
            'product_id',
            'sequence',
            'type',
            'type_display',
            'quantity',
            'reason',
            'reference',
            'notes',
            'balance_before',
            'balance_after',
            'created_at',
            'created_by',
        ]
        read_only_fields = fields


class MovementRequestSerializer(serializers.Serializer):
    """Incoming movement; quantity is the new total for 'adjustment'"""

    type = serializers.ChoiceField(choices=MovementType.choices)
    quantity = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(max_length=255, trim_whitespace=True)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    created_by = serializers.CharField(max_length=100, required=False, allow_blank=True, default='system')


class BulkMovementLineSerializer(MovementRequestSerializer):
    product_id = serializers.UUIDField()


class MovementFilterSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=['all'] + list(MovementType.values), required=False)
    date_range = serializers.ChoiceField(choices=list(DATE_RANGES), required=False, default='all')
    q = serializers.CharField(required=False, allow_blank=True)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=1000)


class ExpiringReportFilterSerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=0, max_value=3650)


class MovementReasonsFilterSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=list(MovementType.values), required=False)


class ReorderLevelUpdateSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    reorder_level = serializers.IntegerField(min_value=0)
    max_stock_level = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class ReorderLevelBatchSerializer(serializers.Serializer):
    updates = ReorderLevelUpdateSerializer(many=True, allow_empty=False)


class DisposalRequestSerializer(serializers.Serializer):
    product_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    disposal_method = serializers.CharField(max_length=100)
    disposal_reason = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    disposed_by = serializers.CharField(max_length=100, required=False, allow_blank=True, default='system')
