import json
import logging
from typing import Any, Dict, List

from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.auth import authenticate_warehouse
from apps.stocks import ledger, reports
from apps.stocks.aggregation import usage_stats
from apps.stocks.exceptions import (
    InsufficientStockError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from apps.stocks.serializers import (
    BulkMovementLineSerializer,
    DisposalRequestSerializer,
    ExpiringReportFilterSerializer,
    MovementFilterSerializer,
    MovementReasonsFilterSerializer,
    MovementRequestSerializer,
    ReorderLevelBatchSerializer,
    StockMovementSerializer,
)
from apps.stocks.status import DEFAULT_AVERAGE_USAGE, suggested_reorder_quantity

logger = logging.getLogger(__name__)

LEDGER_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

WAREHOUSE_PARAMS = [
    OpenApiParameter("warehouse_id", OpenApiTypes.STR, OpenApiParameter.PATH, required=True),
    OpenApiParameter("X-API-Key", OpenApiTypes.STR, OpenApiParameter.HEADER, required=True),
]
PRODUCT_PARAMS = WAREHOUSE_PARAMS + [
    OpenApiParameter("product_id", OpenApiTypes.STR, OpenApiParameter.PATH, required=True),
]


def ledger_error_response(error: LedgerError) -> Response:
    return Response(error.to_dict(), status=LEDGER_ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST))


def invalid_request(errors) -> Response:
    return Response({'error': 'invalid request', 'details': errors}, status=status.HTTP_400_BAD_REQUEST)


class ProductMovementsAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["stocks"],
        summary="List stock movements of a product (newest first)",
        parameters=PRODUCT_PARAMS + [
            OpenApiParameter("type", OpenApiTypes.STR, OpenApiParameter.QUERY, description="in|out|adjustment|all"),
            OpenApiParameter("date_range", OpenApiTypes.STR, OpenApiParameter.QUERY, description="7days|30days|90days|all"),
            OpenApiParameter("q", OpenApiTypes.STR, OpenApiParameter.QUERY, description="Search reason, reference or user"),
            OpenApiParameter("limit", OpenApiTypes.INT, OpenApiParameter.QUERY),
        ],
        responses={200: StockMovementSerializer(many=True), 404: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str, product_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        filters = MovementFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return invalid_request(filters.errors)

        try:
            movements = ledger.list_movements(
                product_id,
                movement_type=filters.validated_data.get('type'),
                date_range=filters.validated_data.get('date_range'),
                search_text=filters.validated_data.get('q'),
                warehouse_id=warehouse.warehouse_id,
                now=timezone.now(),
                limit=filters.validated_data.get('limit'),
            )
        except LedgerError as e:
            return ledger_error_response(e)

        return Response({
            'product_id': str(product_id),
            'count': len(movements),
            'movements': StockMovementSerializer(movements, many=True).data,
        })

    @extend_schema(
        tags=["stocks"],
        summary="Apply a stock movement (in / out / adjustment)",
        description=(
            "'in' adds and 'out' removes the given quantity; 'out' is rejected with 409 when it exceeds "
            "the balance. 'adjustment' sets the balance to the given quantity (physical count)."
        ),
        parameters=PRODUCT_PARAMS,
        request=MovementRequestSerializer,
        responses={
            201: OpenApiResponse(
                OpenApiTypes.OBJECT,
                examples=[OpenApiExample(
                    'Applied',
                    value={'balance': 45, 'movement': {'type': 'out', 'quantity': 55, 'balance_after': 45}},
                )],
            ),
            400: OpenApiResponse(OpenApiTypes.OBJECT, description="Validation error"),
            404: OpenApiResponse(OpenApiTypes.OBJECT, description="Product not found"),
            409: OpenApiResponse(OpenApiTypes.OBJECT, description="Insufficient stock"),
        },
    )
    def post(self, request, warehouse_id: str, product_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        payload = MovementRequestSerializer(data=request.data)
        if not payload.is_valid():
            return invalid_request(payload.errors)
        data = payload.validated_data

        try:
            result = ledger.apply_movement(
                product_id,
                data['type'],
                data['quantity'],
                data['reason'],
                reference=data.get('reference'),
                notes=data.get('notes'),
                actor=data.get('created_by') or 'system',
                warehouse_id=warehouse.warehouse_id,
            )
        except LedgerError as e:
            return ledger_error_response(e)
        except Exception as e:
            logger.error(f"Stock movement failed for product {product_id}: {str(e)}", exc_info=True)
            return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({
            'balance': result.balance,
            'movement': StockMovementSerializer(result.movement).data,
        }, status=status.HTTP_201_CREATED)


class ProductUsageAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["stocks"],
        summary="Usage statistics, status and reorder suggestion for a product",
        parameters=PRODUCT_PARAMS,
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str, product_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        now = timezone.now()
        try:
            product = ledger.get_product(product_id, warehouse_id=warehouse.warehouse_id)
            movements = ledger.list_movements(product.product_id, warehouse_id=warehouse.warehouse_id, now=now)
        except LedgerError as e:
            return ledger_error_response(e)

        stats = usage_stats(movements)
        average_usage = stats['average_monthly_usage'] or DEFAULT_AVERAGE_USAGE
        return Response({
            'product': reports.product_snapshot(product, now),
            'usage': stats,
            'suggested_order_quantity': suggested_reorder_quantity(product.reorder_level, average_usage),
        })


class MovementReasonsAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["stocks"],
        summary="Suggested movement reasons per movement type",
        parameters=WAREHOUSE_PARAMS + [
            OpenApiParameter("type", OpenApiTypes.STR, OpenApiParameter.QUERY, description="in|out|adjustment"),
        ],
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT), 400: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        filters = MovementReasonsFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return invalid_request(filters.errors)

        movement_type = filters.validated_data.get('type')
        reasons = {
            str(kind.value): list(choices)
            for kind, choices in ledger.MOVEMENT_REASONS.items()
            if movement_type is None or kind == movement_type
        }
        return Response({'reasons': reasons})


class BulkMovementAPIView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser]

    @extend_schema(
        tags=["stocks"],
        summary="Apply stock movements from an NDJSON file",
        description="Each line is one movement with product_id. Lines are applied in file order; "
                    "rejected lines are reported and do not stop the batch. "
                    "A file where no line could be applied is answered with 400 and status failed.",
        parameters=WAREHOUSE_PARAMS,
        request={
            "multipart/form-data": {
                "type": "object",
                "properties": {
                    "file": {
                        "type": "string",
                        "format": "binary",
                        "description": "NDJSON file with stock movements"
                    }
                }
            }
        },
        responses={
            200: OpenApiResponse(OpenApiTypes.OBJECT, description="Success or partial_success"),
            400: OpenApiResponse(OpenApiTypes.OBJECT, description="Bad request or every line rejected"),
        },
    )
    def post(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        if 'file' not in request.FILES:
            return Response({"error": "file required"}, status=status.HTTP_400_BAD_REQUEST)

        uploaded_file = request.FILES['file']
        if not uploaded_file.name.endswith('.ndjson'):
            return Response({"error": "file must be .ndjson"}, status=status.HTTP_400_BAD_REQUEST)

        lines: List[Dict[str, Any]] = []
        rejected: List[Dict[str, Any]] = []
        try:
            for line_num, raw in enumerate(uploaded_file, 1):
                raw = raw.decode('utf-8').strip()
                if not raw:
                    continue
                try:
                    lines.append({'line': line_num, 'data': json.loads(raw)})
                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON on line {line_num}: {e}")
                    rejected.append({'line': line_num, 'error': f"invalid JSON: {e}"})
        except UnicodeDecodeError as e:
            return Response({"error": f"file parsing failed: {str(e)}"}, status=status.HTTP_400_BAD_REQUEST)

        if not lines:
            return Response({"error": "no valid movements found", "rejected": rejected},
                            status=status.HTTP_400_BAD_REQUEST)

        applied: List[Dict[str, Any]] = []
        for entry in lines:
            line_num = entry['line']
            payload = BulkMovementLineSerializer(data=entry['data'])
            if not payload.is_valid():
                rejected.append({'line': line_num, 'error': 'invalid movement', 'details': payload.errors})
                continue
            data = payload.validated_data

            try:
                result = ledger.apply_movement(
                    data['product_id'],
                    data['type'],
                    data['quantity'],
                    data['reason'],
                    reference=data.get('reference'),
                    notes=data.get('notes'),
                    actor=data.get('created_by') or 'system',
                    warehouse_id=warehouse.warehouse_id,
                )
            except LedgerError as e:
                rejected.append({'line': line_num, **e.to_dict()})
                continue

            applied.append({
                'line': line_num,
                'product_id': str(data['product_id']),
                'movement_id': str(result.movement.movement_id),
                'balance': result.balance,
            })

        logger.info(f"Bulk movements for warehouse {warehouse.warehouse_id}: "
                    f"{len(applied)} applied, {len(rejected)} rejected")

        if not applied:
            return Response({
                "status": "failed",
                "applied": applied,
                "rejected": rejected,
                "total_applied": 0,
            }, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            "status": "partial_success" if rejected else "success",
            "applied": applied,
            "rejected": rejected,
            "total_applied": len(applied),
        }, status=status.HTTP_200_OK)


class StockAlertsAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["reports"],
        summary="Stock and expiry alerts for a warehouse",
        parameters=WAREHOUSE_PARAMS + [
            OpenApiParameter("type", OpenApiTypes.STR, OpenApiParameter.QUERY, description="stock|expiry|all"),
        ],
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        alert_type = (request.query_params.get('type') or 'all').lower()
        try:
            data = reports.stock_alerts(warehouse.warehouse_id, timezone.now(), alert_type=alert_type)
        except LedgerError as e:
            return ledger_error_response(e)
        return Response(data)


class ReorderLevelsAPIView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(
        tags=["reports"],
        summary="Update reorder levels for several products",
        parameters=WAREHOUSE_PARAMS,
        request=ReorderLevelBatchSerializer,
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def post(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        payload = ReorderLevelBatchSerializer(data=request.data)
        if not payload.is_valid():
            return invalid_request(payload.errors)

        try:
            products = reports.update_reorder_levels(warehouse.warehouse_id, payload.validated_data['updates'])
        except LedgerError as e:
            return ledger_error_response(e)

        now = timezone.now()
        return Response({
            'message': f"Updated reorder levels for {len(products)} products",
            'products': [reports.product_snapshot(p, now) for p in products],
        })


class LowStockReportAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["reports"],
        summary="Products at or below their reorder level with order suggestions",
        parameters=WAREHOUSE_PARAMS,
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        rows = reports.low_stock_report(warehouse.warehouse_id, timezone.now())
        return Response({'count': len(rows), 'products': rows})


class ExpiringReportAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["reports"],
        summary="Products expired or expiring within a window",
        parameters=WAREHOUSE_PARAMS + [
            OpenApiParameter("days", OpenApiTypes.INT, OpenApiParameter.QUERY, description="Window in days, 0 to 3650 (default 90)"),
        ],
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT), 400: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        filters = ExpiringReportFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return invalid_request(filters.errors)
        days = filters.validated_data.get('days', settings.STOCK_EXPIRING_REPORT_DAYS)

        try:
            rows = reports.expiring_report(warehouse.warehouse_id, timezone.now(), days=days)
        except LedgerError as e:
            return ledger_error_response(e)
        return Response({'days': days, 'count': len(rows), 'products': rows})


class ExpiredReportAPIView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["reports"],
        summary="Expired products with disposal details",
        parameters=WAREHOUSE_PARAMS,
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def get(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        rows = reports.expired_report(warehouse.warehouse_id, timezone.now())
        return Response({'count': len(rows), 'products': rows})


class DisposeAPIView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    @extend_schema(
        tags=["reports"],
        summary="Mark expired products as disposed",
        parameters=WAREHOUSE_PARAMS,
        request=DisposalRequestSerializer,
        responses={200: OpenApiResponse(OpenApiTypes.OBJECT)},
    )
    def post(self, request, warehouse_id: str):
        warehouse = authenticate_warehouse(request, warehouse_id)
        if isinstance(warehouse, JsonResponse):
            return warehouse

        payload = DisposalRequestSerializer(data=request.data)
        if not payload.is_valid():
            return invalid_request(payload.errors)
        data = payload.validated_data

        try:
            result = reports.dispose_products(
                warehouse.warehouse_id,
                data['product_ids'],
                data['disposal_method'],
                data['disposal_reason'],
                now=timezone.now(),
                notes=data.get('notes'),
                disposed_by=data.get('disposed_by'),
            )
        except LedgerError as e:
            return ledger_error_response(e)

        result['message'] = f"{result['disposed_count']} products marked as disposed"
        return Response(result)
