import hashlib
from typing import Optional, Union
from django.http import JsonResponse
from rest_framework import status
from apps.warehouses.models import Warehouse


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def authenticate_warehouse(request, warehouse_id: str) -> Union[Warehouse, JsonResponse]:
    """
    Authenticate a warehouse from the X-API-Key header and check it owns warehouse_id.
    - Accepts the raw API key or its SHA-256 hash
    Returns:
        Warehouse object if authentication succeeds, else a JsonResponse (401 or 400)
    """
    api_key = request.headers.get('X-API-Key')
    if not api_key:
        return JsonResponse(
            {'error': 'X-API-Key header required'},
            status=status.HTTP_401_UNAUTHORIZED
        )

    candidate_hashes = {api_key, hash_api_key(api_key)}

    warehouse: Optional[Warehouse] = Warehouse.objects.filter(api_key_hash__in=list(candidate_hashes)).first()
    if warehouse is None:
        return JsonResponse(
            {'error': 'Invalid API key'},
            status=status.HTTP_401_UNAUTHORIZED
        )

    if str(warehouse.warehouse_id) != str(warehouse_id):
        return JsonResponse(
            {'error': 'Warehouse ID mismatch'},
            status=status.HTTP_400_BAD_REQUEST
        )

    return warehouse
