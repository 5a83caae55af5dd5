"""
URL patterns for the stocks app.
"""
from django.urls import path
from apps.stocks import views

app_name = 'stocks'

urlpatterns = [
    # Ledger
    path('warehouses/<uuid:warehouse_id>/products/<str:product_id>/movements',
         views.ProductMovementsAPIView.as_view(), name='product_movements'),
    path('warehouses/<uuid:warehouse_id>/products/<str:product_id>/usage',
         views.ProductUsageAPIView.as_view(), name='product_usage'),
    path('warehouses/<uuid:warehouse_id>/stock/movement-reasons',
         views.MovementReasonsAPIView.as_view(), name='movement_reasons'),
    path('warehouses/<uuid:warehouse_id>/stock/bulk_movements',
         views.BulkMovementAPIView.as_view(), name='bulk_movements'),

    # Reports
    path('warehouses/<uuid:warehouse_id>/stock/alerts', views.StockAlertsAPIView.as_view(), name='stock_alerts'),
    path('warehouses/<uuid:warehouse_id>/stock/reorder-levels', views.ReorderLevelsAPIView.as_view(), name='reorder_levels'),
    path('warehouses/<uuid:warehouse_id>/stock/low-stock', views.LowStockReportAPIView.as_view(), name='low_stock'),
    path('warehouses/<uuid:warehouse_id>/stock/expiring', views.ExpiringReportAPIView.as_view(), name='expiring'),
    path('warehouses/<uuid:warehouse_id>/stock/expired', views.ExpiredReportAPIView.as_view(), name='expired'),
    path('warehouses/<uuid:warehouse_id>/stock/dispose', views.DisposeAPIView.as_view(), name='dispose'),
]
