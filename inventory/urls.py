from django.urls import path
from .views import ProductStockView, StockMovementListCreateView

urlpatterns = [
    path('products/<uuid:product_id>/stock/', ProductStockView.as_view(), name='product-stock'),
    path('movements/', StockMovementListCreateView.as_view(), name='stock-movements'),
]
