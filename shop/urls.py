from django.urls import path
from .views import ShopListCreateView, ShopDetailView, PickupPointListCreateView
urlpatterns = [
    path('', ShopListCreateView.as_view(), name='shop-list-create'),
    path('<uuid:pk>/', ShopDetailView.as_view(), name='shop-detail'),
    path('<uuid:shop_id>/pickup-points/', PickupPointListCreateView.as_view(), name='pickup-point-list-create'),
]
