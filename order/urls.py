from django.urls import path
from .views import AddToCartView, CancelOrderView, CreateOrderView, OrderDetailView

urlpatterns = [
    path('', CreateOrderView.as_view(), name='order-create'),
    path('cart/items/', AddToCartView.as_view(), name='cart-add-item'),
    path('<uuid:order_id>/', OrderDetailView.as_view(), name='order-detail'),
    path('<uuid:order_id>/cancel/', CancelOrderView.as_view(), name='order-cancel'),
]
