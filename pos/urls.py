from django.urls import path
from .views import FinalizeSaleView, PosCartCreateView, PosCartDiscountView, PosCartItemsView

urlpatterns = [
    path('carts/', PosCartCreateView.as_view(), name='pos-cart-create'),
    path('carts/<uuid:cart_id>/items/', PosCartItemsView.as_view(), name='pos-cart-items'),
    path('carts/<uuid:cart_id>/discount/', PosCartDiscountView.as_view(), name='pos-cart-discount'),
    path('carts/<uuid:cart_id>/finalize/', FinalizeSaleView.as_view(), name='pos-cart-finalize'),
]
