
from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView



urlpatterns = [
    path("admin/", admin.site.urls),
    path('auth/token/', TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name="token_refresh"),
    path('shops/', include('shop.urls')),
    path('inventory/', include('inventory.urls')),
    path('coupons/', include('coupon.urls')),
    path('checkout/', include('courier.urls')),
    path('orders/', include('order.urls')),
    path('pos/', include('pos.urls')),
]
