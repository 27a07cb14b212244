from django.urls import path

from .views import DeliveryOptionsView

urlpatterns = [
    path("delivery-options/", DeliveryOptionsView.as_view(), name="delivery-options"),
]
