from django.shortcuts import get_object_or_404
from rest_framework import permissions
from rest_framework.generics import ListCreateAPIView, RetrieveUpdateDestroyAPIView

from .models import Shop, PickupPoint
from .serializers import ShopSerializer, PickupPointSerializer


class ShopListCreateView(ListCreateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ShopSerializer

    def get_queryset(self):
        return Shop.objects.filter(owner=self.request.user).order_by("created_at")


class ShopDetailView(RetrieveUpdateDestroyAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ShopSerializer

    def get_queryset(self):
        return Shop.objects.filter(owner=self.request.user)


class PickupPointListCreateView(ListCreateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = PickupPointSerializer

    def get_queryset(self):
        return PickupPoint.objects.filter(shop_id=self.kwargs["shop_id"], shop__owner=self.request.user)

    def perform_create(self, serializer):
        shop = get_object_or_404(Shop, id=self.kwargs["shop_id"], owner=self.request.user)
        serializer.save(shop=shop)
