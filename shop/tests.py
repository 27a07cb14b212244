import uuid

from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import NotFoundError, ValidationError
from shop.models import PickupPoint, Shop
from shop.tenancy import resolve_owned_shop, resolve_shop

User = get_user_model()


class ShopModelTests(TestCase):
    def test_shop_str_returns_name(self):
        self.assertEqual(str(Shop.objects.create(name="Downtown Store")), "Downtown Store")

    def test_free_shipping_threshold(self):
        shop = Shop.objects.create(name="Threshold Shop", free_shipping_min_total=15000)
        self.assertFalse(shop.qualifies_for_free_shipping(14999))
        self.assertTrue(shop.qualifies_for_free_shipping(15000))

    def test_no_threshold_means_no_free_shipping(self):
        shop = Shop.objects.create(name="Paid Shipping Shop")
        self.assertFalse(shop.qualifies_for_free_shipping(10**9))

    def test_pickup_point_address_line(self):
        shop = Shop.objects.create(name="Pickup Shop")
        point = PickupPoint.objects.create(
            shop=shop,
            name="Mall",
            street="Av. Brasil",
            number="500",
            neighborhood="Centro",
            city="Campinas",
            state="SP",
        )
        self.assertEqual(point.address_line, "Av. Brasil, 500 - Centro - Campinas - SP")


class ResolveShopTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.shop = Shop.objects.create(name="Tenant Shop")

    def test_header_selects_shop(self):
        request = self.factory.get("/", HTTP_X_STORE_ID=str(self.shop.id))
        self.assertEqual(resolve_shop(request), self.shop)

    def test_missing_or_malformed_header(self):
        with self.assertRaises(ValidationError):
            resolve_shop(self.factory.get("/"))
        with self.assertRaises(ValidationError):
            resolve_shop(self.factory.get("/", HTTP_X_STORE_ID="shop-1"))

    def test_unknown_shop(self):
        with self.assertRaises(NotFoundError):
            resolve_shop(self.factory.get("/", HTTP_X_STORE_ID=str(uuid.uuid4())))

    def test_owned_shop_requires_owner(self):
        owner = User.objects.create_user(username="tenant-owner", password="Pass123!")
        other = User.objects.create_user(username="tenant-other", password="Pass123!")
        self.shop.owner = owner
        self.shop.save()

        request = self.factory.get("/", HTTP_X_STORE_ID=str(self.shop.id))
        request.user = owner
        self.assertEqual(resolve_owned_shop(request), self.shop)

        request.user = other
        with self.assertRaises(NotFoundError):
            resolve_owned_shop(request)


class ShopApiTests(APITestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="shop-owner", password="Pass123!")
        self.stranger = User.objects.create_user(username="shop-stranger", password="Pass123!")
        self.shop = Shop.objects.create(name="Owner Shop", owner=self.owner)

    def test_created_shop_belongs_to_caller(self):
        self.client.force_authenticate(user=self.owner)
        response = self.client.post(
            "/shops/", {"name": "Second Shop", "free_shipping_min_total": 20000}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Shop.objects.get(id=response.data["id"]).owner, self.owner)

    def test_owner_adds_pickup_point(self):
        self.client.force_authenticate(user=self.owner)
        response = self.client.post(
            f"/shops/{self.shop.id}/pickup-points/",
            {"name": "Front desk", "street": "Rua A", "city": "Recife", "state": "PE"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(self.shop.pickup_points.filter(name="Front desk").exists())

    def test_other_users_cannot_manage_shop(self):
        self.client.force_authenticate(user=self.stranger)
        detail = self.client.get(f"/shops/{self.shop.id}/")
        self.assertEqual(detail.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            f"/shops/{self.shop.id}/pickup-points/",
            {"name": "Sneaky", "street": "Rua B", "city": "Recife", "state": "PE"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(PickupPoint.objects.exists())
