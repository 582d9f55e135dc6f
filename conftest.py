"""
Shared fixtures for the fulfillment tests.
The carrier is always a MagicMock, no test talks to Shiprocket.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from catalog.models import Product
from orders.models import Order, OrderItem, ShippingAddress
from shipping.credentials import load_carrier_config
from shipping.models import CarrierSettings
from shipping.shiprocket_utils import ShiprocketAPI


@pytest.fixture
def customer(django_user_model):
    return django_user_model.objects.create_user(
        username="asha",
        email="asha@example.com",
        password="customer-pass",
        first_name="Asha",
        last_name="Rao",
    )


@pytest.fixture
def seller(django_user_model):
    return django_user_model.objects.create_user(
        username="bookhouse",
        email="seller@example.com",
        password="seller-pass",
    )


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(
        username="ops",
        email="ops-desk@example.com",
        password="staff-pass",
        is_staff=True,
    )


@pytest.fixture
def address(customer):
    return ShippingAddress.objects.create(
        user=customer,
        full_name="Asha Rao",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
        phone="9876543210",
    )


@pytest.fixture
def products():
    """A book with full package data and a bookmark with none"""
    book = Product.objects.create(
        title="Malgudi Days",
        sku="BK-001",
        hsn="4901",
        price=45000,
        weight=400,
        length=Decimal("10"),
        width=Decimal("10"),
        height=Decimal("5"),
    )
    bookmark = Product.objects.create(title="Bookmark", price=5000, height=Decimal("8"))
    return book, bookmark


@pytest.fixture
def make_order(customer, seller, address, products):
    """Factory for orders with one line per product"""
    def _make(status=Order.STATUS_CONFIRMED, payment_method="prepaid", with_address=True, with_user=True):
        book, bookmark = products
        order = Order.objects.create(
            user=customer if with_user else None,
            seller=seller,
            address=address if with_address else None,
            payment_method=payment_method,
            status=status,
            total=150000,
            shipping_charges=5000,
            discount=1000,
        )
        OrderItem.objects.create(order=order, product=book, price=45000, quantity=2)
        OrderItem.objects.create(order=order, product=bookmark, price=5000, quantity=1)
        return order
    return _make


@pytest.fixture
def carrier_settings(db):
    return CarrierSettings.objects.create(
        tenant="default",
        email="ops@example.com",
        password="carrier-secret",
        default_courier_id="24",
        auto_ship_enabled=True,
        pickup_postcode="110001",
    )


@pytest.fixture
def carrier_config(carrier_settings):
    return load_carrier_config()


@pytest.fixture
def mock_client():
    """Carrier client that logs in and creates orders successfully"""
    client = MagicMock(spec=ShiprocketAPI)
    client.authenticate.return_value = "fresh-token"
    client.create_order.return_value = {"order_id": 9001, "shipment_id": 7001, "status": "NEW"}
    client.create_shipment.return_value = {
        "awb_code": "AWB123",
        "courier_name": "Delhivery",
        "expected_delivery_date": "2026-10-20",
    }
    client.list_couriers.return_value = [{"id": 24, "name": "Delhivery"}]
    client.list_orders.return_value = ([], False)
    return client
