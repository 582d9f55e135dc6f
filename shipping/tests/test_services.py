"""
Tests for the fulfillment service: single ship, auto-ship batch, couriers, reconcile.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone

from orders.models import Order
from shipping.errors import (
    AlreadyShipped,
    AuthenticationFailed,
    CarrierApiError,
    ConfigurationError,
    InvalidTransition,
    MissingAddress,
    MissingUser,
    OrderNotFound,
    ShipmentInProgress,
)
from shipping.models import CarrierSettings, SellerSettings
from shipping.credentials import load_carrier_config
from shipping.services import FulfillmentService, eligible_for_auto_ship
from shipping.shiprocket_utils import ShiprocketAPI

pytestmark = pytest.mark.django_db


@pytest.fixture
def service(carrier_config, mock_client):
    return FulfillmentService(carrier_config, client=mock_client)


class TestShip:

    def test_ship_without_courier(self, service, mock_client, make_order):
        order = make_order()

        result = service.ship(order.id)

        assert result.status == Order.STATUS_SHIPPED
        assert result.shiprocket_order_id == "9001"
        assert result.shiprocket_shipment_id == "7001"
        assert result.awb_code is None
        assert result.partial is False
        mock_client.authenticate.assert_called_once_with("ops@example.com", "carrier-secret")
        mock_client.create_shipment.assert_not_called()

        payload = mock_client.create_order.call_args[0][0]
        assert payload["order_id"] == f"ORD-{order.id}"
        assert payload["sub_total"] == 1500.0
        assert payload["weight"] == 1.3

    def test_ship_with_courier(self, service, mock_client, make_order):
        order = make_order()

        result = service.ship(order.id, courier_id="24")

        mock_client.create_shipment.assert_called_once_with(7001, "24")
        order.refresh_from_db()
        assert order.awb_code == "AWB123"
        assert order.courier_name == "Delhivery"
        assert order.estimated_delivery_date == "2026-10-20"
        assert result.to_dict()["success"] is True

    def test_token_is_recorded(self, service, make_order):
        service.ship(make_order().id)

        row = CarrierSettings.objects.get(tenant="default")
        assert row.token == "fresh-token"
        assert row.token_refreshed_at is not None

    def test_second_ship_makes_no_carrier_calls(self, service, mock_client, make_order):
        order = make_order()
        service.ship(order.id)
        mock_client.reset_mock()

        with pytest.raises(AlreadyShipped):
            service.ship(order.id)

        mock_client.authenticate.assert_not_called()
        mock_client.create_order.assert_not_called()

    def test_concurrent_ship_submits_once(self, service, mock_client, make_order):
        order = make_order()
        seen = []

        def create_order(payload):
            # A second caller arrives while the carrier call is in flight
            with pytest.raises(ShipmentInProgress):
                service.ship(order.id)
            seen.append(payload["order_id"])
            return {"order_id": 9001, "shipment_id": 7001}

        mock_client.create_order.side_effect = create_order

        service.ship(order.id)

        assert mock_client.create_order.call_count == 1
        assert seen == [f"ORD-{order.id}"]

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.ship(424242)

    def test_pending_order_is_rejected(self, service, mock_client, make_order):
        order = make_order(status=Order.STATUS_PENDING)
        with pytest.raises(InvalidTransition):
            service.ship(order.id)
        mock_client.authenticate.assert_not_called()

    def test_missing_address(self, service, mock_client, make_order):
        with pytest.raises(MissingAddress):
            service.ship(make_order(with_address=False).id)
        mock_client.authenticate.assert_not_called()

    def test_missing_user(self, service, make_order):
        with pytest.raises(MissingUser):
            service.ship(make_order(with_user=False).id)

    def test_auth_failure_leaves_order_unchanged(self, service, mock_client, make_order):
        order = make_order()
        mock_client.authenticate.side_effect = AuthenticationFailed("Invalid email and password combination")

        with pytest.raises(AuthenticationFailed):
            service.ship(order.id)

        order.refresh_from_db()
        assert order.status == Order.STATUS_CONFIRMED
        assert order.shiprocket_order_id is None
        assert order.shipment_claimed_at is None
        mock_client.create_order.assert_not_called()

    def test_create_order_failure_releases_claim(self, service, mock_client, make_order):
        order = make_order()
        mock_client.create_order.side_effect = CarrierApiError("Wrong pickup location", status_code=422)

        with pytest.raises(CarrierApiError):
            service.ship(order.id)

        order.refresh_from_db()
        assert order.status == Order.STATUS_CONFIRMED
        assert order.shipment_claimed_at is None

        # Retry after the fault is fixed
        mock_client.create_order.side_effect = None
        assert service.ship(order.id).status == Order.STATUS_SHIPPED

    def test_missing_carrier_order_id(self, service, mock_client, make_order):
        order = make_order()
        mock_client.create_order.return_value = {"status_code": 1, "message": "Order could not be created"}

        with pytest.raises(CarrierApiError):
            service.ship(order.id)

        order.refresh_from_db()
        assert order.shiprocket_order_id is None
        assert order.shipment_claimed_at is None

    def test_courier_assignment_failure_is_partial(self, service, mock_client, make_order):
        order = make_order()
        mock_client.create_shipment.side_effect = CarrierApiError("Courier not serviceable", code="AWB_NOT_ASSIGNED")

        result = service.ship(order.id, courier_id="24")

        assert result.partial is True
        assert result.warning["kind"] == "partial_success"
        assert result.warning["details"]["cause"]["code"] == "AWB_NOT_ASSIGNED"
        order.refresh_from_db()
        assert order.status == Order.STATUS_SHIPPED
        assert order.shiprocket_order_id == "9001"
        assert order.awb_code is None

    def test_local_write_failure_keeps_claim(self, service, mock_client, make_order):
        order = make_order()

        with patch("shipping.services.mark_shipped", side_effect=DatabaseError("disk full")):
            with pytest.raises(DatabaseError):
                service.ship(order.id)

        order.refresh_from_db()
        assert order.shipment_claimed_at is not None
        mock_client.reset_mock()
        with pytest.raises(ShipmentInProgress):
            service.ship(order.id)
        mock_client.create_order.assert_not_called()

    def test_seller_pickup_location_is_used(self, service, mock_client, make_order, seller):
        SellerSettings.objects.create(seller=seller, pickup_address={"city": "Pune"}, pickup_location="Seller-Pune")

        service.ship(make_order().id)

        assert mock_client.create_order.call_args[0][0]["pickup_location"] == "Seller-Pune"


class TestAutoShip:

    def test_only_eligible_orders(self, make_order):
        prepaid = make_order()
        make_order(payment_method="COD")
        make_order(payment_method="cod")
        make_order(status=Order.STATUS_PENDING)

        assert list(eligible_for_auto_ship().values_list("id", flat=True)) == [prepaid.id]

    def test_one_failure_does_not_stop_the_batch(self, service, mock_client, make_order):
        first, second, third = make_order(), make_order(), make_order()
        responses = {
            f"ORD-{first.id}": {"order_id": 1, "shipment_id": 11},
            f"ORD-{third.id}": {"order_id": 3, "shipment_id": 33},
        }

        def create_order(payload):
            if payload["order_id"] == f"ORD-{second.id}":
                raise CarrierApiError("Wrong pincode", status_code=422)
            return responses[payload["order_id"]]

        mock_client.create_order.side_effect = create_order

        batch = service.run_auto_ship()

        assert (batch.total, batch.succeeded, batch.failed, batch.skipped) == (3, 2, 1, 0)
        rows = {row["order_id"]: row for row in batch.results}
        assert rows[second.id]["success"] is False
        assert rows[second.id]["kind"] == "carrier_api_error"
        assert rows[first.id]["awb_code"] == "AWB123"
        mock_client.create_shipment.assert_any_call(11, "24")

        second.refresh_from_db()
        assert second.status == Order.STATUS_CONFIRMED

    def test_missing_address_does_not_stop_the_batch(self, service, make_order):
        first = make_order()
        second = make_order(with_address=False)
        third = make_order()
        carrier_ids = iter([{"order_id": 1, "shipment_id": 11}, {"order_id": 3, "shipment_id": 33}])
        service.client.create_order.side_effect = lambda payload: next(carrier_ids)

        batch = service.run_auto_ship()

        assert (batch.succeeded, batch.failed) == (2, 1)
        rows = {row["order_id"]: row for row in batch.results}
        assert rows[second.id]["kind"] == "missing_address"
        for order in (first, third):
            order.refresh_from_db()
            assert order.status == Order.STATUS_SHIPPED

    def test_cod_orders_are_never_submitted(self, service, mock_client, make_order):
        make_order(payment_method="COD")

        batch = service.run_auto_ship()

        assert batch.total == 0
        mock_client.create_order.assert_not_called()

    def test_unexpected_error_is_recorded(self, service, mock_client, make_order):
        make_order()
        mock_client.create_order.side_effect = RuntimeError("boom")

        batch = service.run_auto_ship()

        assert batch.failed == 1
        assert batch.results[0]["kind"] == "unexpected"

    def test_partial_counts_as_success(self, service, mock_client, make_order):
        make_order()
        mock_client.create_shipment.side_effect = CarrierApiError("No AWB", code="AWB_NOT_ASSIGNED")

        batch = service.run_auto_ship()

        assert batch.succeeded == 1
        assert batch.results[0]["partial"] is True

    def test_requires_default_courier(self, carrier_settings, mock_client, make_order):
        carrier_settings.default_courier_id = ""
        carrier_settings.save()
        make_order()

        with pytest.raises(ConfigurationError) as exc_info:
            FulfillmentService(load_carrier_config(), client=mock_client).run_auto_ship()

        assert exc_info.value.code == "DEFAULT_COURIER_MISSING"
        mock_client.authenticate.assert_not_called()


class TestCouriers:

    def test_list_only(self, service, mock_client):
        assert service.couriers() == {"couriers": [{"id": 24, "name": "Delhivery"}]}
        mock_client.check_serviceability.assert_not_called()

    def test_rates_for_order(self, service, mock_client, make_order):
        order = make_order(payment_method="COD")
        mock_client.check_serviceability.return_value = [
            {"courier_company_id": 24, "courier_name": "Delhivery", "rating": 4.2, "freight_charge": 70, "etd": "Oct 20"},
        ]

        data = service.couriers(order.id)

        kwargs = mock_client.check_serviceability.call_args[1]
        assert kwargs["pickup_postcode"] == "110001"
        assert kwargs["delivery_postcode"] == "560001"
        assert kwargs["weight"] == 1.3
        assert kwargs["cod"] == 1
        assert data["rates"][0]["courier_company_id"] == 24

    def test_seller_pincode_wins(self, service, mock_client, make_order, seller):
        SellerSettings.objects.create(seller=seller, pickup_address={"pincode": "400001"}, pickup_location="S")
        mock_client.check_serviceability.return_value = []

        data = service.couriers(make_order().id)

        assert data["pickup_postcode"] == "400001"


class TestReconcile:

    def test_adopts_orphaned_carrier_order(self, service, mock_client, make_order):
        order = make_order()
        Order.objects.filter(pk=order.pk).update(shipment_claimed_at=timezone.now() - timedelta(hours=1))
        mock_client.list_orders.return_value = ([
            {
                "id": 9100,
                "channel_order_id": f"ORD-{order.id}",
                "shipments": [{"id": 7100, "awb": "AWB77", "courier": "Ekart", "etd": "2026-10-25"}],
            },
            {"id": 5, "channel_order_id": "OTHER-1"},
        ], False)

        report = service.reconcile()

        assert report["adopted"] == [order.id]
        assert report["released"] == []
        order.refresh_from_db()
        assert order.status == Order.STATUS_SHIPPED
        assert order.shiprocket_order_id == "9100"
        assert order.awb_code == "AWB77"

    def test_releases_stale_claims(self, service, make_order):
        stale = make_order()
        Order.objects.filter(pk=stale.pk).update(shipment_claimed_at=timezone.now() - timedelta(hours=1))

        report = service.reconcile()

        assert report["released"] == [stale.id]
        stale.refresh_from_db()
        assert stale.shipment_claimed_at is None

    def test_walks_pages(self, service, mock_client):
        mock_client.list_orders.side_effect = [([], True), ([], False)]

        service.reconcile()

        assert mock_client.list_orders.call_count == 2

    def test_incomplete_scan_keeps_stale_claims(self, service, mock_client, make_order):
        stale = make_order()
        Order.objects.filter(pk=stale.pk).update(shipment_claimed_at=timezone.now() - timedelta(hours=1))
        mock_client.list_orders.return_value = ([], True)

        report = service.reconcile(max_pages=1)

        assert report["complete"] is False
        assert report["released"] == []
        assert mock_client.list_orders.call_count == 1
        stale.refresh_from_db()
        assert stale.shipment_claimed_at is not None


class TestAfterShipping:

    @pytest.fixture
    def shipped(self, make_order):
        order = make_order()
        Order.objects.filter(pk=order.pk).update(
            status=Order.STATUS_SHIPPED,
            shiprocket_order_id="9001",
            shiprocket_shipment_id="7001",
            awb_code="AWB123",
        )
        order.refresh_from_db()
        return order

    def test_cancel(self, service, mock_client, shipped):
        result = service.cancel(shipped.id)

        assert result["status"] == Order.STATUS_CANCELLED
        mock_client.cancel_orders.assert_called_once_with(["9001"])
        shipped.refresh_from_db()
        assert shipped.status == Order.STATUS_CANCELLED
        assert shipped.shipping_status == "cancelled"

    @pytest.mark.parametrize("status", [Order.STATUS_DELIVERED, Order.STATUS_CANCELLED])
    def test_final_orders_are_not_cancelled(self, service, mock_client, shipped, status):
        Order.objects.filter(pk=shipped.pk).update(status=status)

        with pytest.raises(InvalidTransition) as exc_info:
            service.cancel(shipped.id)

        assert status in exc_info.value.message
        mock_client.authenticate.assert_not_called()
        mock_client.cancel_orders.assert_not_called()

    def test_unshipped_order_has_nothing_to_cancel(self, service, mock_client, make_order):
        with pytest.raises(InvalidTransition) as exc_info:
            service.cancel(make_order().id)
        assert exc_info.value.code == "NO_SHIPMENT"
        mock_client.cancel_orders.assert_not_called()

    def test_carrier_refusal_keeps_order_shipped(self, service, mock_client, shipped):
        mock_client.cancel_orders.side_effect = CarrierApiError("Cannot cancel order after pickup")

        with pytest.raises(CarrierApiError):
            service.cancel(shipped.id)

        shipped.refresh_from_db()
        assert shipped.status == Order.STATUS_SHIPPED

    def test_track_keeps_latest_status(self, service, mock_client, shipped):
        mock_client.get_tracking_details.return_value = {"status": "IN TRANSIT", "awb": "AWB123"}

        data = service.track(shipped.id)

        assert data == {"order_id": shipped.id, "status": "IN TRANSIT", "awb": "AWB123"}
        shipped.refresh_from_db()
        assert shipped.shipping_status == "IN TRANSIT"

    def test_track_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.track(424242)

    def test_label(self, service, mock_client, shipped):
        mock_client.generate_label.return_value = "https://labels.test/7001.pdf"

        assert service.label(shipped.id)["label_url"] == "https://labels.test/7001.pdf"
        mock_client.generate_label.assert_called_once_with("7001")

    def test_label_needs_a_shipment(self, service, mock_client, shipped):
        Order.objects.filter(pk=shipped.pk).update(shiprocket_shipment_id=None)

        with pytest.raises(InvalidTransition) as exc_info:
            service.label(shipped.id)

        assert exc_info.value.code == "NO_SHIPMENT"
        mock_client.generate_label.assert_not_called()


def test_service_builds_default_client(carrier_config):
    service = FulfillmentService(carrier_config)
    assert service.tokens.client is service.client
    assert isinstance(service.client, ShiprocketAPI)
