# shipping/state.py
"""
Fulfillment state machine.

pending -> confirmed -> shipped -> cancelled. A failed shipment leaves the order in its
prior state. The carrier order id is the idempotency guard: once set, the
order is never submitted to the carrier again.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from orders.models import Order

from .errors import AlreadyShipped, InvalidTransition, OrderNotFound

logger = logging.getLogger(__name__)

SHIPPING_STATUS_PROCESSING = "processing"
SHIPPING_STATUS_CANCELLED = "cancelled"

# Orders past these states cannot be cancelled at the carrier
FINAL_STATUSES = (Order.STATUS_DELIVERED, Order.STATUS_CANCELLED)


def confirm_order(order_id):
    with transaction.atomic():
        order = _locked(order_id)
        if order.status != Order.STATUS_PENDING:
            raise InvalidTransition(
                f"Order #{order.id} cannot be confirmed from status {order.status}",
                details={"order_id": order.id, "status": order.status},
            )
        order.status = Order.STATUS_CONFIRMED
        order.save(update_fields=["status", "updated_at"])
    logger.info(f"Order #{order.id} confirmed")
    return order


def claim_for_shipment(order_id):
    """
    Take exclusive ownership of an unshipped order.

    A single conditional UPDATE, so of two concurrent callers exactly one
    sees a row count of 1.
    """
    claimed = Order.objects.filter(
        pk=order_id,
        shiprocket_order_id__isnull=True,
        shipment_claimed_at__isnull=True,
    ).update(shipment_claimed_at=timezone.now())
    return claimed == 1


def release_claim(order_id):
    Order.objects.filter(pk=order_id, shiprocket_order_id__isnull=True).update(shipment_claimed_at=None)


def stale_claims(ttl_seconds):
    cutoff = timezone.now() - timedelta(seconds=ttl_seconds)
    return Order.objects.filter(
        shiprocket_order_id__isnull=True,
        shipment_claimed_at__isnull=False,
        shipment_claimed_at__lt=cutoff,
    )


def mark_shipped(order_id, carrier_order_id, carrier_shipment_id=None, shipment=None):
    """
    Record a carrier order and move the order to shipped, atomically.

    Args:
        carrier_order_id: order id returned by the carrier, must be truthy
        carrier_shipment_id: shipment id returned by the carrier
        shipment: AWB details when courier assignment succeeded, else None
    """
    if not carrier_order_id:
        raise InvalidTransition(
            f"Order #{order_id} cannot ship without a carrier order id",
            details={"order_id": order_id},
        )

    with transaction.atomic():
        order = _locked(order_id)
        if order.shiprocket_order_id:
            raise AlreadyShipped(
                f"Order #{order.id} already has Shiprocket order {order.shiprocket_order_id}",
                details={"order_id": order.id, "shiprocket_order_id": order.shiprocket_order_id},
            )
        if order.status != Order.STATUS_CONFIRMED:
            raise InvalidTransition(
                f"Order #{order.id} cannot be shipped from status {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        order.shiprocket_order_id = str(carrier_order_id)
        order.shiprocket_shipment_id = str(carrier_shipment_id) if carrier_shipment_id else None
        order.status = Order.STATUS_SHIPPED
        order.shipping_status = SHIPPING_STATUS_PROCESSING
        if shipment:
            order.awb_code = shipment.get("awb_code")
            order.courier_name = shipment.get("courier_name")
            order.estimated_delivery_date = shipment.get("expected_delivery_date")
        order.shipment_claimed_at = None
        order.shipped_at = timezone.now()
        order.save()

    logger.info(f"Order #{order.id} shipped as Shiprocket order {order.shiprocket_order_id}")
    return order


def ensure_cancellable(order):
    if not order.shiprocket_order_id:
        raise InvalidTransition(
            f"No shipment found for order #{order.id}",
            code="NO_SHIPMENT",
            details={"order_id": order.id},
        )
    if order.status in FINAL_STATUSES:
        raise InvalidTransition(
            f"Order cannot be cancelled: current status is {order.status}",
            details={"order_id": order.id, "status": order.status},
        )


def mark_cancelled(order_id):
    """Cancel a shipped order locally once the carrier accepted the cancellation"""
    with transaction.atomic():
        order = _locked(order_id)
        ensure_cancellable(order)
        order.status = Order.STATUS_CANCELLED
        order.shipping_status = SHIPPING_STATUS_CANCELLED
        order.save(update_fields=["status", "shipping_status", "updated_at"])
    logger.info(f"Order #{order.id} cancelled, Shiprocket order {order.shiprocket_order_id}")
    return order


def _locked(order_id):
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise OrderNotFound(f"Order #{order_id} not found", details={"order_id": order_id})
