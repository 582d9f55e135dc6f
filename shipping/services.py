# shipping/services.py
"""
Fulfillment orchestration: ship one order, auto-ship a batch, quote couriers,
cancel, track and label shipped orders, and reconcile carrier orders that
never made it into the local database.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from django.conf import settings

from catalog.models import Product
from orders.models import Order

from .credentials import CarrierConfig, TokenManager
from .errors import (
    AlreadyShipped,
    CarrierApiError,
    ConfigurationError,
    FulfillmentError,
    InvalidTransition,
    MissingAddress,
    MissingUser,
    OrderNotFound,
    PartialSuccess,
    ShipmentInProgress,
)
from .metrics import aggregate_package_metrics
from .models import SellerSettings
from .payload import build_order_payload, weight_in_kg
from .pickup import pickup_pincode
from .shiprocket_utils import ShiprocketAPI
from .state import (
    claim_for_shipment,
    ensure_cancellable,
    mark_cancelled,
    mark_shipped,
    release_claim,
    stale_claims,
)

logger = logging.getLogger(__name__)


@dataclass
class ShipmentResult:
    order_id: int
    status: str
    shiprocket_order_id: Optional[str] = None
    shiprocket_shipment_id: Optional[str] = None
    shipping_status: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    estimated_delivery_date: Optional[str] = None
    warning: Optional[dict] = None

    @property
    def partial(self):
        return self.warning is not None

    @classmethod
    def from_order(cls, order, warning=None):
        return cls(
            order_id=order.id,
            status=order.status,
            shiprocket_order_id=order.shiprocket_order_id,
            shiprocket_shipment_id=order.shiprocket_shipment_id,
            shipping_status=order.shipping_status,
            awb_code=order.awb_code,
            courier_name=order.courier_name,
            estimated_delivery_date=order.estimated_delivery_date,
            warning=warning.to_dict() if warning else None,
        )

    def to_dict(self):
        data = asdict(self)
        data["success"] = True
        data["partial"] = self.partial
        return data


@dataclass
class BatchResult:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[dict] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


def eligible_for_auto_ship():
    """Confirmed, never submitted, not cash on delivery."""
    return (
        Order.objects.filter(status=Order.STATUS_CONFIRMED, shiprocket_order_id__isnull=True)
        .exclude(payment_method__iexact=Order.PAYMENT_COD)
        .order_by("created_at", "id")
    )


def pending_shipment_orders(seller=None):
    orders = Order.objects.filter(status=Order.STATUS_CONFIRMED, shiprocket_order_id__isnull=True)
    if seller is not None:
        orders = orders.filter(seller=seller)
    return orders.select_related("address", "user").order_by("created_at", "id")


def shipped_orders(seller=None):
    orders = Order.objects.filter(shiprocket_order_id__isnull=False)
    if seller is not None:
        orders = orders.filter(seller=seller)
    return orders.select_related("address", "user").order_by("-shipped_at", "-id")


def order_summary(order):
    return {
        "id": order.id,
        "status": order.status,
        "payment_method": order.payment_method,
        "total": order.total,
        "date": order.created_at.isoformat(),
        "address_id": order.address_id,
        "user_id": order.user_id,
        "shiprocket_order_id": order.shiprocket_order_id,
        "shiprocket_shipment_id": order.shiprocket_shipment_id,
        "shipping_status": order.shipping_status,
        "awb_code": order.awb_code,
        "courier_name": order.courier_name,
        "estimated_delivery_date": order.estimated_delivery_date,
    }


class FulfillmentService:
    """Drives orders through the carrier using an injected carrier configuration."""

    def __init__(self, config: CarrierConfig, client: Optional[ShiprocketAPI] = None):
        self.config = config
        self.client = client or ShiprocketAPI()
        self.tokens = TokenManager(config, self.client)

    # ==================== SINGLE ORDER ====================

    def ship(self, order_id, courier_id=None) -> ShipmentResult:
        """
        Submit one confirmed order to the carrier and mark it shipped.

        Courier assignment runs only when a courier id is given; if it fails,
        the order still ships with its carrier order id and the result carries
        a PartialSuccess warning.
        """
        order = Order.objects.select_related("address", "user", "seller").filter(pk=order_id).first()
        if order is None:
            raise OrderNotFound(f"Order #{order_id} not found", details={"order_id": order_id})
        if order.shiprocket_order_id:
            raise AlreadyShipped(
                f"Order #{order.id} was already submitted to Shiprocket",
                details={"order_id": order.id, "shiprocket_order_id": order.shiprocket_order_id},
            )
        if order.status != Order.STATUS_CONFIRMED:
            raise InvalidTransition(
                f"Order #{order.id} cannot be shipped from status {order.status}",
                details={"order_id": order.id, "status": order.status},
            )
        if order.address is None:
            raise MissingAddress(f"Order #{order.id} has no shipping address", details={"order_id": order.id})
        if order.user is None:
            raise MissingUser(f"Order #{order.id} has no customer", details={"order_id": order.id})

        if not claim_for_shipment(order.id):
            raise ShipmentInProgress(
                f"Order #{order.id} is already being shipped",
                details={"order_id": order.id},
            )

        try:
            self.tokens.get_token()
            items = list(order.items.all())
            products = Product.objects.in_bulk({item.product_id for item in items if item.product_id})
            metrics = aggregate_package_metrics(items, products)
            payload = build_order_payload(
                order,
                items,
                order.address,
                order.user,
                metrics,
                products=products,
                pickup_location=self._pickup_location(order),
                channel_id=self.config.channel_id,
            )
            created = self.client.create_order(payload)
            carrier_order_id = created.get("order_id")
            if not carrier_order_id:
                raise CarrierApiError(
                    created.get("message") or "Shiprocket did not return an order id",
                    details={"response": created},
                )
        except Exception:
            # Nothing was submitted, so the order may be shipped again later
            release_claim(order.id)
            raise

        shipment_id = created.get("shipment_id")
        shipment, warning = None, None
        if courier_id:
            if shipment_id:
                try:
                    shipment = self.client.create_shipment(shipment_id, courier_id)
                except FulfillmentError as e:
                    warning = PartialSuccess(
                        f"Order #{order.id} created in Shiprocket but courier assignment failed: {e.message}",
                        details={"order_id": order.id, "courier_id": courier_id, "cause": e.to_dict()},
                    )
            else:
                warning = PartialSuccess(
                    f"Order #{order.id} created in Shiprocket without a shipment id",
                    details={"order_id": order.id, "courier_id": courier_id},
                )
            if warning:
                logger.warning(warning.message)

        try:
            order = mark_shipped(order.id, carrier_order_id, shipment_id, shipment)
        except Exception:
            # The claim stays so the order is not submitted twice
            logger.critical(
                f"Order #{order.id} exists in Shiprocket as {carrier_order_id} but the local update failed; "
                f"run reconcile_shipments",
                exc_info=True,
            )
            raise

        return ShipmentResult.from_order(order, warning)

    # ==================== BATCH ====================

    def run_auto_ship(self) -> BatchResult:
        """
        Ship every eligible order once, sequentially, with the default courier.

        Per-order failures are recorded and never stop the batch.
        """
        courier_id = self.config.default_courier_id
        if not courier_id:
            raise ConfigurationError(
                "Default courier is not configured",
                code="DEFAULT_COURIER_MISSING",
                remediation="Pick a default courier in shipping settings before running auto-ship.",
            )

        order_ids = list(eligible_for_auto_ship().values_list("id", flat=True))
        batch = BatchResult(total=len(order_ids))
        logger.info(f"Auto-ship started for {batch.total} orders")

        for order_id in order_ids:
            try:
                result = self.ship(order_id, courier_id=courier_id)
            except AlreadyShipped as e:
                batch.skipped += 1
                batch.results.append({"order_id": order_id, "success": False, "skipped": True, "error": e.message})
                continue
            except FulfillmentError as e:
                batch.failed += 1
                logger.warning(f"Auto-ship failed for order #{order_id}: {e.code} {e.message}")
                batch.results.append({
                    "order_id": order_id,
                    "success": False,
                    "kind": e.kind,
                    "code": e.code,
                    "error": e.message,
                })
                continue
            except Exception as e:
                batch.failed += 1
                logger.error(f"Auto-ship unexpected error for order #{order_id}: {str(e)}", exc_info=True)
                batch.results.append({
                    "order_id": order_id,
                    "success": False,
                    "kind": "unexpected",
                    "error": str(e),
                })
                continue

            batch.succeeded += 1
            batch.results.append({
                "order_id": order_id,
                "success": True,
                "partial": result.partial,
                "shiprocket_order_id": result.shiprocket_order_id,
                "shiprocket_shipment_id": result.shiprocket_shipment_id,
                "awb_code": result.awb_code,
                "courier_name": result.courier_name,
                "warning": result.warning,
            })

        logger.info(
            f"Auto-ship finished: {batch.succeeded} shipped, {batch.failed} failed, {batch.skipped} skipped"
        )
        return batch

    # ==================== COURIERS ====================

    def couriers(self, order_id=None):
        """Courier list, plus serviceability rates when an order is given"""
        self.tokens.get_token()
        data = {"couriers": self.client.list_couriers()}
        if order_id is None:
            return data

        order = Order.objects.select_related("address", "seller").filter(pk=order_id).first()
        if order is None:
            raise OrderNotFound(f"Order #{order_id} not found", details={"order_id": order_id})
        if order.address is None:
            raise MissingAddress(f"Order #{order.id} has no shipping address", details={"order_id": order.id})

        pickup_postcode = (
            pickup_pincode(order.seller_id)
            or self.config.pickup_postcode
            or settings.SHIPROCKET_PICKUP_PINCODE
        )
        if not pickup_postcode:
            raise ConfigurationError("Pickup postcode is not configured", code="PICKUP_POSTCODE_MISSING")

        metrics = aggregate_package_metrics(order.items.all())
        rates = self.client.check_serviceability(
            pickup_postcode=pickup_postcode,
            delivery_postcode=order.address.pincode,
            weight=float(weight_in_kg(metrics.total_weight_grams)),
            length=float(metrics.max_length),
            breadth=float(metrics.max_width),
            height=float(metrics.max_height),
            cod=1 if order.is_cod else 0,
        )
        data["rates"] = [
            {
                "courier_company_id": rate.get("courier_company_id"),
                "courier_name": rate.get("courier_name"),
                "rating": rate.get("rating"),
                "freight_charge": rate.get("freight_charge"),
                "estimated_delivery_days": rate.get("estimated_delivery_days"),
                "etd": rate.get("etd"),
            }
            for rate in rates
        ]
        data["pickup_postcode"] = pickup_postcode
        return data

    # ==================== RECONCILIATION ====================

    def reconcile(self, max_pages=50):
        """
        Adopt carrier orders whose local order never recorded the carrier id,
        then release stale shipment claims that have no carrier counterpart.
        """
        self.tokens.get_token()
        prefix = settings.SHIPROCKET_ORDER_PREFIX
        adopted, matched, errors = [], set(), []

        page, complete = 1, False
        while page <= max_pages:
            remote_orders, has_more = self.client.list_orders(page=page)
            for remote in remote_orders:
                channel_order_id = str(remote.get("channel_order_id") or "")
                local_id = channel_order_id[len(prefix):] if channel_order_id.startswith(prefix) else ""
                if not local_id.isdigit():
                    continue
                local = Order.objects.filter(pk=int(local_id), shiprocket_order_id__isnull=True).first()
                if local is None:
                    continue
                matched.add(local.id)

                shipments = remote.get("shipments") or []
                first = shipments[0] if shipments else {}
                shipment = None
                if first.get("awb"):
                    shipment = {
                        "awb_code": first.get("awb"),
                        "courier_name": first.get("courier"),
                        "expected_delivery_date": first.get("etd"),
                    }
                try:
                    mark_shipped(local.id, remote.get("id"), first.get("id"), shipment)
                except FulfillmentError as e:
                    logger.warning(f"Reconcile could not adopt order #{local.id}: {e.message}")
                    errors.append({"order_id": local.id, "error": e.message})
                    continue
                adopted.append(local.id)
            if not has_more:
                complete = True
                break
            page += 1

        released = []
        if not complete:
            # An unscanned page may still hold the carrier order of a claimed one
            logger.warning(
                f"Reconcile adopted {len(adopted)} orders but stopped after {max_pages} pages, stale claims kept"
            )
            return {"adopted": adopted, "released": released, "errors": errors, "complete": False}

        for order in stale_claims(settings.SHIPROCKET_CLAIM_TTL):
            if order.id in matched:
                continue
            release_claim(order.id)
            released.append(order.id)

        logger.info(f"Reconcile adopted {len(adopted)} orders and released {len(released)} stale claims")
        return {"adopted": adopted, "released": released, "errors": errors, "complete": True}

    # ==================== AFTER SHIPPING ====================

    def cancel(self, order_id):
        """Cancel a shipped order at the carrier, then locally. Delivered or cancelled orders are refused."""
        order = self._shipped_order(order_id)
        ensure_cancellable(order)
        self.tokens.get_token()
        self.client.cancel_orders([order.shiprocket_order_id])
        order = mark_cancelled(order.id)
        return {
            "order_id": order.id,
            "status": order.status,
            "shiprocket_order_id": order.shiprocket_order_id,
            "message": "Shipment cancelled successfully",
        }

    def track(self, order_id):
        """Live tracking of a shipped order; the latest carrier status is kept on the order"""
        order = self._shipped_order(order_id)
        self.tokens.get_token()
        tracking = self.client.get_tracking_details(
            awb_code=order.awb_code,
            shiprocket_order_id=order.shiprocket_order_id,
        )
        if tracking.get("status") and tracking["status"] != order.shipping_status:
            Order.objects.filter(pk=order.id).update(shipping_status=tracking["status"])
        return {"order_id": order.id, **tracking}

    def label(self, order_id):
        order = self._shipped_order(order_id)
        if not order.shiprocket_shipment_id:
            raise InvalidTransition(
                f"Order #{order.id} has no Shiprocket shipment",
                code="NO_SHIPMENT",
                details={"order_id": order.id},
            )
        self.tokens.get_token()
        label_url = self.client.generate_label(order.shiprocket_shipment_id)
        return {"order_id": order.id, "label_url": label_url}

    def _shipped_order(self, order_id):
        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise OrderNotFound(f"Order #{order_id} not found", details={"order_id": order_id})
        if not order.shiprocket_order_id:
            raise InvalidTransition(
                f"No shipment found for order #{order.id}",
                code="NO_SHIPMENT",
                details={"order_id": order.id},
            )
        return order

    def _pickup_location(self, order):
        if order.seller_id:
            location = (
                SellerSettings.objects.filter(seller_id=order.seller_id)
                .values_list("pickup_location", flat=True)
                .first()
            )
            if location:
                return location
        return settings.SHIPROCKET_PICKUP_LOCATION
