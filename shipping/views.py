import json
import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.http import require_GET, require_POST, require_http_methods

from orders.models import Order

from .credentials import TokenManager, load_carrier_config, public_settings, save_credentials
from .errors import ConfigurationError, Forbidden, FulfillmentError, InvalidRequest, OrderNotFound
from .pickup import register_pickup_address
from .services import FulfillmentService, order_summary, pending_shipment_orders, shipped_orders
from .shiprocket_utils import ShiprocketAPI

logger = logging.getLogger(__name__)

# ==================== HELPERS ====================

def seller_api(view):
    """Authenticated JSON endpoint; domain errors become structured 4xx/5xx responses"""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"success": False, "error": "Authentication required"}, status=401)
        try:
            return view(request, *args, **kwargs)
        except FulfillmentError as e:
            return JsonResponse(e.to_dict(), status=e.http_status)
        except Exception as e:
            logger.error(f"Shipping API error in {view.__name__}: {str(e)}", exc_info=True)
            return JsonResponse(
                {"success": False, "kind": "unexpected", "error": "Unexpected shipping error, please retry later"},
                status=500,
            )
    return wrapper


def staff_only(view):
    """Carrier account and batch operations belong to staff"""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_staff:
            raise Forbidden("Only staff can manage Shiprocket settings and batch shipping")
        return view(request, *args, **kwargs)
    return wrapper


def _authorize_order(user, order_id, allow_customer=False):
    """Staff, the order's seller and, where allowed, its customer may act on an order"""
    if user.is_staff:
        return
    owners = Order.objects.filter(pk=order_id).values("seller_id", "user_id").first()
    if owners is None:
        raise OrderNotFound(f"Order #{order_id} not found", details={"order_id": order_id})
    if owners["seller_id"] == user.id or (allow_customer and owners["user_id"] == user.id):
        return
    raise Forbidden(
        "You do not have permission to manage shipments for this order",
        details={"order_id": order_id},
    )


def _own_orders(user):
    return None if user.is_staff else user


def _json_body(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except ValueError:
        raise InvalidRequest("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


def _service():
    return FulfillmentService(load_carrier_config())

# ==================== ORDERS ====================

@require_POST
@seller_api
def ship_order(request, order_id):
    """Ship one order, optionally with an explicit courier"""
    data = _json_body(request)
    _authorize_order(request.user, order_id)
    courier_id = data.get("courier_id") or None
    result = _service().ship(order_id, courier_id=courier_id)
    return JsonResponse(result.to_dict())


@never_cache
@require_GET
@seller_api
def pending_orders(request):
    orders = [order_summary(order) for order in pending_shipment_orders(_own_orders(request.user))]
    return JsonResponse({"success": True, "orders": orders, "count": len(orders)})


@never_cache
@require_GET
@seller_api
def list_shipped_orders(request):
    orders = [order_summary(order) for order in shipped_orders(_own_orders(request.user))]
    return JsonResponse({"success": True, "orders": orders, "count": len(orders)})


@require_POST
@seller_api
@staff_only
def auto_ship(request):
    batch = _service().run_auto_ship()
    return JsonResponse({"success": True, **batch.to_dict()})

# ==================== AFTER SHIPPING ====================

@require_POST
@seller_api
def cancel_shipment(request, order_id):
    _authorize_order(request.user, order_id)
    result = _service().cancel(order_id)
    return JsonResponse({"success": True, **result})


@never_cache
@require_GET
@seller_api
def tracking(request, order_id):
    """Live tracking; the order's customer may follow it too"""
    _authorize_order(request.user, order_id, allow_customer=True)
    data = _service().track(order_id)
    return JsonResponse({"success": True, "tracking_data": data})


@require_POST
@seller_api
def shipping_label(request, order_id):
    _authorize_order(request.user, order_id)
    result = _service().label(order_id)
    return JsonResponse({"success": True, **result})

# ==================== PICKUP ADDRESS ====================

@require_POST
@seller_api
def pickup_address(request):
    """Register the seller's pickup address, once"""
    data = _json_body(request)
    address = data.get("pickupAddress") or data.get("pickup_address")
    if not address:
        raise InvalidRequest("Pickup address is required")

    client = ShiprocketAPI()
    try:
        token_manager = TokenManager(load_carrier_config(), client)
    except ConfigurationError:
        token_manager = None

    outcome = register_pickup_address(request.user, address, token_manager=token_manager, client=client)
    return JsonResponse(outcome.to_dict())

# ==================== SETTINGS & TOKEN ====================

@never_cache
@require_http_methods(["GET", "POST"])
@seller_api
@staff_only
def shiprocket_settings(request):
    """Fetch or save carrier credentials; the password is never returned"""
    if request.method == "GET":
        return JsonResponse({"success": True, "settings": public_settings()})

    data = _json_body(request)
    saved = save_credentials(
        email=data.get("email"),
        password=data.get("password"),
        default_courier_id=data.get("defaultCourier", data.get("default_courier_id")),
        auto_ship_enabled=data.get("autoShipOrders", data.get("auto_ship_enabled")),
        pickup_postcode=data.get("pickup_postcode"),
    )
    return JsonResponse({"success": True, "message": "Shiprocket settings updated successfully", "settings": saved})


@require_POST
@seller_api
@staff_only
def generate_token(request):
    TokenManager(load_carrier_config()).get_token()
    return JsonResponse({
        "success": True,
        "token_refreshed_at": public_settings()["token_refreshed_at"],
    })

# ==================== COURIERS ====================

@never_cache
@require_GET
@seller_api
@staff_only
def couriers(request):
    """Courier list, with rates when order_id is given"""
    order_id = request.GET.get("order_id")
    if order_id is not None and not order_id.isdigit():
        raise InvalidRequest("order_id must be a number")
    data = _service().couriers(int(order_id) if order_id else None)
    return JsonResponse({"success": True, **data})
