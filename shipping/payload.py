# shipping/payload.py
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

CENTS = Decimal("0.01")
GRAMS_PER_KG = Decimal("1000")


def to_major_units(amount):
    """Minor currency units (paise) to major units (rupees), exact to two decimals."""
    factor = Decimal(settings.MINOR_UNITS_PER_MAJOR)
    return (Decimal(int(amount or 0)) / factor).quantize(CENTS, rounding=ROUND_HALF_UP)


def weight_in_kg(total_weight_grams):
    minimum = Decimal(str(settings.SHIPROCKET_MIN_WEIGHT_KG))
    weight = (Decimal(total_weight_grams) / GRAMS_PER_KG).quantize(Decimal("0.001"))
    return max(weight, minimum)


def channel_order_id(order):
    return f"{settings.SHIPROCKET_ORDER_PREFIX}{order.id}"


def item_sku(item, product=None):
    """Explicit product SKU, or a stable one derived from the product id"""
    if product is not None and product.sku:
        return product.sku
    return f"PROD-{item.product_id}"


def split_name(full_name):
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def build_order_payload(order, items, address, customer, metrics, products=None, pickup_location=None, channel_id=""):
    """
    Map an order onto the Shiprocket adhoc order payload.

    Billing and shipping are the same address. Money crosses this boundary
    exactly once, from minor to major units.
    """
    products = products or {}
    full_name = address.full_name or customer.get_full_name() or customer.get_username()
    first_name, last_name = split_name(full_name)
    email = customer.email or ""

    order_items = []
    for item in items:
        product = products.get(item.product_id)
        order_items.append({
            "name": (product.title if product else f"Product {item.product_id}")[:100],
            "sku": item_sku(item, product),
            "units": item.quantity,
            "selling_price": float(to_major_units(item.price)),
            "discount": 0,
            "tax": 0,
            "hsn": (product.hsn if product and product.hsn else ""),
        })

    contact = {
        "customer_name": first_name,
        "last_name": last_name,
        "address": address.address,
        "address_2": "",
        "city": address.city,
        "pincode": address.pincode,
        "state": address.state,
        "country": "India",
        "email": email,
        "phone": address.phone,
    }

    payload = {
        "order_id": channel_order_id(order),
        "order_date": order.created_at.strftime("%Y-%m-%d %H:%M"),
        "pickup_location": pickup_location or settings.SHIPROCKET_PICKUP_LOCATION,
        "channel_id": str(channel_id) if channel_id else "",
        "shipping_is_billing": True,
        "order_items": order_items,
        "payment_method": "COD" if order.is_cod else "Prepaid",
        "shipping_charges": float(to_major_units(order.shipping_charges)),
        "giftwrap_charges": 0,
        "transaction_charges": 0,
        "total_discount": float(to_major_units(order.discount)),
        "sub_total": float(to_major_units(order.total)),
        "length": float(metrics.max_length),
        "breadth": float(metrics.max_width),
        "height": float(metrics.max_height),
        "weight": float(weight_in_kg(metrics.total_weight_grams)),
    }
    for key, value in contact.items():
        payload[f"billing_{key}"] = value
        payload[f"shipping_{key}"] = value
    return payload
