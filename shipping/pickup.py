# shipping/pickup.py
import json
import logging
from dataclasses import asdict, dataclass, field

from django.db import IntegrityError, transaction
from django.utils import timezone

from .errors import FulfillmentError, InvalidRequest, PickupAddressLocked
from .models import SellerSettings

logger = logging.getLogger(__name__)

# Canonical field -> historical key spellings, first non-empty wins
FIELD_SYNONYMS = {
    "pickup_location": ("pickup_location", "businessName", "business_name", "contactName", "contact_name", "name"),
    "name": ("name", "contactName", "contact_name", "businessName", "business_name"),
    "email": ("email", "contactEmail", "contact_email"),
    "phone": ("phone", "contactPhone", "contact_phone"),
    "address": ("address", "line1", "address1", "address_1"),
    "address_2": ("address_2", "line2", "address2"),
    "city": ("city",),
    "state": ("state",),
    "country": ("country",),
    "pin_code": ("pin_code", "pincode", "pinCode", "zip", "zipcode"),
    "gstin": ("gstin", "gst"),
}


@dataclass
class RegistrationOutcome:
    pickup_location: str
    saved: bool = True
    carrier: dict = field(default_factory=dict)

    def to_dict(self):
        data = asdict(self)
        data["success"] = self.saved
        return data


def _first(raw, keys):
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return str(value).strip()
    return ""


def parse_pickup_address(value):
    """Accept a dict or its JSON string form"""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise InvalidRequest("Pickup address must be a JSON object")
    if not isinstance(value, dict) or not value:
        raise InvalidRequest("Pickup address is required")
    return value


def normalize_pickup_address(raw, seller_id, fallback_email=""):
    """
    Coalesce historical key variants into the carrier's addpickup schema.

    Nickname is capped at 36 characters and the first address line at 80,
    which are the carrier's limits.
    """
    canonical = {name: _first(raw, keys) for name, keys in FIELD_SYNONYMS.items()}

    payload = {
        "pickup_location": (canonical["pickup_location"] or f"Seller-{seller_id}")[:36],
        "name": canonical["name"] or f"Seller {seller_id}",
        "email": canonical["email"] or fallback_email or "",
        "phone": canonical["phone"],
        "address": canonical["address"][:80],
        "address_2": canonical["address_2"],
        "city": canonical["city"],
        "state": canonical["state"],
        "country": canonical["country"] or "India",
        "pin_code": canonical["pin_code"],
    }

    address_type = _first(raw, ("address_type",)) or ("vendor" if raw.get("vendor_name") else "")
    if address_type:
        payload["address_type"] = address_type
    if raw.get("vendor_name"):
        payload["vendor_name"] = str(raw["vendor_name"]).strip()
    if canonical["gstin"]:
        payload["gstin"] = canonical["gstin"]
    return payload


def pickup_pincode(seller_id):
    """Registered pickup pincode of a seller, or empty string"""
    if not seller_id:
        return ""
    raw = SellerSettings.objects.filter(seller_id=seller_id).values_list("pickup_address", flat=True).first()
    if not raw:
        return ""
    return _first(raw, FIELD_SYNONYMS["pin_code"])


def register_pickup_address(seller, address, token_manager=None, client=None):
    """
    Save a seller's pickup address once, then mirror it to the carrier.

    The local write is authoritative. Carrier registration is best effort and
    its outcome is returned as advisory, never as a failure.

    Args:
        seller: the seller user
        address: dict or JSON string, any supported key spelling
        token_manager: TokenManager for the carrier call, None when the carrier is not configured
        client: the ShiprocketAPI the token manager authenticates
    """
    if SellerSettings.objects.filter(seller=seller, pickup_address__isnull=False).exists():
        raise PickupAddressLocked("Pickup address locked", details={"seller_id": seller.pk})

    raw = parse_pickup_address(address)
    payload = normalize_pickup_address(raw, seller.pk, fallback_email=getattr(seller, "email", ""))

    try:
        with transaction.atomic():
            row, _ = SellerSettings.objects.select_for_update().get_or_create(seller=seller)
            if row.pickup_address:
                raise PickupAddressLocked("Pickup address locked", details={"seller_id": seller.pk})
            row.pickup_address = raw
            row.pickup_location = payload["pickup_location"]
            row.pickup_registered_at = timezone.now()
            row.save()
    except IntegrityError:
        # a concurrent first write won
        raise PickupAddressLocked("Pickup address locked", details={"seller_id": seller.pk})

    logger.info(f"Pickup address saved for seller {seller.pk} as {payload['pickup_location']}")
    outcome = RegistrationOutcome(pickup_location=payload["pickup_location"])

    if token_manager is None:
        logger.warning("[Shiprocket] credentials not configured, skipping addpickup")
        outcome.carrier = {"attempted": False, "success": False, "message": "Shiprocket credentials not configured"}
        return outcome

    try:
        token_manager.get_token()
        data = (client or token_manager.client).add_pickup(payload)
    except FulfillmentError as e:
        logger.warning(f"[Shiprocket] addpickup failed for seller {seller.pk}: {e.code} {e.message}")
        outcome.carrier = {
            "attempted": True,
            "success": False,
            "message": e.message,
            "code": e.code,
            "details": e.details,
        }
        return outcome

    logger.info(f"[Shiprocket] addpickup success for {payload['pickup_location']}")
    outcome.carrier = {
        "attempted": True,
        "success": True,
        "message": "Pickup location registered",
        "data": data,
    }
    return outcome
