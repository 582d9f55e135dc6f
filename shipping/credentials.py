# shipping/credentials.py
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .errors import ConfigurationError
from .models import CarrierSettings
from .shiprocket_utils import ShiprocketAPI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CarrierConfig:
    """Carrier configuration aggregate injected into the orchestrator at call time."""
    tenant: str
    email: str
    password: str
    default_courier_id: str = ""
    auto_ship_enabled: bool = False
    pickup_postcode: str = ""
    channel_id: str = ""

    def __repr__(self):
        return f"CarrierConfig(tenant={self.tenant!r}, email={self.email!r})"


def load_carrier_config(tenant: Optional[str] = None) -> CarrierConfig:
    """Load the single settings row of a tenant; missing credentials are a configuration error."""
    tenant = tenant or settings.SHIPROCKET_TENANT
    row = CarrierSettings.objects.filter(tenant=tenant).first()
    if row is None or not row.email or not row.password:
        raise ConfigurationError(
            "Shiprocket service not configured",
            details={"tenant": tenant},
        )
    return CarrierConfig(
        tenant=row.tenant,
        email=row.email,
        password=row.password,
        default_courier_id=row.default_courier_id,
        auto_ship_enabled=row.auto_ship_enabled,
        pickup_postcode=row.pickup_postcode,
        channel_id=row.channel_id,
    )


class TokenManager:
    """
    Mints a fresh carrier token before every privileged call.

    The stored token is written for observability only and is never read back
    for authorization. Failures surface as AuthenticationFailed,
    PermissionDenied or UnknownAuthError; retrying is the caller's decision.
    """

    def __init__(self, config: CarrierConfig, client: Optional[ShiprocketAPI] = None):
        self.config = config
        self.client = client or ShiprocketAPI()

    def get_token(self) -> str:
        token = self.client.authenticate(self.config.email, self.config.password)
        CarrierSettings.objects.filter(tenant=self.config.tenant).update(
            token=token,
            token_refreshed_at=timezone.now(),
        )
        return token


def public_settings(tenant: Optional[str] = None) -> dict:
    """Credential view safe to return to a client: the password is never included."""
    tenant = tenant or settings.SHIPROCKET_TENANT
    row = CarrierSettings.objects.filter(tenant=tenant).first()
    if row is None:
        return {
            "configured": False,
            "email": "",
            "has_password": False,
            "default_courier_id": "",
            "auto_ship_enabled": False,
            "pickup_postcode": "",
            "token_refreshed_at": None,
            "updated_at": None,
        }
    return {
        "configured": bool(row.email and row.password),
        "email": row.email,
        "has_password": bool(row.password),
        "default_courier_id": row.default_courier_id,
        "auto_ship_enabled": row.auto_ship_enabled,
        "pickup_postcode": row.pickup_postcode,
        "token_refreshed_at": row.token_refreshed_at.isoformat() if row.token_refreshed_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def save_credentials(
    email,
    password=None,
    default_courier_id=None,
    auto_ship_enabled=None,
    pickup_postcode=None,
    tenant=None,
    client=None,
):
    """
    Validate the credentials with a live login, then persist them.

    A blank password keeps the stored one, so the settings form can be
    re-submitted without the client ever holding the password.
    """
    tenant = tenant or settings.SHIPROCKET_TENANT
    email = (email or "").strip()
    if not email:
        raise ConfigurationError("Email is required")

    stored = CarrierSettings.objects.filter(tenant=tenant).values_list("password", flat=True).first()
    password = password or stored
    if not password:
        raise ConfigurationError("Password is required")

    # Nothing is written until the login succeeds
    client = client or ShiprocketAPI()
    token = client.authenticate(email, password)

    values = {
        "email": email,
        "password": password,
        "token": token,
        "token_refreshed_at": timezone.now(),
    }
    if default_courier_id is not None:
        values["default_courier_id"] = str(default_courier_id).strip()
    if auto_ship_enabled is not None:
        values["auto_ship_enabled"] = bool(auto_ship_enabled)
    if pickup_postcode is not None:
        values["pickup_postcode"] = str(pickup_postcode).strip()
    CarrierSettings.objects.update_or_create(tenant=tenant, defaults=values)
    logger.info(f"Shiprocket credentials saved for tenant {tenant}")
    return public_settings(tenant)
