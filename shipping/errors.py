"""
Fulfillment error taxonomy.

Every error carries a machine-readable ``kind`` and ``code``, a human-readable
message and a remediation hint, so the HTTP boundary and the batch result rows
can report them the same way.

    FulfillmentError
    ├── ConfigurationError
    ├── AuthenticationFailed
    ├── PermissionDenied
    ├── Forbidden
    ├── AlreadyShipped
    │   └── ShipmentInProgress
    ├── MissingAddress
    ├── MissingUser
    ├── OrderNotFound
    ├── InvalidTransition
    ├── InvalidRequest
    ├── PickupAddressLocked
    ├── PartialSuccess
    └── CarrierApiError
        └── UnknownAuthError
"""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Substrings of a carrier login failure message that point at bad credentials
AUTH_MARKERS = (
    "invalid email",
    "invalid credentials",
    "unauthenticated",
    "unauthorized",
    "authentication",
    "password",
)


class FulfillmentError(Exception):
    kind: str = "fulfillment_error"
    default_code: str = "FULFILLMENT_ERROR"
    http_status: int = 500
    remediation: str = ""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        remediation: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        if remediation is not None:
            self.remediation = remediation
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": False,
            "kind": self.kind,
            "code": self.code,
            "error": self.message,
        }
        if self.remediation:
            data["remediation"] = self.remediation
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ConfigurationError(FulfillmentError):
    kind = "configuration_error"
    default_code = "CONFIGURATION_ERROR"
    http_status = 400
    remediation = "Set up the Shiprocket credentials and default courier in shipping settings."


class AuthenticationFailed(FulfillmentError):
    kind = "authentication_failed"
    default_code = "CARRIER_AUTH_FAILED"
    http_status = 400
    remediation = "Check the Shiprocket API user email and password in shipping settings."


class PermissionDenied(FulfillmentError):
    kind = "permission_denied"
    default_code = "CARRIER_PERMISSION_DENIED"
    http_status = 403
    remediation = "The Shiprocket account has no API access. Upgrade the plan or enable the API user."


class Forbidden(FulfillmentError):
    """The signed-in user may not act on this resource"""
    kind = "forbidden"
    default_code = "FORBIDDEN"
    http_status = 403


class AlreadyShipped(FulfillmentError):
    kind = "already_shipped"
    default_code = "ALREADY_SHIPPED"
    http_status = 409


class ShipmentInProgress(AlreadyShipped):
    default_code = "SHIPMENT_IN_PROGRESS"


class MissingAddress(FulfillmentError):
    kind = "missing_address"
    default_code = "MISSING_ADDRESS"
    http_status = 422
    remediation = "Attach a shipping address to the order."


class MissingUser(FulfillmentError):
    kind = "missing_user"
    default_code = "MISSING_USER"
    http_status = 422


class OrderNotFound(FulfillmentError):
    kind = "not_found"
    default_code = "ORDER_NOT_FOUND"
    http_status = 404


class InvalidTransition(FulfillmentError):
    kind = "invalid_transition"
    default_code = "INVALID_TRANSITION"
    http_status = 409


class InvalidRequest(FulfillmentError):
    kind = "invalid_request"
    default_code = "INVALID_REQUEST"
    http_status = 400


class PickupAddressLocked(FulfillmentError):
    kind = "locked"
    default_code = "PICKUP_EDIT_LOCKED"
    http_status = 403
    remediation = "Pickup address can only be added once. Please contact support to edit this information."


class PartialSuccess(FulfillmentError):
    """Order created at the carrier, courier assignment failed. Never raised out of a ship call."""
    kind = "partial_success"
    default_code = "AWB_ASSIGNMENT_FAILED"
    http_status = 200
    remediation = "Assign a courier manually from the Shiprocket panel."


class CarrierApiError(FulfillmentError):
    kind = "carrier_api_error"
    default_code = "CARRIER_API_ERROR"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class UnknownAuthError(CarrierApiError):
    default_code = "CARRIER_AUTH_UNKNOWN"


def _response_message(response) -> tuple:
    """Return (message, raw body) of a carrier response."""
    try:
        body = response.json()
    except ValueError:
        body = response.text
    message = ""
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or ""
        if isinstance(message, (dict, list)):
            message = str(message)
    elif body:
        message = str(body)[:200]
    return message or f"HTTP {response.status_code}", body


def _has_auth_marker(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in AUTH_MARKERS)


def classify_carrier_error(response=None, exc: Optional[Exception] = None, auth: bool = False) -> FulfillmentError:
    """
    Normalize a failed carrier call into the fulfillment taxonomy.

    Args:
        response: the carrier ``requests.Response`` when one was received
        exc: the transport exception when no response was received
        auth: True for the login call, where unrecognized failures are
            reported as ``UnknownAuthError``

    Returns:
        The FulfillmentError to raise.
    """
    if response is None:
        if isinstance(exc, requests.exceptions.Timeout):
            return CarrierApiError(
                "Shiprocket did not respond in time",
                code="CARRIER_TIMEOUT",
                details={"error": str(exc)},
            )
        if isinstance(exc, requests.exceptions.ConnectionError):
            return CarrierApiError(
                "Shiprocket is unreachable",
                code="CARRIER_UNREACHABLE",
                details={"error": str(exc)},
            )
        cls = UnknownAuthError if auth else CarrierApiError
        return cls(str(exc) if exc else "Shiprocket request failed", details={"error": str(exc)})

    status = response.status_code
    message, body = _response_message(response)
    details = {"status_code": status, "response": body}

    if status == 403:
        return PermissionDenied(message, details=details)
    if status == 401 or (auth and _has_auth_marker(message)):
        return AuthenticationFailed(message, details=details)
    if auth:
        return UnknownAuthError(message, status_code=status, details=details)
    return CarrierApiError(message, status_code=status, details=details)
