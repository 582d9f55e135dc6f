# shipping/shiprocket_utils.py
import logging
from django.conf import settings
import requests

from .errors import AuthenticationFailed, CarrierApiError, UnknownAuthError, classify_carrier_error

logger = logging.getLogger(__name__)

class ShiprocketAPI:
    """Shiprocket API client. One method per endpoint, no retries, bounded timeouts."""

    def __init__(self, token=None, base_url=None, timeout=None):
        self.base_url = (base_url or settings.SHIPROCKET_BASE_URL).strip().rstrip("/")
        self.timeout = timeout or settings.SHIPROCKET_TIMEOUT
        self.token = token

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def authenticate(self, email, password):
        """Log in with the account credentials and keep the returned token"""
        try:
            response = requests.post(
                self._url("auth/login"),
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Shiprocket auth transport error: {str(e)}")
            raise classify_carrier_error(exc=e, auth=True) from e

        if not response.ok:
            error = classify_carrier_error(response=response, auth=True)
            logger.error(f"Shiprocket auth failed: {error.code} {error.message}")
            raise error

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Shiprocket auth returned a non-JSON response")
            raise UnknownAuthError(
                "Shiprocket returned a non-JSON response",
                status_code=response.status_code,
                details={"response": response.text[:500]},
            ) from e
        if not isinstance(data, dict) or not data.get("token"):
            error = classify_carrier_error(response=response, auth=True)
            logger.error(f"Shiprocket auth returned no token: {error.code}")
            raise error

        self.token = data["token"]
        logger.info("Shiprocket authentication successful")
        return self.token

    def get_headers(self):
        """Get authorized headers"""
        if not self.token:
            raise AuthenticationFailed("Shiprocket client has no token, authenticate first")
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def _request(self, method, path, **kwargs):
        headers = self.get_headers()
        try:
            response = requests.request(method, self._url(path), headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Shiprocket {method} {path} transport error: {str(e)}")
            raise classify_carrier_error(exc=e) from e

        if not response.ok:
            error = classify_carrier_error(response=response)
            logger.error(f"Shiprocket {method} {path} failed: {error.code} {error.message}")
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise CarrierApiError(
                "Shiprocket returned a non-JSON response",
                status_code=response.status_code,
                details={"response": response.text[:500]},
            ) from e

    def add_pickup(self, payload):
        """Register a pickup location"""
        return self._request("POST", "settings/company/addpickup", json=payload)

    def check_serviceability(self, pickup_postcode, delivery_postcode, weight, length, breadth, height, cod=0):
        """Available couriers and rates between two pincodes, best rated and cheapest first"""
        params = {
            "pickup_postcode": pickup_postcode,
            "delivery_postcode": delivery_postcode,
            "weight": weight,
            "length": length,
            "breadth": breadth,
            "height": height,
            "cod": cod,
        }
        data = self._request("GET", "courier/serviceability", params=params)
        rates = (data.get("data") or {}).get("available_courier_companies") or []
        rates.sort(key=lambda x: (-float(x.get("rating") or 0), float(x.get("freight_charge") or 9999)))
        logger.info(f"Found {len(rates)} shipping options for {delivery_postcode}")
        return rates

    def list_couriers(self):
        data = self._request("GET", "courier/courierListWithCounts")
        if isinstance(data, dict):
            return data.get("courier_data") or data.get("data") or []
        return data

    def create_order(self, payload):
        """
        Create an adhoc order.
        Returns the carrier response with order_id and shipment_id
        """
        data = self._request("POST", "orders/create/adhoc", json=payload)
        if data.get("order_id"):
            logger.info(f"Shiprocket order created: {data['order_id']} for {payload.get('order_id')}")
        else:
            logger.error(f"Shiprocket order creation returned no order id: {data}")
        return data

    def create_shipment(self, shipment_id, courier_id):
        """
        Assign a courier to a shipment and generate the AWB.
        Returns awb_code, courier_name and expected_delivery_date
        """
        data = self._request(
            "POST",
            "shipments/create/adhoc",
            json={"shipment_id": shipment_id, "courier_id": courier_id},
        )
        # AWB fields come either at the top level or under response.data
        nested = (data.get("response") or {}).get("data") or {}
        result = {
            "awb_code": data.get("awb_code") or nested.get("awb_code"),
            "courier_name": data.get("courier_name") or nested.get("courier_name"),
            "expected_delivery_date": (
                data.get("expected_delivery_date")
                or data.get("etd")
                or nested.get("expected_delivery_date")
                or nested.get("etd")
            ),
        }
        if not result["awb_code"]:
            raise CarrierApiError(
                data.get("message") or "Shiprocket did not assign an AWB",
                code="AWB_NOT_ASSIGNED",
                details={"response": data},
            )
        logger.info(f"Shiprocket AWB {result['awb_code']} assigned to shipment {shipment_id}")
        return result

    def list_orders(self, page=1, per_page=100):
        """One page of carrier orders. Returns (orders, has_more)"""
        data = self._request("GET", "orders", params={"page": page, "per_page": per_page})
        orders = data.get("data") or []
        pagination = (data.get("meta") or {}).get("pagination") or {}
        total_pages = pagination.get("total_pages") or page
        return orders, page < total_pages

    def cancel_orders(self, carrier_order_ids):
        """Cancel carrier orders by their Shiprocket order ids"""
        ids = [int(i) if str(i).isdigit() else i for i in carrier_order_ids]
        data = self._request("POST", "orders/cancel", json={"ids": ids})
        logger.info(f"Shiprocket orders cancelled: {ids}")
        return data

    def get_tracking_details(self, awb_code=None, shiprocket_order_id=None):
        """
        Tracking by AWB when one was assigned, else by carrier order id.
        Returns status, awb, courier, tracking_url, estimated_delivery and tracking_history
        """
        if awb_code:
            data = self._request("GET", f"courier/track/awb/{awb_code}")
        else:
            data = self._request("GET", "courier/track", params={"order_id": shiprocket_order_id})

        # The order endpoint wraps the payload in a list keyed by order id
        if isinstance(data, list):
            data = data[0] if data else {}
        if isinstance(data, dict) and "tracking_data" not in data and len(data) == 1:
            inner = next(iter(data.values()))
            if isinstance(inner, dict):
                data = inner

        tracking = data.get("tracking_data") if isinstance(data, dict) else None
        tracking = tracking or {}
        tracks = tracking.get("shipment_track") or [{}]
        first = tracks[0] or {}
        if not tracking or tracking.get("error"):
            raise CarrierApiError(
                tracking.get("error") or "Tracking data not available",
                code="TRACKING_UNAVAILABLE",
                details={"response": data},
            )
        return {
            "status": first.get("current_status"),
            "awb": first.get("awb_code") or awb_code,
            "courier": first.get("courier_name") or first.get("courier_company"),
            "tracking_url": tracking.get("track_url"),
            "estimated_delivery": first.get("edd") or tracking.get("etd"),
            "tracking_history": tracking.get("shipment_track_activities") or [],
        }

    def generate_label(self, shipment_id):
        """Generate the shipping label of a shipment. Returns the label url"""
        data = self._request("POST", "courier/generate/label", json={"shipment_id": [shipment_id]})
        label_url = data.get("label_url")
        if not label_url:
            raise CarrierApiError(
                data.get("message") or "Shiprocket did not generate a label",
                code="LABEL_NOT_GENERATED",
                details={"response": data},
            )
        logger.info(f"Shiprocket label generated for shipment {shipment_id}")
        return label_url
