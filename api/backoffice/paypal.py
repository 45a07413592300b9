"""Thin PayPal REST client: access token, order creation, order capture."""
import logging

import requests

from .config import PAYPAL_API_BASE, PAYPAL_CLIENT_ID, PAYPAL_SECRET, PAYPAL_TIMEOUT
from .errors import PaymentProviderError

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"


def _post(url: str, **kwargs) -> dict:
    try:
        resp = requests.post(url, timeout=PAYPAL_TIMEOUT, **kwargs)
    except requests.RequestException as exc:
        logger.exception("PayPal request to %s failed", url)
        raise PaymentProviderError("Payment provider is unreachable") from exc
    if resp.status_code >= 400:
        logger.warning("PayPal API error %s: %s", resp.status_code, resp.text)
        raise PaymentProviderError(f"Payment provider rejected the request ({resp.status_code})")
    return resp.json()


def get_access_token() -> str:
    if not PAYPAL_CLIENT_ID or not PAYPAL_SECRET:
        raise PaymentProviderError("Missing PayPal credentials")
    data = _post(
        f"{PAYPAL_API_BASE}/v1/oauth2/token",
        auth=(PAYPAL_CLIENT_ID, PAYPAL_SECRET),
        data={"grant_type": "client_credentials"},
    )
    return data["access_token"]


def create_order(amount: float, description: str, custom_id: str, currency: str = "USD") -> dict:
    token = get_access_token()
    payload = {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                "description": description,
                "custom_id": custom_id,
            }
        ],
    }
    return _post(
        f"{PAYPAL_API_BASE}/v2/checkout/orders",
        json=payload,
        headers={"Authorization": f"Bearer {token}"},
    )


def capture_order(paypal_order_id: str) -> dict:
    token = get_access_token()
    return _post(
        f"{PAYPAL_API_BASE}/v2/checkout/orders/{paypal_order_id}/capture",
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
    )
