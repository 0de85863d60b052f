"""
Wooacry shipping notices -> Shopify fulfillment tracking.

Wooacry posts ``{third_party_order_sn, express: {...}}`` when an order ships.
The handler always acknowledges with the envelope Wooacry expects; failures
are logged instead of being returned, since Wooacry retries on anything else.
"""
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import ShippingNotice
from .shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

_ORDER_ID_PATTERN = re.compile(r"(\d{6,})")
_CLOSED_STATUSES = ("closed", "cancelled")


def ack() -> Dict[str, Any]:
    return {"data": [], "code": 0, "message": "success"}


def extract_shopify_order_id(third_party_order_sn: Any) -> Optional[str]:
    """Pull the numeric Shopify order id out of a third_party_order_sn."""
    if third_party_order_sn is None:
        return None
    match = _ORDER_ID_PATTERN.search(str(third_party_order_sn))
    return match.group(1) if match else None


def parse_shipping_notice(body: Any) -> ShippingNotice:
    if not isinstance(body, dict):
        raise ValidationError("Shipping notice must be a JSON object")
    try:
        return ShippingNotice.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid shipping notice: {e.errors()[0].get('msg', 'invalid')}")


class TrackingSync:
    """Applies a shipping notice to the matching Shopify order."""

    def __init__(self, shopify: ShopifyClient, tracking_url_template: str = "https://t.17track.net/en#nums={number}"):
        self.shopify = shopify
        self.tracking_url_template = tracking_url_template

    def tracking_info(self, notice: ShippingNotice) -> Dict[str, Optional[str]]:
        express = notice.express
        number = (express.express_number or "").strip()
        company = (express.express_company_name or express.express_company or "").strip() or "Carrier"
        url = self.tracking_url_template.format(number=quote(number, safe="")) if number else ""
        return {
            "number": number or None,
            "company": company,
            "url": url or None,
        }

    def apply(self, notice: ShippingNotice) -> str:
        """
        Create or update the fulfillment for the notice's order.

        Returns what was done: "created", "updated" or "no_open_fulfillment_orders".
        """
        order_id = extract_shopify_order_id(notice.third_party_order_sn)
        if not order_id:
            raise ValidationError(
                f"third_party_order_sn {notice.third_party_order_sn!r} does not contain a Shopify order id"
            )

        order = self.shopify.get_order(order_id)
        if not order:
            raise ValidationError(f"Shopify order {order_id} not found")

        tracking_info = self.tracking_info(notice)

        existing = next(
            (f for f in (order.get("fulfillments") or []) if f.get("status") != "cancelled"),
            None,
        )
        if existing:
            self.shopify.update_fulfillment_tracking(existing["id"], tracking_info)
            logger.info(
                "Updated tracking on fulfillment %s of order %s: %s %s",
                existing["id"], order_id, tracking_info["company"], tracking_info["number"]
            )
            return "updated"

        open_orders = [
            fo for fo in self.shopify.get_fulfillment_orders(order_id)
            if str(fo.get("status") or "").lower() not in _CLOSED_STATUSES
        ]
        if not open_orders:
            logger.info("Order %s has no open fulfillment orders, nothing to fulfill", order_id)
            return "no_open_fulfillment_orders"

        self.shopify.create_fulfillment(open_orders, tracking_info)
        logger.info(
            "Created fulfillment for order %s: %s %s",
            order_id, tracking_info["company"], tracking_info["number"]
        )
        return "created"
