import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .config import Settings
from .errors import ShopifyAPIError, UpstreamConnectionError, UpstreamTimeoutError

logger = logging.getLogger(__name__)


class ShopifyClient:
    """Thin client for the Shopify Admin REST API."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.shopify_admin_url
        self.timeout = settings.SHOPIFY_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.headers = {
            'Content-Type': 'application/json',
            'X-Shopify-Access-Token': settings.SHOPIFY_ADMIN_API_TOKEN
        }

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        params: Optional[dict] = None
    ) -> Optional[dict]:
        """
        Send a request to the Admin API and return the decoded JSON body
        """
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=self.headers,
                params=params,
                data=json.dumps(payload) if payload is not None else None,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise UpstreamTimeoutError(f"Shopify {method} {path} timed out: {str(e)}")
        except requests.exceptions.RequestException as e:
            raise UpstreamConnectionError(f"Shopify {method} {path} failed: {str(e)}")

        text = response.text or ""
        try:
            data = json.loads(text) if text else None
        except ValueError:
            data = None

        if not response.ok:
            raise ShopifyAPIError(
                f"Shopify API error {response.status_code} on {path}: {text[:500]}",
                http_status=response.status_code,
                details=data if data is not None else text[:500]
            )

        return data

    # Orders

    def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a specific order by ID, None if Shopify does not know it
        """
        try:
            data = self._request("GET", f"/orders/{order_id}.json")
        except ShopifyAPIError as e:
            if e.http_status == 404:
                return None
            raise
        return (data or {}).get("order")

    # Metafields

    def get_order_metafields(self, order_id: str, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List metafields attached to an order, optionally filtered by namespace
        """
        params = {"limit": 250}
        if namespace is not None:
            params["namespace"] = namespace
        data = self._request("GET", f"/orders/{order_id}/metafields.json", params=params)
        metafields = (data or {}).get("metafields") or []
        if namespace is not None:
            metafields = [m for m in metafields if m.get("namespace") == namespace]
        return metafields

    def create_order_metafield(
        self,
        order_id: str,
        namespace: str,
        key: str,
        value: str,
        value_type: str = "single_line_text_field"
    ) -> Dict[str, Any]:
        payload = {
            "metafield": {
                "namespace": namespace,
                "key": key,
                "value": value,
                "type": value_type
            }
        }
        data = self._request("POST", f"/orders/{order_id}/metafields.json", payload)
        return (data or {}).get("metafield") or {}

    def update_metafield(self, metafield_id: Any, value: str) -> Dict[str, Any]:
        payload = {"metafield": {"id": metafield_id, "value": value}}
        data = self._request("PUT", f"/metafields/{metafield_id}.json", payload)
        return (data or {}).get("metafield") or {}

    # Fulfillments

    def get_fulfillment_orders(self, order_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/orders/{order_id}/fulfillment_orders.json")
        return (data or {}).get("fulfillment_orders") or []

    def create_fulfillment(
        self,
        fulfillment_orders: List[Dict[str, Any]],
        tracking_info: Dict[str, Any],
        notify_customer: bool = True
    ) -> Dict[str, Any]:
        """
        Create a fulfillment covering every line of the given fulfillment orders
        """
        line_items_by_fulfillment_order = [
            {
                "fulfillment_order_id": fo["id"],
                "fulfillment_order_line_items": [
                    {"id": li["id"], "quantity": li["quantity"]}
                    for li in (fo.get("line_items") or [])
                ]
            }
            for fo in fulfillment_orders
        ]

        fulfillment = {
            "notify_customer": notify_customer,
            "tracking_info": tracking_info,
            "line_items_by_fulfillment_order": line_items_by_fulfillment_order
        }

        first = fulfillment_orders[0] if fulfillment_orders else {}
        location_id = first.get("assigned_location_id") or (first.get("assigned_location") or {}).get("location_id")
        if location_id:
            fulfillment["location_id"] = location_id

        data = self._request("POST", "/fulfillments.json", {"fulfillment": fulfillment})
        return (data or {}).get("fulfillment") or {}

    def update_fulfillment_tracking(
        self,
        fulfillment_id: Any,
        tracking_info: Dict[str, Any],
        notify_customer: bool = True
    ) -> Dict[str, Any]:
        payload = {
            "fulfillment": {
                "notify_customer": notify_customer,
                "tracking_info": tracking_info
            }
        }
        data = self._request("POST", f"/fulfillments/{fulfillment_id}/update_tracking.json", payload)
        return (data or {}).get("fulfillment") or {}
