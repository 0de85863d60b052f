"""
Client for the Wooacry reseller open API.

Every call is a signed JSON POST. Wooacry answers ``{"code": 0, "data": ...}``
on success; any other code is a business failure. On some failure paths it
answers with HTML or plain text, which is reported separately as a protocol
error so the two can be told apart in the logs.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union

import requests

from .address import normalize_address
from .config import Settings
from .errors import (
    NoQuotesError,
    UpstreamBusinessError,
    UpstreamConnectionError,
    UpstreamProtocolError,
    UpstreamTimeoutError,
)
from .models import (
    CreateOrderResult,
    CustomizationItem,
    NormalizedAddress,
    PreorderResult,
    ShippingQuote,
)
from .signer import Signer

logger = logging.getLogger(__name__)

PREORDER_PATH = "/api/reseller/open/order/create/pre"
CREATE_ORDER_PATH = "/api/reseller/open/order/create"
ORDER_INFO_PATH = "/api/reseller/open/order/info"
ORDER_CANCEL_PATH = "/api/reseller/open/order/cancel"
ADDRESS_CHANGE_PATH = "/api/reseller/open/order/address/change"
CUSTOMIZE_INFO_PATH = "/api/reseller/open/customize/info"

BODY_PREVIEW_CHARS = 800
LOG_PREVIEW_CHARS = 500


def dump_body(body: Dict[str, Any]) -> str:
    """Serialize a request body the way it is sent and signed."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def is_success(payload: Any) -> bool:
    """True when a Wooacry response carries code 0."""
    if not isinstance(payload, dict):
        return False
    code = payload.get("code")
    return isinstance(code, int) and not isinstance(code, bool) and code == 0


class WooacryClient:
    """Signed HTTP client for the Wooacry open API."""

    def __init__(
        self,
        signer: Signer,
        base_url: str = "https://api-new.wooacry.com",
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "WooacryClient":
        signer = Signer(
            reseller_flag=settings.WOOACRY_RESELLER_FLAG,
            secret=settings.WOOACRY_SECRET,
            version=settings.WOOACRY_VERSION,
        )
        return cls(
            signer,
            base_url=settings.WOOACRY_BASE_URL,
            timeout=settings.WOOACRY_TIMEOUT_SECONDS,
            session=session,
        )

    # -- HTTP layer ----------------------------------------------------------

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a signed body and return the raw JSON payload.

        The payload is returned whatever its code; callers decide whether a
        non-zero code is fatal.
        """
        raw = dump_body(body)
        headers = self.signer.headers(raw)
        url = f"{self.base_url}{path}"

        try:
            response = self.session.post(
                url,
                data=raw.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise UpstreamTimeoutError(f"Wooacry {path} timed out after {self.timeout}s: {e}")
        except requests.exceptions.ConnectionError as e:
            raise UpstreamConnectionError(f"Could not connect to Wooacry {path}: {e}")
        except requests.exceptions.RequestException as e:
            raise UpstreamConnectionError(f"Wooacry {path} request failed: {e}")

        text = response.text or ""
        try:
            payload = json.loads(text)
        except ValueError:
            logger.error(
                "Wooacry %s returned non-JSON (HTTP %s): %s",
                path, response.status_code, text[:LOG_PREVIEW_CHARS]
            )
            raise UpstreamProtocolError(
                f"Wooacry returned non-JSON for {path}",
                http_status=response.status_code,
                body_preview=text[:BODY_PREVIEW_CHARS],
            )

        logger.debug("Wooacry %s -> HTTP %s code=%s", path, response.status_code,
                     payload.get("code") if isinstance(payload, dict) else None)
        return payload

    def _post_checked(self, path: str, body: Dict[str, Any], action: str) -> Dict[str, Any]:
        payload = self._post(path, body)
        if not is_success(payload):
            preview = json.dumps(payload, ensure_ascii=False)[:LOG_PREVIEW_CHARS]
            logger.error("Wooacry %s failed: %s", action, preview)
            raise UpstreamBusinessError(f"Wooacry {action} failed: {preview}", response=payload)
        return payload

    # -- Order pipeline calls --------------------------------------------------

    def preorder(
        self,
        third_party_user: str,
        skus: List[CustomizationItem],
        address: NormalizedAddress,
    ) -> PreorderResult:
        """
        Ask Wooacry for shipping methods for these SKUs and address.

        Raises:
            NoQuotesError: Wooacry succeeded but offered no shipping methods
        """
        body = {
            "third_party_user": third_party_user,
            "skus": [sku.model_dump() for sku in skus],
            "address": address.model_dump(),
        }
        payload = self._post_checked(PREORDER_PATH, body, "preorder")

        data = payload.get("data") or {}
        methods = data.get("shipping_methods") if isinstance(data, dict) else None
        if not isinstance(methods, list) or not methods:
            raise NoQuotesError("Wooacry preorder returned no shipping_methods", details=payload)

        try:
            quotes = [ShippingQuote.model_validate(method) for method in methods]
        except ValueError as e:
            raise UpstreamBusinessError(f"Wooacry preorder returned malformed shipping_methods: {e}",
                                        response=payload)

        return PreorderResult(quotes=quotes, raw=payload)

    def create_order(
        self,
        third_party_order_sn: str,
        third_party_order_created_at: int,
        third_party_user: str,
        shipping_method_id: Union[int, str],
        skus: List[CustomizationItem],
        address: NormalizedAddress,
    ) -> CreateOrderResult:
        """Submit the manufacturing order and return Wooacry's order_sn."""
        body = {
            "third_party_order_sn": third_party_order_sn,
            "third_party_order_created_at": third_party_order_created_at,
            "third_party_user": third_party_user,
            "shipping_method_id": shipping_method_id,
            "skus": [sku.model_dump() for sku in skus],
            "address": address.model_dump(),
        }
        payload = self._post_checked(CREATE_ORDER_PATH, body, "order/create")

        data = payload.get("data") or {}
        order_sn = data.get("order_sn") if isinstance(data, dict) else None
        if order_sn is None or str(order_sn).strip() == "":
            raise UpstreamBusinessError("Wooacry order/create succeeded without an order_sn", response=payload)

        return CreateOrderResult(order_sn=str(order_sn).strip(), raw=payload)

    # -- Order management ------------------------------------------------------

    def order_info(self, third_party_order_sn: str) -> Dict[str, Any]:
        """Fetch Wooacry's view of an order. Returns the raw payload."""
        return self._post(ORDER_INFO_PATH, {"third_party_order_sn": str(third_party_order_sn).strip()})

    def cancel_order(self, third_party_order_sn: str) -> Dict[str, Any]:
        return self._post(ORDER_CANCEL_PATH, {"third_party_order_sn": str(third_party_order_sn).strip()})

    def change_address(self, third_party_order_sn: str, address: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the shipping address of an order. The address is normalized first."""
        normalized = normalize_address(address)
        body = {
            "third_party_order_sn": str(third_party_order_sn).strip(),
            "address": normalized.model_dump(),
        }
        return self._post(ADDRESS_CHANGE_PATH, body)

    def customize_info(self, customize_no: str) -> Dict[str, Any]:
        return self._post(CUSTOMIZE_INFO_PATH, {"customize_no": customize_no})
