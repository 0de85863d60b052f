"""
Shared fixtures for the Wooacry bridge tests.
"""
import copy
from typing import Any, Dict, List, Optional

import pytest

from wooacry_bridge.config import Settings
from wooacry_bridge.ledger import InMemoryLedger
from wooacry_bridge.models import CreateOrderResult, PreorderResult, ShippingQuote


BASE_ORDER: Dict[str, Any] = {
    "id": 5550001234567,
    "name": "#1001",
    "email": "Buyer@Example.com",
    "created_at": "2024-05-01T12:00:00Z",
    "phone": None,
    "shipping_address": {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "phone": "+1 555 0100",
        "address1": "1 Analytical Way",
        "address2": "",
        "city": "Portland",
        "province": "Oregon",
        "province_code": "OR",
        "country": "United States",
        "country_code": "US",
        "zip": "97201",
    },
    "line_items": [
        {
            "id": 1,
            "title": "Custom Acrylic Stand",
            "quantity": 2,
            "properties": [{"name": "customize_no", "value": "ABC1"}],
        }
    ],
}


def make_order(**overrides) -> Dict[str, Any]:
    """A Shopify orders/create payload with one Wooacry line item."""
    order = copy.deepcopy(BASE_ORDER)
    order.update(overrides)
    return order


class FakeWooacry:
    """Stands in for WooacryClient and records every call."""

    def __init__(self, quotes: Optional[List[Dict[str, Any]]] = None, order_sn: str = "WA-0001"):
        self.quotes = quotes if quotes is not None else [
            {"id": 11, "name": "Standard", "postal_amount": "7.50"},
            {"id": 12, "name": "Express", "postal_amount": "19.00"},
        ]
        self.order_sn = order_sn
        self.calls: List[tuple] = []
        self.preorder_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.order_info_response: Dict[str, Any] = {"code": 1, "message": "order not found"}
        self.on_create = None

    def preorder(self, third_party_user, skus, address):
        self.calls.append(("preorder", {"third_party_user": third_party_user, "skus": skus, "address": address}))
        if self.preorder_error:
            raise self.preorder_error
        return PreorderResult(
            quotes=[ShippingQuote.model_validate(q) for q in self.quotes],
            raw={"code": 0, "data": {"shipping_methods": self.quotes}},
        )

    def create_order(self, **kwargs):
        self.calls.append(("create_order", kwargs))
        if self.on_create:
            self.on_create(kwargs)
        if self.create_error:
            raise self.create_error
        return CreateOrderResult(
            order_sn=self.order_sn,
            raw={"code": 0, "data": {"order_sn": self.order_sn}},
        )

    def order_info(self, third_party_order_sn):
        self.calls.append(("order_info", third_party_order_sn))
        return self.order_info_response

    def cancel_order(self, third_party_order_sn):
        self.calls.append(("cancel_order", third_party_order_sn))
        return {"code": 0, "data": []}

    def change_address(self, third_party_order_sn, address):
        self.calls.append(("change_address", third_party_order_sn))
        return {"code": 0, "data": []}

    def customize_info(self, customize_no):
        self.calls.append(("customize_info", customize_no))
        return {"code": 0, "data": {"customize_no": customize_no}}

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        WOOACRY_SECRET="test-secret",
        WOOACRY_RESELLER_FLAG="characterhub",
        LEDGER_BACKEND="memory",
        SHOPIFY_ADMIN_API_TOKEN="",
        SHOPIFY_WEBHOOK_SECRET="",
        WOOACRY_WEBHOOK_SECRET="",
        ADMIN_API_TOKEN="admin-token",
        ORDER_LOCK_TIMEOUT_SECONDS=1.0,
    )


@pytest.fixture
def wooacry() -> FakeWooacry:
    return FakeWooacry()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()
