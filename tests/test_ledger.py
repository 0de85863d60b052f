import json
from unittest.mock import MagicMock

import pytest
import requests

from wooacry_bridge.errors import OrderInProgressError
from wooacry_bridge.ledger import InMemoryLedger, OrderLocks, ShopifyMetafieldLedger
from wooacry_bridge.models import PartnerOrderRecord
from wooacry_bridge.shopify_client import ShopifyClient


def test_in_memory_ledger_round_trip():
    ledger = InMemoryLedger()
    assert ledger.get("1") is None

    ledger.put("1", PartnerOrderRecord(partner_order_id="WA1", status="created"))

    record = ledger.get("1")
    assert record.partner_order_id == "WA1"
    assert record.is_recorded
    assert len(ledger) == 1


def test_in_memory_ledger_returns_copies():
    ledger = InMemoryLedger()
    ledger.put("1", PartnerOrderRecord(partner_order_id="WA1"))

    ledger.get("1").partner_order_id = "changed"

    assert ledger.get("1").partner_order_id == "WA1"


def test_failure_annotation_is_not_recorded():
    assert not PartnerOrderRecord(status="failed:quote").is_recorded
    assert not PartnerOrderRecord(partner_order_id="  ").is_recorded


@pytest.fixture
def shopify():
    return MagicMock(spec=ShopifyClient)


def test_metafield_ledger_empty(shopify):
    shopify.get_order_metafields.return_value = []

    assert ShopifyMetafieldLedger(shopify).get("555") is None
    shopify.get_order_metafields.assert_called_once_with("555", namespace="wooacry")


def test_metafield_ledger_reads_record(shopify):
    shopify.get_order_metafields.return_value = [
        {"id": 1, "namespace": "wooacry", "key": "order_sn", "value": "WA1"},
        {"id": 2, "namespace": "wooacry", "key": "status", "value": "created"},
    ]

    record = ShopifyMetafieldLedger(shopify).get("555")

    assert record == PartnerOrderRecord(partner_order_id="WA1", status="created", third_party_user="")


def test_metafield_ledger_creates_missing_keys(shopify):
    shopify.get_order_metafields.return_value = []

    ShopifyMetafieldLedger(shopify).put(
        "555", PartnerOrderRecord(partner_order_id="WA1", status="created", third_party_user="a@b.c")
    )

    created = {c.args[2]: c.args[3] for c in shopify.create_order_metafield.call_args_list}
    assert created == {"order_sn": "WA1", "status": "created", "third_party_user": "a@b.c"}
    shopify.update_metafield.assert_not_called()


def test_metafield_ledger_updates_in_place(shopify):
    shopify.get_order_metafields.return_value = [
        {"id": 10, "key": "status", "value": "failed:quote"},
        {"id": 11, "key": "third_party_user", "value": "a@b.c"},
    ]

    ShopifyMetafieldLedger(shopify).put(
        "555", PartnerOrderRecord(partner_order_id="WA1", status="created", third_party_user="a@b.c")
    )

    shopify.update_metafield.assert_called_once_with(10, "created")
    shopify.create_order_metafield.assert_called_once_with("555", "wooacry", "order_sn", "WA1")


def test_metafield_ledger_skips_empty_values(shopify):
    shopify.get_order_metafields.return_value = []

    ShopifyMetafieldLedger(shopify).put("555", PartnerOrderRecord(status="failed:quote"))

    shopify.create_order_metafield.assert_called_once_with("555", "wooacry", "status", "failed:quote")


def test_order_lock_times_out_while_held():
    locks = OrderLocks(timeout=0.01)

    with locks.hold("555"):
        with pytest.raises(OrderInProgressError):
            with locks.hold("555"):
                pass


def test_order_locks_are_per_order_and_released():
    locks = OrderLocks(timeout=0.01)

    with locks.hold("555"):
        with locks.hold("556"):
            pass

    with locks.hold("555"):
        pass

    assert locks._locks == {}


def test_metafield_read_filters_by_namespace_on_the_server(settings):
    session = MagicMock(spec=requests.Session)
    response = MagicMock(spec=requests.Response)
    response.ok = True
    response.status_code = 200
    response.text = json.dumps({"metafields": [
        {"id": 1, "namespace": "wooacry", "key": "order_sn", "value": "WA1"},
    ]})
    session.request.return_value = response

    record = ShopifyMetafieldLedger(ShopifyClient(settings, session=session)).get("555")

    assert record.partner_order_id == "WA1"
    method, url = session.request.call_args.args
    assert method == "GET"
    assert url.endswith("/orders/555/metafields.json")
    assert session.request.call_args.kwargs["params"]["namespace"] == "wooacry"
