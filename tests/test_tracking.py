from unittest.mock import MagicMock

import pytest

from wooacry_bridge.errors import ValidationError
from wooacry_bridge.shopify_client import ShopifyClient
from wooacry_bridge.tracking import (
    TrackingSync,
    ack,
    extract_shopify_order_id,
    parse_shipping_notice,
)


def notice(**express):
    express = express or {"express_number": "YT123456789", "express_company_name": "YunExpress"}
    return parse_shipping_notice({"third_party_order_sn": "5550001234567", "express": express})


@pytest.fixture
def shopify():
    client = MagicMock(spec=ShopifyClient)
    client.get_order.return_value = {"id": 5550001234567, "fulfillments": []}
    return client


def test_ack_envelope():
    assert ack() == {"data": [], "code": 0, "message": "success"}
    ack()["data"].append(1)
    assert ack()["data"] == []


@pytest.mark.parametrize("sn, expected", [
    ("5550001234567", "5550001234567"),
    (5550001234567, "5550001234567"),
    ("CH-5550001234567-2", "5550001234567"),
    ("#1001", None),
    (None, None),
])
def test_extract_shopify_order_id(sn, expected):
    assert extract_shopify_order_id(sn) == expected


@pytest.mark.parametrize("body", [None, [], {"express": {}}, {"third_party_order_sn": " "}])
def test_parse_shipping_notice_rejects_bad_input(body):
    with pytest.raises(ValidationError):
        parse_shipping_notice(body)


def test_parse_shipping_notice_tolerates_null_express():
    parsed = parse_shipping_notice({"third_party_order_sn": 5550001234567, "express": None})
    assert parsed.third_party_order_sn == "5550001234567"
    assert parsed.express.express_number is None


def test_tracking_info(shopify):
    info = TrackingSync(shopify, "https://track.test/{number}").tracking_info(notice())
    assert info == {"number": "YT123456789", "company": "YunExpress", "url": "https://track.test/YT123456789"}


def test_tracking_info_defaults(shopify):
    info = TrackingSync(shopify).tracking_info(notice(shipping_status=1))
    assert info == {"number": None, "company": "Carrier", "url": None}


def test_tracking_info_falls_back_to_company_code(shopify):
    info = TrackingSync(shopify).tracking_info(notice(express_number="1Z 999", express_company="UPS"))
    assert info["company"] == "UPS"
    assert info["url"] == "https://t.17track.net/en#nums=1Z%20999"


def test_creates_fulfillment_for_open_orders(shopify):
    shopify.get_fulfillment_orders.return_value = [
        {"id": 1, "status": "open", "line_items": [{"id": 10, "quantity": 2}]},
        {"id": 2, "status": "closed", "line_items": []},
    ]

    assert TrackingSync(shopify).apply(notice()) == "created"

    fulfillment_orders, tracking_info = shopify.create_fulfillment.call_args.args
    assert [fo["id"] for fo in fulfillment_orders] == [1]
    assert tracking_info["number"] == "YT123456789"


def test_updates_existing_fulfillment(shopify):
    shopify.get_order.return_value = {
        "id": 5550001234567,
        "fulfillments": [{"id": 90, "status": "cancelled"}, {"id": 91, "status": "success"}],
    }

    assert TrackingSync(shopify).apply(notice()) == "updated"

    shopify.update_fulfillment_tracking.assert_called_once()
    assert shopify.update_fulfillment_tracking.call_args.args[0] == 91
    shopify.create_fulfillment.assert_not_called()


def test_nothing_to_fulfill(shopify):
    shopify.get_fulfillment_orders.return_value = [{"id": 1, "status": "closed"}]

    assert TrackingSync(shopify).apply(notice()) == "no_open_fulfillment_orders"
    shopify.create_fulfillment.assert_not_called()


def test_unknown_order(shopify):
    shopify.get_order.return_value = None

    with pytest.raises(ValidationError):
        TrackingSync(shopify).apply(notice())


def test_sn_without_order_id(shopify):
    with pytest.raises(ValidationError):
        TrackingSync(shopify).apply(parse_shipping_notice({"third_party_order_sn": "abc"}))

    shopify.get_order.assert_not_called()


def test_numeric_tracking_number_is_accepted(shopify):
    parsed = parse_shipping_notice({
        "third_party_order_sn": "5550001234567",
        "express": {"express_number": 1234567890, "express_company_name": "YunExpress"},
    })

    assert parsed.express.express_number == "1234567890"
    assert TrackingSync(shopify).tracking_info(parsed)["number"] == "1234567890"
