import pytest

from wooacry_bridge.errors import ValidationError
from wooacry_bridge.items import extract_items, get_line_item_property
from wooacry_bridge.models import CustomizationItem, ShopifyLineItem


def line(quantity=1, properties=None, id=1):
    return ShopifyLineItem.model_validate({"id": id, "quantity": quantity, "properties": properties})


def test_list_shaped_properties():
    items = extract_items([line(2, [{"name": "_color", "value": "red"}, {"name": "customize_no", "value": "ABC1"}])])
    assert items == [CustomizationItem(customize_no="ABC1", count=2)]


def test_mapping_shaped_properties():
    items = extract_items([line(3, {"customize_no": "ABC1"})])
    assert items == [CustomizationItem(customize_no="ABC1", count=3)]


def test_both_shapes_in_one_order_are_aggregated():
    items = extract_items([
        line(1, [{"name": "customize_no", "value": "ABC1"}], id=1),
        line(2, {"customize_no": "XYZ9"}, id=2),
        line(4, {"customize_no": " ABC1 "}, id=3),
    ])
    assert items == [
        CustomizationItem(customize_no="ABC1", count=5),
        CustomizationItem(customize_no="XYZ9", count=2),
    ]


def test_lines_without_property_are_ignored():
    items = extract_items([
        line(1, None),
        line(1, []),
        line(1, {"engraving": "hi"}),
        line(1, [{"name": "customize_no", "value": "   "}]),
    ])
    assert items == []


def test_numeric_customize_no_is_stringified():
    assert extract_items([line(1, {"customize_no": 12345})]) == [
        CustomizationItem(customize_no="12345", count=1)
    ]


def test_missing_quantity_counts_as_one():
    assert extract_items([line(None, {"customize_no": "ABC1"})])[0].count == 1


def test_string_quantity():
    assert extract_items([line("2", {"customize_no": "ABC1"})])[0].count == 2


def test_zero_quantity_line_is_skipped():
    items = extract_items([line(0, {"customize_no": "ABC1"}), line(1, {"customize_no": "XYZ9"})])
    assert items == [CustomizationItem(customize_no="XYZ9", count=1)]


@pytest.mark.parametrize("quantity", ["two", 1.5, True, [1]])
def test_invalid_quantity_raises(quantity):
    with pytest.raises(ValidationError):
        extract_items([line(quantity, {"customize_no": "ABC1"})])


def test_get_line_item_property_missing_key():
    assert get_line_item_property(line(1, [{"name": "a", "value": "b"}]), "customize_no") is None
    assert get_line_item_property(line(1, {"a": "b"}), "customize_no") is None


def test_malformed_property_entries_are_skipped():
    items = extract_items([
        line(1, [None, "gift wrap", {"name": 5, "value": "x"}, {"name": "customize_no", "value": "ABC1"}]),
    ])
    assert items == [CustomizationItem(customize_no="ABC1", count=1)]
