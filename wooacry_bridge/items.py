"""
Find Wooacry customizations on Shopify line items.

A line item is a Wooacry product when it carries a ``customize_no`` property.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import ValidationError
from .models import CustomizationItem, ShopifyLineItem

logger = logging.getLogger(__name__)

CUSTOMIZE_PROPERTY = "customize_no"


def get_line_item_property(line_item: ShopifyLineItem, key: str) -> Optional[Any]:
    """Read a line item property from either the list or the mapping shape."""
    props = line_item.properties
    if not props:
        return None

    if isinstance(props, dict):
        return props.get(key)

    for prop in props:
        if not isinstance(prop, dict):
            continue
        name = prop.get("name")
        if name is not None and str(name) == key:
            return prop.get("value")
    return None


def _quantity(line_item: ShopifyLineItem) -> int:
    raw = line_item.quantity
    if raw is None or raw == "":
        return 1
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid quantity on line item {line_item.id}: {raw!r}")
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity on line item {line_item.id}: {raw!r}")
    if isinstance(raw, float) and raw != quantity:
        raise ValidationError(f"Invalid quantity on line item {line_item.id}: {raw!r}")
    return quantity


def extract_items(line_items: Iterable[ShopifyLineItem]) -> List[CustomizationItem]:
    """
    Collect Wooacry SKUs from line items.

    Quantities for the same customize_no are summed, first-seen order is kept.
    An empty list means there is nothing to manufacture.
    """
    counts: Dict[str, int] = {}

    for line_item in line_items:
        value = get_line_item_property(line_item, CUSTOMIZE_PROPERTY)
        customize_no = "" if value is None else str(value).strip()
        if not customize_no:
            continue

        quantity = _quantity(line_item)
        if quantity < 1:
            logger.info(
                "Ignoring line item %s (%s) with quantity %d",
                line_item.id, customize_no, quantity
            )
            continue

        counts[customize_no] = counts.get(customize_no, 0) + quantity

    return [
        CustomizationItem(customize_no=customize_no, count=count)
        for customize_no, count in counts.items()
    ]
