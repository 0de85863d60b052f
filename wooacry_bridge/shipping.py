"""
Shipping method selection.

Picks the cheapest Wooacry shipping method. Ties go to the smallest id (string
comparison) so the same quote list always yields the same choice.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence, Tuple, Union

from .errors import NoQuotesError
from .models import ShippingQuote

_UNPRICED = Decimal("Infinity")


def _amount(value: Any) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidOperation
    result = Decimal(str(value).strip())
    if not result.is_finite():
        raise InvalidOperation
    return result


def quote_total(quote: ShippingQuote) -> Decimal:
    """
    Total cost of a quote.

    postal + tax + tax service when the quote lists any tax component,
    postal alone otherwise. Quotes whose amounts cannot be parsed cost
    Infinity so they sort last.
    """
    try:
        total = _amount(quote.postal_amount)
        for component in (quote.tax_amount, quote.tax_service_amount):
            if component is not None and component != "":
                total += _amount(component)
        return total
    except InvalidOperation:
        return _UNPRICED


def _sort_key(quote: ShippingQuote) -> Tuple[Decimal, str]:
    return quote_total(quote), str(quote.id)


def select_cheapest(quotes: Iterable[ShippingQuote]) -> Union[int, str]:
    """Return the id of the cheapest quote."""
    ranked: Sequence[ShippingQuote] = sorted(quotes, key=_sort_key)
    if not ranked:
        raise NoQuotesError("Wooacry preorder returned no shipping_methods")
    return ranked[0].id
