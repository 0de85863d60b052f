"""
Shipping address normalization for Wooacry.

Wooacry wants exactly ten address fields. address2 and tax_number must be
present but may be empty, except that a handful of destination countries
require a tax number. Unknown country codes are rejected rather than replaced
with a default, since a wrong country silently produces wrong quotes.
"""
from typing import Any, Dict, Mapping, Optional

from .errors import ValidationError
from .models import NormalizedAddress, ShopifyOrder

TAX_REQUIRED_COUNTRIES = frozenset(["TR", "MX", "CL", "BR", "ZA", "KR", "AR"])

REQUIRED_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "country_code",
    "province",
    "city",
    "address1",
    "post_code",
)

# Normalized field -> keys accepted on input, first non-empty wins.
# Shopify uses "zip" and sometimes only fills "province_code".
FIELD_ALIASES = {
    "first_name": ("first_name",),
    "last_name": ("last_name",),
    "phone": ("phone",),
    "country_code": ("country_code",),
    "province": ("province", "province_code"),
    "city": ("city",),
    "address1": ("address1",),
    "address2": ("address2",),
    "post_code": ("post_code", "zip"),
    "tax_number": ("tax_number",),
}

WOOACRY_COUNTRY_CODES = frozenset("""
    AF AX AL DZ AS AD AO AI AQ AG AR AM AW AU AT
    AZ BS BH BD BB BY BE PW BZ BJ BM BT BO BQ BA
    BW BV BR IO BN BG BF BI KH CM CA CV KY CF TD
    CL CN CX CC CO KM CG CD CK CR HR CU CW CY CZ
    DK DJ DM DO EC EG SV GQ ER EE ET FK FO FJ FI
    FR GF PF TF GA GM GE DE GH GI GR GL GD GP GU
    GT GG GN GW GY HT HM HN HK HU IS IN ID IR IQ
    IE IM IL IT CI JM JP JE JO KZ KE KI KW KG LA
    LV LB LS LR LY LI LT LU MO MK MG MW MY MV ML
    MT MH MQ MR MU YT MX FM MD MC MN ME MS MA MZ
    MM NA NR NP NL NC NZ NI NE NG NU NF MP KP NO
    OM PK PS PA PG PY PE PH PN PL PT PR QA RE RO
    RU RW BL SH KN LC MF SX PM VC SM ST SA SN RS
    SC SL SG SK SI SB SO ZA GS KR SS ES LK SD SR
    SJ SZ SE CH SY TW TJ TZ TH TL TG TK TO TT TN
    TR TM TC TV UG UA AE GB US UM UY UZ VU VA VE
    VN VG VI WF EH WS YE ZM ZW
""".split())


def as_string(value: Any) -> str:
    """Coerce a loosely typed value to a trimmed string (None -> "")."""
    if value is None:
        return ""
    return str(value).strip()


def _pick(raw: Mapping[str, Any], keys) -> str:
    for key in keys:
        text = as_string(raw.get(key))
        if text:
            return text
    return ""


def require_tax_number(country_code: str, tax_number: Any) -> None:
    """Raise ValidationError if the destination needs a tax number and has none."""
    cc = as_string(country_code).upper()
    if cc in TAX_REQUIRED_COUNTRIES and not as_string(tax_number):
        raise ValidationError(f"tax_number is required for orders shipped to {cc}")


def normalize_address(raw: Optional[Mapping[str, Any]]) -> NormalizedAddress:
    """
    Convert a loose address mapping into Wooacry's ten-field shape.

    Accepts both Wooacry keys and Shopify keys, so normalizing an already
    normalized address gives the same result.

    Raises:
        ValidationError: missing object, empty required field, unknown
            country code or missing mandatory tax number.
    """
    if raw is None or not isinstance(raw, Mapping):
        raise ValidationError("Missing or invalid address: must be an object")

    values: Dict[str, str] = {
        field: _pick(raw, keys) for field, keys in FIELD_ALIASES.items()
    }
    values["country_code"] = values["country_code"].upper()

    missing = [field for field in REQUIRED_FIELDS if not values[field]]
    if missing:
        raise ValidationError(
            f"Address field missing or empty: {', '.join(missing)}",
            details={"missing_fields": missing},
        )

    if values["country_code"] not in WOOACRY_COUNTRY_CODES:
        raise ValidationError(
            f"Unsupported country_code: {values['country_code']}",
            details={"country_code": values["country_code"]},
        )

    require_tax_number(values["country_code"], values["tax_number"])

    return NormalizedAddress(**values)


def address_from_order(order: ShopifyOrder) -> Dict[str, Any]:
    """
    Pick the raw address to ship to from a Shopify order.

    Uses shipping_address, falling back to billing_address. Phone falls back
    to the order phone and then the billing phone, since Shopify often leaves
    the shipping phone empty.
    """
    ship = order.shipping_address or order.billing_address
    if not ship:
        raise ValidationError("Missing shipping_address on order")

    billing = order.billing_address or {}
    raw = dict(ship)
    raw["phone"] = _pick(ship, ("phone",)) or as_string(order.phone) or _pick(billing, ("phone",))
    return raw
