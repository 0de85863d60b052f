from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================
# Inbound Shopify order
# ============================================

class ShopifyLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None
    title: Optional[str] = None
    quantity: Any = None
    # Shopify sends either [{"name": ..., "value": ...}] or {"name": value}
    properties: Optional[Union[List[Any], Dict[str, Any]]] = None


class ShopifyOrder(BaseModel):
    """The subset of the orders/create webhook payload the bridge reads."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None
    processed_at: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    line_items: List[ShopifyLineItem] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_string(cls, value: Any) -> str:
        if value is None or str(value).strip() == "":
            raise ValueError("order id is required")
        return str(value).strip()

    @field_validator("line_items", mode="before")
    @classmethod
    def _null_line_items(cls, value: Any) -> Any:
        return value or []


# ============================================
# Wooacry request/response shapes
# ============================================

class CustomizationItem(BaseModel):
    """One Wooacry SKU line: a customize_no and how many to make."""
    customize_no: str = Field(min_length=1)
    count: int = Field(ge=1)


class NormalizedAddress(BaseModel):
    """Address in the exact ten-field shape Wooacry requires."""
    first_name: str
    last_name: str
    phone: str
    country_code: str
    province: str
    city: str
    address1: str
    address2: str = ""
    post_code: str
    tax_number: str = ""


class ShippingQuote(BaseModel):
    """A shipping method offered by a Wooacry preorder."""
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    name: Optional[str] = None
    postal_amount: Any = None
    tax_amount: Any = None
    tax_service_amount: Any = None


class PreorderResult(BaseModel):
    quotes: List[ShippingQuote]
    raw: Dict[str, Any] = Field(default_factory=dict)


class CreateOrderResult(BaseModel):
    order_sn: str
    raw: Dict[str, Any] = Field(default_factory=dict)


# ============================================
# Ledger + pipeline
# ============================================

class PartnerOrderRecord(BaseModel):
    """What the ledger keeps for one Shopify order."""
    partner_order_id: str = ""
    status: str = ""
    third_party_user: str = ""

    @property
    def is_recorded(self) -> bool:
        return bool(self.partner_order_id.strip())


class PipelineState(str, Enum):
    NEW = "new"
    SKIPPED = "skipped"
    QUOTING = "quoting"
    ORDERING = "ordering"
    RECORDED = "recorded"
    FAILED = "failed"


class PipelineOutcome(str, Enum):
    CREATED = "created"
    ALREADY_PROCESSED = "already_processed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


class PipelineResult(BaseModel):
    outcome: PipelineOutcome
    order_id: str
    partner_order_id: Optional[str] = None
    third_party_user: Optional[str] = None
    shipping_method_id: Optional[Union[int, str]] = None
    items: List[CustomizationItem] = Field(default_factory=list)
    create_response: Optional[Dict[str, Any]] = None
    duplicate_partner_order_id: Optional[str] = None
    ledger_recorded: bool = True

    def to_response(self) -> Dict[str, Any]:
        """Render the body returned to the webhook sender."""
        if self.outcome == PipelineOutcome.SKIPPED:
            return {"ok": True, "skipped": True, "order_id": self.order_id}

        if self.outcome == PipelineOutcome.ALREADY_PROCESSED:
            return {
                "ok": True,
                "already_created": True,
                "wooacry_order_sn": self.partner_order_id,
            }

        body: Dict[str, Any] = {
            "ok": True,
            "wooacry_order_sn": self.partner_order_id,
            "shipping_method_id": self.shipping_method_id,
            "third_party_user": self.third_party_user,
            "wooacry_create_response": self.create_response,
        }
        if self.outcome == PipelineOutcome.DUPLICATE:
            body["duplicate_wooacry_order_sn"] = self.duplicate_partner_order_id
        if not self.ledger_recorded:
            body["ledger_recorded"] = False
        return body


# ============================================
# Shipping notice webhook
# ============================================

class ExpressInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    express_number: Optional[str] = None
    express_company_name: Optional[str] = None
    express_company: Optional[str] = None
    shipping_status: Optional[Any] = None

    @field_validator("express_number", "express_company_name", "express_company", mode="before")
    @classmethod
    def _scalar_to_string(cls, value: Any) -> Any:
        # Tracking numbers sometimes arrive as JSON numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ShippingNotice(BaseModel):
    model_config = ConfigDict(extra="allow")

    third_party_order_sn: str
    express: ExpressInfo = Field(default_factory=ExpressInfo)

    @field_validator("third_party_order_sn", mode="before")
    @classmethod
    def _sn_to_string(cls, value: Any) -> str:
        if value is None or str(value).strip() == "":
            raise ValueError("third_party_order_sn is required")
        return str(value).strip()

    @field_validator("express", mode="before")
    @classmethod
    def _null_express(cls, value: Any) -> Any:
        return value or {}


# ============================================
# Admin request bodies
# ============================================

class PartnerOrderRequest(BaseModel):
    third_party_order_sn: str = Field(min_length=1)


class AddressChangeRequest(BaseModel):
    third_party_order_sn: str = Field(min_length=1)
    address: Dict[str, Any]


class CustomizeInfoRequest(BaseModel):
    customize_no: str = Field(min_length=1)
