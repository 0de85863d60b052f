"""
Order pipeline: Shopify order in, Wooacry manufacturing order out.

    ledger check -> extract items -> (skip) -> address + tax gate
        -> preorder -> cheapest shipping -> create order -> ledger record

Validation happens before any call to Wooacry. Nothing here retries a
partner call; Shopify redelivers the webhook and the ledger check makes that
safe.
"""
import hashlib
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .address import address_from_order, as_string, normalize_address
from .errors import (
    BridgeError,
    NoQuotesError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from .items import extract_items
from .ledger import Ledger, OrderLocks
from .models import (
    PartnerOrderRecord,
    PipelineOutcome,
    PipelineResult,
    PipelineState,
    ShopifyOrder,
)
from .shipping import select_cheapest
from .wooacry_client import WooacryClient, is_success

logger = logging.getLogger(__name__)

STATUS_CREATED = "created"
STATUS_QUOTE_FAILED = "failed:quote"
STATUS_ORDER_FAILED = "failed:order"
# create_order was sent but no answer came back
STATUS_SUBMIT_UNKNOWN = "submit_unknown"


def parse_order(payload: Union[ShopifyOrder, Dict[str, Any]]) -> ShopifyOrder:
    """Validate a raw webhook payload into a ShopifyOrder."""
    if isinstance(payload, ShopifyOrder):
        return payload
    if not isinstance(payload, dict):
        raise ValidationError("Invalid Shopify order webhook payload")
    try:
        return ShopifyOrder.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid Shopify order webhook payload",
            details=json.loads(e.json(include_url=False)),
        )


def resolve_buyer_identity(order: ShopifyOrder) -> str:
    """
    The third_party_user sent to Wooacry for this order.

    The buyer's email when Shopify has one, otherwise a guest id derived from
    the order id so two guest orders never share an identity.
    """
    customer_email = (order.customer or {}).get("email")
    for candidate in (order.email, order.contact_email, customer_email):
        email = as_string(candidate).lower()
        if email:
            return email

    digest = hashlib.md5(order.id.encode("utf-8")).hexdigest()
    return f"guest-{digest[:12]}"


def order_created_at(order: ShopifyOrder, clock: Callable[[], float] = time.time) -> int:
    """Order creation time as epoch seconds."""
    created_at = as_string(order.created_at) or as_string(order.processed_at)
    if not created_at:
        return int(clock())
    try:
        return int(datetime.fromisoformat(created_at.replace("Z", "+00:00")).timestamp())
    except ValueError:
        raise ValidationError(f"Invalid created_at on order {order.id}: {created_at!r}")


class OrderPipeline:
    """Drives one Shopify order through the Wooacry order protocol."""

    def __init__(
        self,
        wooacry: WooacryClient,
        ledger: Ledger,
        locks: Optional[OrderLocks] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.wooacry = wooacry
        self.ledger = ledger
        self.locks = locks or OrderLocks()
        self.clock = clock

    def process(self, payload: Union[ShopifyOrder, Dict[str, Any]]) -> PipelineResult:
        """
        Process one orders/create delivery.

        Returns a PipelineResult for created, already-processed, skipped and
        duplicate outcomes. Raises a BridgeError for everything else.
        """
        order = parse_order(payload)
        logger.info("Processing Shopify order %s (%s)", order.id, order.name or "-")

        with self.locks.hold(order.id):
            return self._process_locked(order)

    def _process_locked(self, order: ShopifyOrder) -> PipelineResult:
        state = PipelineState.NEW
        third_party_user = resolve_buyer_identity(order)

        try:
            existing = self.ledger.get(order.id)
            if existing and existing.is_recorded:
                logger.info(
                    "Wooacry order already created for Shopify order %s: %s",
                    order.id, existing.partner_order_id
                )
                return PipelineResult(
                    outcome=PipelineOutcome.ALREADY_PROCESSED,
                    order_id=order.id,
                    partner_order_id=existing.partner_order_id,
                    third_party_user=existing.third_party_user or None,
                )

            if existing and existing.status == STATUS_SUBMIT_UNKNOWN:
                recovered = self._recover_unknown_submission(order, existing)
                if recovered is not None:
                    return recovered

            items = extract_items(order.line_items)
            if not items:
                state = self._transition(order.id, state, PipelineState.SKIPPED)
                logger.info("No customize_no items on order %s, nothing to send to Wooacry", order.id)
                return PipelineResult(outcome=PipelineOutcome.SKIPPED, order_id=order.id)

            logger.info(
                "Wooacry items for order %s: %s",
                order.id, ", ".join(f"{i.customize_no}x{i.count}" for i in items)
            )

            address = normalize_address(address_from_order(order))
            created_at = order_created_at(order, self.clock)

            state = self._transition(order.id, state, PipelineState.QUOTING)
            try:
                preorder = self.wooacry.preorder(third_party_user, items, address)
                shipping_method_id = select_cheapest(preorder.quotes)
            except (NoQuotesError, UpstreamError):
                self._annotate(order.id, STATUS_QUOTE_FAILED, third_party_user)
                raise

            logger.info(
                "Order %s: %d shipping methods, chose %s",
                order.id, len(preorder.quotes), shipping_method_id
            )

            state = self._transition(order.id, state, PipelineState.ORDERING)
            try:
                created = self.wooacry.create_order(
                    third_party_order_sn=order.id,
                    third_party_order_created_at=created_at,
                    third_party_user=third_party_user,
                    shipping_method_id=shipping_method_id,
                    skus=items,
                    address=address,
                )
            except (UpstreamTimeoutError, UpstreamConnectionError):
                self._annotate(order.id, STATUS_SUBMIT_UNKNOWN, third_party_user)
                raise
            except UpstreamError:
                self._annotate(order.id, STATUS_ORDER_FAILED, third_party_user)
                raise

            result = self._record(order, created.order_sn, third_party_user)
            result.shipping_method_id = shipping_method_id
            result.items = items
            result.create_response = created.raw
            if result.outcome == PipelineOutcome.CREATED:
                self._transition(order.id, state, PipelineState.RECORDED)
            return result

        except BridgeError as e:
            self._transition(order.id, state, PipelineState.FAILED)
            logger.error(
                "Order %s failed while %s: %s: %s",
                order.id, state.value, e.error_type, str(e)[:500]
            )
            raise

    def _record(self, order: ShopifyOrder, order_sn: str, third_party_user: str) -> PipelineResult:
        """
        Write the Wooacry order_sn to the ledger.

        Another delivery may have recorded a result while this one was
        submitting; in that case the existing record is kept.
        """
        try:
            current = self.ledger.get(order.id)
            if current and current.is_recorded and current.partner_order_id != order_sn:
                logger.error(
                    "Duplicate Wooacry order for Shopify order %s: kept %s, new %s needs cancelling",
                    order.id, current.partner_order_id, order_sn
                )
                return PipelineResult(
                    outcome=PipelineOutcome.DUPLICATE,
                    order_id=order.id,
                    partner_order_id=current.partner_order_id,
                    duplicate_partner_order_id=order_sn,
                    third_party_user=third_party_user,
                )

            self.ledger.put(
                order.id,
                PartnerOrderRecord(
                    partner_order_id=order_sn,
                    status=STATUS_CREATED,
                    third_party_user=third_party_user,
                ),
            )
            recorded = True
        except BridgeError as e:
            # The Wooacry order exists; failing here would make Shopify
            # redeliver and create it again.
            logger.error(
                "Wooacry order %s created for Shopify order %s but the ledger write failed: %s",
                order_sn, order.id, e
            )
            recorded = False

        logger.info("Wooacry order %s created for Shopify order %s", order_sn, order.id)
        return PipelineResult(
            outcome=PipelineOutcome.CREATED,
            order_id=order.id,
            partner_order_id=order_sn,
            third_party_user=third_party_user,
            ledger_recorded=recorded,
        )

    def _recover_unknown_submission(
        self,
        order: ShopifyOrder,
        existing: PartnerOrderRecord,
    ) -> Optional[PipelineResult]:
        """
        A previous delivery lost the create_order response. Ask Wooacry
        whether the order exists before submitting again.
        """
        logger.warning("Order %s has an unconfirmed Wooacry submission, checking order/info", order.id)
        payload = self.wooacry.order_info(order.id)

        data = payload.get("data") if is_success(payload) else None
        order_sn = as_string(data.get("order_sn")) if isinstance(data, dict) else ""
        if not order_sn:
            logger.info("Wooacry has no order for %s, submitting again", order.id)
            return None

        third_party_user = existing.third_party_user or resolve_buyer_identity(order)
        self.ledger.put(
            order.id,
            PartnerOrderRecord(
                partner_order_id=order_sn,
                status=STATUS_CREATED,
                third_party_user=third_party_user,
            ),
        )
        logger.info("Recovered Wooacry order %s for Shopify order %s", order_sn, order.id)
        return PipelineResult(
            outcome=PipelineOutcome.ALREADY_PROCESSED,
            order_id=order.id,
            partner_order_id=order_sn,
            third_party_user=third_party_user,
        )

    def _annotate(self, order_id: str, status: str, third_party_user: str) -> None:
        """Best-effort failure marker. Never carries an order_sn."""
        try:
            self.ledger.put(order_id, PartnerOrderRecord(status=status, third_party_user=third_party_user))
        except BridgeError as e:
            logger.warning("Could not annotate order %s with status %s: %s", order_id, status, e)

    @staticmethod
    def _transition(order_id: str, current: PipelineState, new: PipelineState) -> PipelineState:
        logger.debug("Order %s: %s -> %s", order_id, current.value, new.value)
        return new
