"""
Wooacry bridge - FastAPI application.

Receives Shopify orders/create webhooks and turns orders carrying Wooacry
customizations into Wooacry manufacturing orders. Also receives Wooacry
shipping notices and copies tracking onto the Shopify order, and exposes a
few admin endpoints for managing Wooacry orders by hand.
"""
import base64
import hashlib
import hmac
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .errors import BridgeError, ConfigurationError, ValidationError
from .ledger import InMemoryLedger, Ledger, OrderLocks, ShopifyMetafieldLedger
from .models import AddressChangeRequest, CustomizeInfoRequest, PartnerOrderRequest
from .pipeline import OrderPipeline
from .shopify_client import ShopifyClient
from .tracking import TrackingSync, ack, parse_shipping_notice
from .wooacry_client import WooacryClient, is_success

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure logging with file and console handlers."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console handler (always)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if configured)
    if settings.LOG_PATH:
        try:
            log_path = Path(settings.LOG_PATH)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_logger.info("Logging to file: %s", log_path)
        except OSError as e:
            root_logger.error("Failed to set up file logging: %s", e)

    return logging.getLogger(__name__)


def verify_shopify_webhook(data: bytes, hmac_header: str, secret: str) -> bool:
    """Verify that the webhook request is from Shopify"""
    if not hmac_header or not secret:
        return False

    computed_hmac = base64.b64encode(
        hmac.new(
            secret.encode('utf-8'),
            data,
            hashlib.sha256
        ).digest()
    ).decode('utf-8')

    return hmac.compare_digest(computed_hmac, hmac_header)


def error_response(error: BridgeError) -> JSONResponse:
    body: Dict[str, Any] = {
        "ok": False,
        "error": str(error),
        "error_type": error.error_type,
    }
    if error.details is not None:
        body["details"] = error.details
    return JSONResponse(status_code=error.status_code, content=body)


def build_ledger(settings: Settings, shopify: Optional[ShopifyClient]) -> Ledger:
    if settings.LEDGER_BACKEND.lower() == "memory":
        logger.warning("Using in-memory ledger: Wooacry order numbers are lost on restart")
        return InMemoryLedger()
    if shopify is None:
        raise ConfigurationError("Shopify ledger needs SHOPIFY_ADMIN_API_TOKEN")
    return ShopifyMetafieldLedger(shopify)


def create_app(
    settings: Optional[Settings] = None,
    *,
    wooacry: Optional[WooacryClient] = None,
    shopify: Optional[ShopifyClient] = None,
    ledger: Optional[Ledger] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Refuses to start when required configuration (above all the Wooacry
    secret) is missing. Collaborators can be passed in, which is how the
    tests swap in fakes.
    """
    settings = settings or get_settings()

    errors = settings.validate_required_config()
    if errors:
        raise ConfigurationError("Invalid configuration: " + "; ".join(errors))

    if shopify is None and settings.is_shopify_configured:
        shopify = ShopifyClient(settings)
    if wooacry is None:
        wooacry = WooacryClient.from_settings(settings)
    if ledger is None:
        ledger = build_ledger(settings, shopify)

    pipeline = OrderPipeline(
        wooacry=wooacry,
        ledger=ledger,
        locks=OrderLocks(timeout=settings.ORDER_LOCK_TIMEOUT_SECONDS),
    )
    tracking = TrackingSync(shopify, settings.TRACKING_URL_TEMPLATE) if shopify else None

    app = FastAPI(
        title="Wooacry Bridge",
        description="Sends Shopify orders with Wooacry customizations to Wooacry for manufacturing",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.ledger = ledger

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        return error_response(exc)

    def require_admin(x_admin_token: Optional[str] = Header(None)):
        if not settings.ADMIN_API_TOKEN:
            raise HTTPException(status_code=503, detail="Admin API disabled: ADMIN_API_TOKEN not set")
        if not x_admin_token or not hmac.compare_digest(
            x_admin_token.encode('utf-8'), settings.ADMIN_API_TOKEN.encode('utf-8')
        ):
            raise HTTPException(status_code=401, detail="Invalid admin token")

    def require_shopify() -> ShopifyClient:
        if shopify is None:
            raise HTTPException(status_code=503, detail="Shopify is not configured")
        return shopify

    # ============================================
    # Service endpoints
    # ============================================

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok", "timestamp": datetime.now().isoformat()}

    @app.get("/config")
    async def config_summary():
        """Current configuration (without sensitive data)"""
        return settings.get_config_summary()

    # ============================================
    # Shopify webhooks
    # ============================================

    @app.post("/webhooks/orders/create")
    async def webhook_order_created(
        request: Request,
        x_shopify_hmac_sha256: Optional[str] = Header(None),
        x_shopify_topic: Optional[str] = Header(None),
        x_shopify_shop_domain: Optional[str] = Header(None),
    ):
        """
        Webhook endpoint for Shopify order creation events
        """
        body = await request.body()

        if settings.SHOPIFY_WEBHOOK_SECRET:
            if not verify_shopify_webhook(body, x_shopify_hmac_sha256 or "", settings.SHOPIFY_WEBHOOK_SECRET):
                logger.warning("Rejected orders/create webhook with invalid signature from %s", x_shopify_shop_domain)
                raise HTTPException(status_code=401, detail="Invalid webhook signature")

        try:
            payload = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Invalid JSON payload")

        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError("Invalid Shopify order webhook payload")

        logger.info(
            "Received webhook: %s from %s, order %s",
            x_shopify_topic, x_shopify_shop_domain, payload.get("id")
        )

        result = await run_in_threadpool(pipeline.process, payload)
        return result.to_response()

    @app.post("/orders/{order_id}/submit")
    def submit_order(
        order_id: str,
        _: None = Depends(require_admin),
        client: ShopifyClient = Depends(require_shopify),
    ):
        """
        Fetch an order from Shopify and run it through the pipeline by hand
        """
        order = client.get_order(order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")

        result = pipeline.process(order)
        return result.to_response()

    # ============================================
    # Wooacry webhooks
    # ============================================

    @app.post("/webhooks/wooacry/shipping")
    async def webhook_wooacry_shipping(
        request: Request,
        x_wooacry_secret: Optional[str] = Header(None),
        x_webhook_secret: Optional[str] = Header(None),
    ):
        """
        Shipping notice from Wooacry. Always acknowledged once authenticated.
        """
        if settings.WOOACRY_WEBHOOK_SECRET:
            provided = x_wooacry_secret or x_webhook_secret or request.query_params.get("secret") or ""
            if not hmac.compare_digest(str(provided).encode('utf-8'), settings.WOOACRY_WEBHOOK_SECRET.encode('utf-8')):
                raise HTTPException(status_code=401, detail="Unauthorized")

        body = await request.body()
        try:
            payload = json.loads(body.decode('utf-8')) if body else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.error("Shipping notice is not valid JSON: %s", body[:500])
            return ack()

        if tracking is None:
            logger.error("Shipping notice for %s ignored: Shopify is not configured",
                         payload.get("third_party_order_sn") if isinstance(payload, dict) else None)
            return ack()

        try:
            notice = parse_shipping_notice(payload)
            outcome = await run_in_threadpool(tracking.apply, notice)
            logger.info("Shipping notice for %s: %s", notice.third_party_order_sn, outcome)
        except BridgeError as e:
            logger.error("Shipping notice failed: %s: %s", e.error_type, e)
        except Exception:
            logger.exception("Unexpected error applying shipping notice")

        return ack()

    # ============================================
    # Admin: Wooacry order management
    # ============================================

    def partner_response(request_body: Dict[str, Any], response: Any) -> Dict[str, Any]:
        return {"ok": is_success(response), "request": request_body, "response": response}

    @app.post("/wooacry/orders/info", dependencies=[Depends(require_admin)])
    def wooacry_order_info(body: PartnerOrderRequest):
        """Wooacry's view of an order"""
        return partner_response(body.model_dump(), wooacry.order_info(body.third_party_order_sn))

    @app.post("/wooacry/orders/cancel", dependencies=[Depends(require_admin)])
    def wooacry_order_cancel(body: PartnerOrderRequest):
        """Cancel a Wooacry order"""
        logger.info("Cancelling Wooacry order for %s", body.third_party_order_sn)
        return partner_response(body.model_dump(), wooacry.cancel_order(body.third_party_order_sn))

    @app.post("/wooacry/orders/address", dependencies=[Depends(require_admin)])
    def wooacry_address_change(body: AddressChangeRequest):
        """Change the shipping address of a Wooacry order"""
        logger.info("Changing Wooacry shipping address for %s", body.third_party_order_sn)
        response = wooacry.change_address(body.third_party_order_sn, body.address)
        return partner_response({"third_party_order_sn": body.third_party_order_sn}, response)

    @app.post("/wooacry/customize/info", dependencies=[Depends(require_admin)])
    def wooacry_customize_info(body: CustomizeInfoRequest):
        """Look up a customization by customize_no"""
        return partner_response(body.model_dump(), wooacry.customize_info(body.customize_no))

    return app


def app_factory() -> FastAPI:
    """Entry point for uvicorn --factory."""
    settings = get_settings()
    setup_logging(settings)
    logger.info("Wooacry bridge starting, config: %s", settings.get_config_summary())
    return create_app(settings)
