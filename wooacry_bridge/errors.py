"""
Error taxonomy for the bridge.

Every error carries the HTTP status it maps to, so the web layer can turn any
BridgeError into a JSON response with one handler.
"""
from typing import Any, Optional


class BridgeError(Exception):
    """Base class for all errors raised by the bridge."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def error_type(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.message


class ValidationError(BridgeError):
    """Bad or missing input. Raised before any partner call is made."""

    status_code = 400


class ConfigurationError(BridgeError):
    status_code = 500


class OrderInProgressError(BridgeError):
    """Another delivery of the same order is still being processed."""

    status_code = 409

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} is already being processed")
        self.order_id = order_id


class NoQuotesError(BridgeError):
    """Wooacry returned no shipping methods."""

    status_code = 500


class UpstreamError(BridgeError):
    """Base for failures talking to an upstream service."""

    status_code = 502


class UpstreamProtocolError(UpstreamError):
    """Upstream answered with something that is not JSON."""

    status_code = 502

    def __init__(self, message: str, http_status: Optional[int] = None, body_preview: str = ""):
        super().__init__(message, details={"http_status": http_status, "body_preview": body_preview})
        self.http_status = http_status
        self.body_preview = body_preview


class UpstreamBusinessError(UpstreamError):
    """Upstream JSON parsed but signalled failure through its status code."""

    status_code = 500

    def __init__(self, message: str, response: Optional[Any] = None):
        super().__init__(message, details=response)
        self.response = response


class UpstreamTimeoutError(UpstreamError):
    """Upstream did not answer in time. Safe to retry by redelivery."""

    status_code = 504


class UpstreamConnectionError(UpstreamError):
    status_code = 502


class ShopifyAPIError(UpstreamError):
    """Shopify Admin API returned a non-2xx response."""

    status_code = 502

    def __init__(self, message: str, http_status: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.http_status = http_status
