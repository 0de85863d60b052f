"""
Wooacry bridge - Shopify orders to Wooacry print-on-demand manufacturing.
"""

from .errors import (
    BridgeError,
    ConfigurationError,
    NoQuotesError,
    OrderInProgressError,
    UpstreamBusinessError,
    UpstreamProtocolError,
    UpstreamTimeoutError,
    ValidationError,
)
from .pipeline import OrderPipeline
from .signer import Signer
from .wooacry_client import WooacryClient

__all__ = [
    "BridgeError",
    "ConfigurationError",
    "NoQuotesError",
    "OrderInProgressError",
    "UpstreamBusinessError",
    "UpstreamProtocolError",
    "UpstreamTimeoutError",
    "ValidationError",
    "OrderPipeline",
    "Signer",
    "WooacryClient",
]
