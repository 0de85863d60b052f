"""
Request signing for the Wooacry open API.

Wooacry verifies every call with an MD5 digest over five newline-terminated
lines:

    reseller_flag
    timestamp
    version
    body
    secret

The body line must be byte-for-byte the JSON that goes on the wire, so callers
serialize once and pass the same string here and to the HTTP client.
"""
import hashlib
import time
from typing import Callable, Dict, Optional

from .errors import ConfigurationError


class Signer:
    """Builds the Sign header and the rest of the Wooacry common headers."""

    def __init__(
        self,
        reseller_flag: str,
        secret: str,
        version: str = "1",
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ConfigurationError("Wooacry secret is not configured; refusing to sign requests")
        if not reseller_flag:
            raise ConfigurationError("Wooacry reseller flag is not configured")

        self.reseller_flag = reseller_flag
        self.version = str(version)
        self._secret = secret
        self._clock = clock

    def timestamp(self) -> int:
        """Current time in whole seconds."""
        return int(self._clock())

    def sign(self, body: str, timestamp: int) -> str:
        """Return the lowercase hex MD5 signature for body at timestamp."""
        signature_string = (
            f"{self.reseller_flag}\n"
            f"{timestamp}\n"
            f"{self.version}\n"
            f"{body}\n"
            f"{self._secret}\n"
        )
        return hashlib.md5(signature_string.encode("utf-8")).hexdigest()

    def headers(self, body: str, timestamp: Optional[int] = None) -> Dict[str, str]:
        """
        Build the headers for one request.

        A fresh timestamp is taken for every call unless one is passed in;
        Wooacry rejects timestamps outside a few seconds of its own clock.
        """
        if timestamp is None:
            timestamp = self.timestamp()

        return {
            "Content-Type": "application/json",
            "Reseller-Flag": self.reseller_flag,
            "Timestamp": str(timestamp),
            "Version": self.version,
            "Sign": self.sign(body, timestamp),
        }
