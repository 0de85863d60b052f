"""
Idempotency ledger.

Remembers which Shopify orders already have a Wooacry order, so a redelivered
orders/create webhook does not manufacture the same order twice. Production
keeps the record as metafields on the Shopify order itself; tests and local
runs use the in-memory variant.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from .errors import OrderInProgressError
from .models import PartnerOrderRecord
from .shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

LEDGER_NAMESPACE = "wooacry"

# Record field -> metafield key
METAFIELD_KEYS = {
    "partner_order_id": "order_sn",
    "status": "status",
    "third_party_user": "third_party_user",
}


class Ledger(ABC):
    """Key/value store of PartnerOrderRecords keyed by Shopify order id."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[PartnerOrderRecord]:
        """Return the record for order_id, or None if nothing was written."""
        pass

    @abstractmethod
    def put(self, order_id: str, record: PartnerOrderRecord) -> None:
        """Create or update the record for order_id."""
        pass


class InMemoryLedger(Ledger):
    def __init__(self):
        self._records: Dict[str, PartnerOrderRecord] = {}
        self._lock = threading.Lock()

    def get(self, order_id: str) -> Optional[PartnerOrderRecord]:
        with self._lock:
            record = self._records.get(str(order_id))
            return record.model_copy() if record else None

    def put(self, order_id: str, record: PartnerOrderRecord) -> None:
        with self._lock:
            self._records[str(order_id)] = record.model_copy()

    def __len__(self) -> int:
        return len(self._records)


class ShopifyMetafieldLedger(Ledger):
    """
    Ledger backed by order metafields in the ``wooacry`` namespace.

    Each record field is its own metafield (order_sn, status,
    third_party_user). Writes update an existing metafield in place and only
    create one when the key is missing, so the record stays unique per order.
    """

    def __init__(self, shopify: ShopifyClient, namespace: str = LEDGER_NAMESPACE):
        self.shopify = shopify
        self.namespace = namespace

    def _metafields_by_key(self, order_id: str) -> Dict[str, dict]:
        metafields = self.shopify.get_order_metafields(order_id, namespace=self.namespace)
        return {m.get("key"): m for m in metafields}

    def get(self, order_id: str) -> Optional[PartnerOrderRecord]:
        by_key = self._metafields_by_key(order_id)
        if not any(key in by_key for key in METAFIELD_KEYS.values()):
            return None

        values = {
            field: str((by_key.get(key) or {}).get("value") or "")
            for field, key in METAFIELD_KEYS.items()
        }
        return PartnerOrderRecord(**values)

    def put(self, order_id: str, record: PartnerOrderRecord) -> None:
        by_key = self._metafields_by_key(order_id)

        for field, key in METAFIELD_KEYS.items():
            value = getattr(record, field)
            if not value:
                # Shopify rejects empty metafield values
                continue

            existing = by_key.get(key)
            if existing is None:
                self.shopify.create_order_metafield(order_id, self.namespace, key, value)
            elif str(existing.get("value") or "") != value:
                self.shopify.update_metafield(existing["id"], value)

        logger.debug("Ledger write for order %s: status=%s", order_id, record.status)


class OrderLocks:
    """
    Per-order mutex for this process.

    Serializes concurrent deliveries of the same order so the ledger
    lookup and the final write cannot interleave with a second run.
    """

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(order_id, threading.Lock())
            self._users[order_id] = self._users.get(order_id, 0) + 1

        acquired = lock.acquire(timeout=self.timeout)
        try:
            if not acquired:
                raise OrderInProgressError(order_id)
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                self._users[order_id] -= 1
                if self._users[order_id] == 0:
                    del self._users[order_id]
                    del self._locks[order_id]
