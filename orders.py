"""
Order Service
=============
Order creation: validate → resolve prices → persist exactly once.

This layer:
- Validates the full request against the strict schema
- Prices every line through the resolver (catalog is injected)
- Persists the priced order in ONE write, only after all lines resolve

This layer does NOT:
- Trust client prices
- Retry failed writes (no idempotency key, duplicate orders possible)
- Know about HTTP
"""

from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

import structlog
from prometheus_client import Counter, Histogram

from errors import OrderingError, StorageError
from pricing import PricedOrder, resolve_order
from schemas import CreateOrderRequest, parse


# Structured logging
logger = structlog.get_logger(__name__)


# ============================================================================
# METRICS
# ============================================================================

orders_created = Counter(
    'orders_created_total',
    'Orders persisted'
)
order_failures = Counter(
    'order_failures_total',
    'Order creation failures',
    ['kind']
)
order_value = Histogram(
    'order_value_reais',
    'Order value distribution'
)


INITIAL_STATUS = "pendente"


# ============================================================================
# ORDER SERVICE
# ============================================================================

class OrderService:
    """
    Creates and lists orders.

    Dependencies (injected):
    - catalog: object with get_product(id) and get_addons(ids)
    - store: object with create_order(record) and list_orders()
    """

    def __init__(self, catalog, store):
        self.catalog = catalog
        self.store = store

    async def create_order(self, request: Any) -> Dict[str, Any]:
        """
        Create a priced order.

        Args:
            request: CreateOrderRequest or raw mapping

        Returns:
            Stored order plus "priceDetails" breakdown

        Raises:
            ValidationError: Malformed request
            NotFoundError: Unknown product, size or add-on
            StorageError: Order could not be committed
        """
        request_id = str(uuid.uuid4())

        try:
            data = parse(CreateOrderRequest, request)
            priced = await resolve_order(
                data.lines,
                self.catalog.get_product,
                self.catalog.get_addons
            )
        except OrderingError as e:
            order_failures.labels(kind=e.kind).inc()
            logger.warning(
                "order_rejected",
                request_id=request_id,
                error=e.kind,
                reason=e.reason
            )
            raise

        record = self._build_record(data, priced)

        try:
            stored = await self.store.create_order(record)
        except StorageError as e:
            order_failures.labels(kind=e.kind).inc()
            logger.error("order_store_failed", request_id=request_id, reason=e.reason)
            raise
        except Exception as e:
            order_failures.labels(kind=StorageError.kind).inc()
            logger.error("order_store_failed", request_id=request_id, reason=str(e))
            raise StorageError("create order", str(e)) from e

        orders_created.inc()
        order_value.observe(float(priced.order_total))

        logger.info(
            "order_created",
            request_id=request_id,
            order_id=stored.get("id"),
            lines=len(priced.lines),
            total=float(priced.order_total)
        )

        return {**stored, "priceDetails": priced.to_dict()}

    async def list_orders(self) -> List[Dict[str, Any]]:
        """All orders, oldest first."""
        return await self.store.list_orders()

    def _build_record(
        self,
        data: CreateOrderRequest,
        priced: PricedOrder
    ) -> Dict[str, Any]:
        """Order row handed to the store (prices from the resolver only)."""
        return {
            "customer_name": data.customer_name,
            "phone": data.phone,
            "address": data.address,
            "payment_method": data.payment_method,
            "status": INITIAL_STATUS,
            "order_total": float(priced.order_total),
            "lines": [
                {
                    "product_id": line.product_id,
                    "size_label": line.size_label,
                    "add_on_ids": list(line.add_on_ids),
                    "price": float(line.total_price)
                }
                for line in priced.lines
            ]
        }


# ============================================================================
# IN-MEMORY ORDER STORE
# ============================================================================

class InMemoryOrderStore:
    """
    Order store kept in process memory.

    Creation is atomic: the full order is built before it becomes visible.
    """

    def __init__(self):
        self._orders: List[Dict[str, Any]] = []
        self._next_id = 1
        self.fail_next: Optional[Exception] = None
        self.create_calls = 0

    async def create_order(self, record: Dict[str, Any]) -> Dict[str, Any]:
        self.create_calls += 1

        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

        order = {
            **deepcopy(record),
            "id": self._next_id,
            "created_at": datetime.utcnow().isoformat()
        }
        self._orders.append(order)
        self._next_id += 1

        return deepcopy(order)

    async def list_orders(self) -> List[Dict[str, Any]]:
        return [deepcopy(order) for order in self._orders]
