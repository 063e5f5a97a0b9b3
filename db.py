"""
Database Module
===============
Supabase-backed catalog and order store.

- Catalog reads for the pricing resolver (product by id, add-ons by ids)
- Catalog writes for catalog management
- Atomic order creation through ONE Postgres function call
- Read/write timeouts and a circuit breaker

No automatic write retries: a retried order insert could duplicate orders.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError
from prometheus_client import Counter, Gauge
from supabase import Client, create_client

from catalog import AddOn, InMemoryCatalog, Product
from config import Config, get_config
from errors import StorageError
from orders import InMemoryOrderStore


logger = logging.getLogger(__name__)


# Configuration defaults
CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_TIMEOUT = 30  # seconds
READ_TIMEOUT = 5.0  # seconds
WRITE_TIMEOUT = 10.0  # seconds

PRODUCTS_TABLE = "products"
ADDONS_TABLE = "addons"
ORDERS_TABLE = "orders"
CREATE_ORDER_FUNCTION = "create_order"


# ============================================================================
# METRICS
# ============================================================================

store_operations = Counter(
    'store_operations_total',
    'Store operations',
    ['operation', 'result']
)
store_circuit_open = Gauge(
    'store_circuit_open',
    'Whether the store circuit breaker is open'
)


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"    # Normal operation
    OPEN = "open"        # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """Circuit breaker for database operations."""

    def __init__(
        self,
        threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        timeout: int = CIRCUIT_BREAKER_TIMEOUT
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.success_count = 0

    def record_success(self):
        """Record successful operation."""
        self.failure_count = 0

        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= 2:
                self.state = CircuitState.CLOSED
                self.success_count = 0
                store_circuit_open.set(0)
                logger.info("Circuit breaker closed (recovered)")

    def record_failure(self):
        """Record failed operation."""
        self.failure_count += 1
        self.last_failure_time = datetime.utcnow()

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.threshold:
            self.state = CircuitState.OPEN
            store_circuit_open.set(1)
            logger.error(
                f"Circuit breaker opened "
                f"(failures: {self.failure_count})"
            )

    def can_execute(self) -> bool:
        """Check if operation can execute."""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            # Check if timeout expired
            if self.last_failure_time:
                elapsed = (datetime.utcnow() - self.last_failure_time).total_seconds()
                if elapsed >= self.timeout:
                    self.state = CircuitState.HALF_OPEN
                    self.success_count = 0
                    logger.info("Circuit breaker half-open (testing)")
                    return True
            return False

        # HALF_OPEN - allow test requests
        return True

    def get_state(self) -> str:
        """Get current state."""
        return self.state.value


# ============================================================================
# SUPABASE STORE
# ============================================================================

class SupabaseStore:
    """
    Catalog and order store on Supabase.

    Serves as catalog store (CatalogService), resolver lookups
    (get_product, get_addons) and order store (OrderService).
    """

    def __init__(
        self,
        client: Client,
        read_timeout: float = READ_TIMEOUT,
        write_timeout: float = WRITE_TIMEOUT,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self.client = client
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        logger.info("SupabaseStore initialized")

    @classmethod
    def from_config(cls, config: Config) -> "SupabaseStore":
        """Build a store (and its client) from validated configuration."""
        if config.supabase is None:
            raise StorageError("connect", "Supabase is not configured")

        client = create_client(config.supabase.url, config.supabase.key)
        logger.info("Supabase client initialized")

        return cls(
            client,
            read_timeout=config.store.read_timeout,
            write_timeout=config.store.write_timeout,
            circuit_breaker=CircuitBreaker(
                threshold=config.store.breaker_threshold,
                timeout=config.store.breaker_timeout
            )
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    async def _execute(
        self,
        operation: str,
        query: Callable[[], Any],
        timeout: float
    ) -> Any:
        """
        Run a blocking supabase query in the default executor.

        Raises:
            StorageError: Circuit open, timeout, or query failure
        """
        if not self.circuit_breaker.can_execute():
            store_operations.labels(operation=operation, result='rejected').inc()
            raise StorageError(operation, "circuit breaker open")

        loop = asyncio.get_running_loop()

        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, query),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            self.circuit_breaker.record_failure()
            store_operations.labels(operation=operation, result='timeout').inc()
            logger.error(f"Store {operation} timeout after {timeout}s")
            raise StorageError(operation, f"timed out after {timeout}s")
        except APIError as e:
            self.circuit_breaker.record_failure()
            store_operations.labels(operation=operation, result='error').inc()
            logger.error(f"Store {operation} API error: {e.message}")
            raise StorageError(operation, str(e.message)) from e
        except Exception as e:
            self.circuit_breaker.record_failure()
            store_operations.labels(operation=operation, result='error').inc()
            logger.error(f"Store {operation} error: {str(e)}")
            raise StorageError(operation, str(e)) from e

        self.circuit_breaker.record_success()
        store_operations.labels(operation=operation, result='ok').inc()

        return result.data

    def _decode(self, operation: str, decoder: Callable[[Dict[str, Any]], Any], row):
        try:
            return decoder(row)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed row in {operation}: {row!r}")
            raise StorageError(operation, f"malformed row: {e}") from e

    # ========================================================================
    # CATALOG READS
    # ========================================================================

    async def get_product(self, product_id: int) -> Optional[Product]:
        rows = await self._execute(
            "get product",
            lambda: self.client
                .table(PRODUCTS_TABLE)
                .select("*")
                .eq("id", product_id)
                .execute(),
            self.read_timeout
        )

        if not rows:
            return None

        return self._decode("get product", Product.from_record, rows[0])

    async def get_addons(self, addon_ids: Iterable[int]) -> List[AddOn]:
        """Batch lookup in one query; missing ids are absent from the result."""
        ids = list(addon_ids)
        if not ids:
            return []

        rows = await self._execute(
            "get addons",
            lambda: self.client
                .table(ADDONS_TABLE)
                .select("*")
                .in_("id", ids)
                .execute(),
            self.read_timeout
        )

        return [self._decode("get addons", AddOn.from_record, row) for row in rows or []]

    async def list_products(self) -> List[Product]:
        rows = await self._execute(
            "list products",
            lambda: self.client
                .table(PRODUCTS_TABLE)
                .select("*")
                .order("created_at", desc=True)
                .execute(),
            self.read_timeout
        )
        return [self._decode("list products", Product.from_record, row) for row in rows or []]

    async def list_addons(self) -> List[AddOn]:
        rows = await self._execute(
            "list addons",
            lambda: self.client
                .table(ADDONS_TABLE)
                .select("*")
                .order("name")
                .execute(),
            self.read_timeout
        )
        return [self._decode("list addons", AddOn.from_record, row) for row in rows or []]

    # ========================================================================
    # CATALOG WRITES
    # ========================================================================

    async def insert_product(self, record: Dict[str, Any]) -> Product:
        rows = await self._execute(
            "insert product",
            lambda: self.client.table(PRODUCTS_TABLE).insert(record).execute(),
            self.write_timeout
        )

        if not rows:
            raise StorageError("insert product", "no row returned")

        return self._decode("insert product", Product.from_record, rows[0])

    async def delete_product(self, product_id: int) -> Optional[Product]:
        rows = await self._execute(
            "delete product",
            lambda: self.client
                .table(PRODUCTS_TABLE)
                .delete()
                .eq("id", product_id)
                .execute(),
            self.write_timeout
        )

        if not rows:
            return None

        return self._decode("delete product", Product.from_record, rows[0])

    async def insert_addons(self, records: List[Dict[str, Any]]) -> List[AddOn]:
        """Single multi-row insert, so the batch lands all-or-nothing."""
        rows = await self._execute(
            "insert addons",
            lambda: self.client.table(ADDONS_TABLE).insert(records).execute(),
            self.write_timeout
        )
        return [self._decode("insert addons", AddOn.from_record, row) for row in rows or []]

    async def delete_addon(self, addon_id: int) -> Optional[AddOn]:
        rows = await self._execute(
            "delete addon",
            lambda: self.client
                .table(ADDONS_TABLE)
                .delete()
                .eq("id", addon_id)
                .execute(),
            self.write_timeout
        )

        if not rows:
            return None

        return self._decode("delete addon", AddOn.from_record, rows[0])

    # ========================================================================
    # ORDERS
    # ========================================================================

    async def create_order(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create order and its lines in one transaction.

        The create_order Postgres function inserts the order row and every
        line row, then returns the stored order.
        """
        data = await self._execute(
            "create order",
            lambda: self.client.rpc(
                CREATE_ORDER_FUNCTION,
                {"payload": record}
            ).execute(),
            self.write_timeout
        )

        if isinstance(data, list):
            data = data[0] if data else None

        if not isinstance(data, dict):
            raise StorageError("create order", "no order returned")

        return data

    async def list_orders(self) -> List[Dict[str, Any]]:
        rows = await self._execute(
            "list orders",
            lambda: self.client
                .table(ORDERS_TABLE)
                .select("*, lines:order_lines(*, product:products(*))")
                .order("created_at")
                .execute(),
            self.read_timeout
        )
        return rows or []

    # ========================================================================
    # HEALTH
    # ========================================================================

    def get_stats(self) -> Dict[str, Any]:
        return {
            "circuit_breaker": self.circuit_breaker.get_state(),
            "circuit_failures": self.circuit_breaker.failure_count
        }

    def is_healthy(self) -> bool:
        return self.circuit_breaker.state != CircuitState.OPEN


# ============================================================================
# STORE FACTORY
# ============================================================================

def create_stores(config: Optional[Config] = None) -> Tuple[Any, Any]:
    """
    Build (catalog_store, order_store) for the configured backend.

    Returns:
        Two stores; the supabase backend uses one store for both
    """
    config = config or get_config()

    if config.store.backend == "supabase":
        store = SupabaseStore.from_config(config)
        return store, store

    logger.info("Using in-memory stores")
    return InMemoryCatalog(), InMemoryOrderStore()
