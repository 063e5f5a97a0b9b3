"""
Catalog Module
==============
Product and add-on ("complemento") catalog.

Split into:
✅ Immutable catalog types (Product, Size, AddOn)
✅ Record normalization (storage rows → domain types)
✅ CatalogService (validated catalog management)
✅ InMemoryCatalog (store used by tests and local runs)

Pricing only ever READS from the catalog.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from prometheus_client import Counter

from errors import NotFoundError, ValidationError
from schemas import AddOnCreate, ProductCreate, parse


logger = logging.getLogger(__name__)


# ============================================================================
# METRICS
# ============================================================================

catalog_validation_errors = Counter(
    'catalog_validation_errors_total',
    'Catalog validation errors',
    ['entity']
)
catalog_writes = Counter(
    'catalog_writes_total',
    'Catalog write operations',
    ['entity', 'operation']
)


# ============================================================================
# MONEY
# ============================================================================

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Normalize a price to a Decimal with two places (deterministic).

    Raises:
        ValueError: If value is not a finite, non-negative number
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid price: {value!r}")

    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float, str)):
            amount = Decimal(str(value).strip())
        else:
            raise ValueError(f"invalid price: {value!r}")

        if not amount.is_finite() or amount < 0:
            raise ValueError(f"invalid price: {value!r}")

        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"invalid price: {value!r}")


def money_to_float(amount: Decimal) -> float:
    return float(amount)


# ============================================================================
# CATALOG TYPES
# ============================================================================

@dataclass(frozen=True)
class Size:
    """Named price tier of a product (e.g. "Pequeno", "Grande")."""
    label: str
    price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "price": money_to_float(self.price)}


@dataclass(frozen=True)
class Product:
    """
    Catalog product sellable in multiple sizes.

    Sizes keep their catalog order; labels are unique within a product.
    """
    id: int
    name: str
    sizes: Tuple[Size, ...]
    description: str = ""
    image: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def find_size(self, label: str) -> Optional[Size]:
        """Exact, case-sensitive size match."""
        for size in self.sizes:
            if size.label == label:
                return size
        return None

    def size_labels(self) -> List[str]:
        return [size.label for size in self.sizes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "sizes": [size.to_dict() for size in self.sizes],
            "created_at": self.created_at
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Product":
        """
        Build a product from a storage row.

        Raises:
            ValueError: If the row is malformed
        """
        raw_sizes = record.get("sizes")
        if not isinstance(raw_sizes, list):
            raise ValueError(f"product {record.get('id')}: sizes must be a list")

        sizes = []
        for raw in raw_sizes:
            if not isinstance(raw, dict) or "label" not in raw or "price" not in raw:
                raise ValueError(f"product {record.get('id')}: malformed size {raw!r}")
            sizes.append(Size(label=str(raw["label"]), price=to_money(raw["price"])))

        return cls(
            id=int(record["id"]),
            name=str(record["name"]),
            sizes=tuple(sizes),
            description=str(record.get("description") or ""),
            image=record.get("image"),
            created_at=str(record.get("created_at") or datetime.utcnow().isoformat())
        )


@dataclass(frozen=True)
class AddOn:
    """Optional priced extra attachable to an order line."""
    id: int
    name: str
    category: str
    price: Decimal
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": money_to_float(self.price),
            "active": self.active
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AddOn":
        return cls(
            id=int(record["id"]),
            name=str(record["name"]),
            category=str(record["category"]),
            price=to_money(record["price"]),
            active=bool(record.get("active", True))
        )


# ============================================================================
# CATALOG SERVICE (Validated Management)
# ============================================================================

class CatalogService:
    """
    Catalog management on top of a catalog store.

    Responsibilities:
    - Validate product and add-on payloads
    - Delegate reads and writes to the store
    - Report missing entities as NotFoundError

    The store is any object with the async methods of InMemoryCatalog.
    """

    def __init__(self, store):
        self.store = store

    async def create_product(self, payload: Any) -> Product:
        """
        Validate and store a new product.

        Args:
            payload: Raw product data (name, description, image, sizes)

        Returns:
            Stored Product

        Raises:
            ValidationError: If payload is malformed
        """
        try:
            data = parse(ProductCreate, payload)
        except ValidationError:
            catalog_validation_errors.labels(entity='product').inc()
            raise

        record = {
            "name": data.name,
            "description": data.description,
            "image": data.image,
            "sizes": [
                {"label": size.label, "price": money_to_float(to_money(size.price))}
                for size in data.sizes
            ]
        }

        product = await self.store.insert_product(record)
        catalog_writes.labels(entity='product', operation='create').inc()

        logger.info(f"Product created: {product.id} ({product.name})")

        return product

    async def get_product(self, product_id: int) -> Product:
        product = await self.store.get_product(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return product

    async def list_products(self) -> List[Product]:
        """All products, newest first."""
        return await self.store.list_products()

    async def delete_product(self, product_id: int) -> Product:
        product = await self.store.delete_product(product_id)
        if product is None:
            raise NotFoundError("product", product_id)

        catalog_writes.labels(entity='product', operation='delete').inc()
        logger.info(f"Product deleted: {product_id}")

        return product

    async def create_addons(self, payloads: Any) -> List[AddOn]:
        """
        Validate and store a batch of add-ons.

        The whole batch is validated before anything is stored.

        Raises:
            ValidationError: If body is not a list or any entry is malformed
        """
        if not isinstance(payloads, list):
            catalog_validation_errors.labels(entity='addon').inc()
            raise ValidationError("request body must be a list of add-ons")

        validated = []
        for index, payload in enumerate(payloads):
            try:
                validated.append(parse(AddOnCreate, payload))
            except ValidationError as e:
                catalog_validation_errors.labels(entity='addon').inc()
                raise ValidationError(
                    f"invalid add-on at index {index}",
                    details=e.details
                ) from e

        records = [
            {
                "name": data.name,
                "category": data.category,
                "price": money_to_float(to_money(data.price)),
                "active": data.active
            }
            for data in validated
        ]

        addons = await self.store.insert_addons(records)
        catalog_writes.labels(entity='addon', operation='create').inc(len(addons))

        logger.info(f"Created {len(addons)} add-ons")

        return addons

    async def list_addons(self) -> List[AddOn]:
        """All add-ons, ordered by name."""
        return await self.store.list_addons()

    async def delete_addon(self, addon_id: int) -> AddOn:
        addon = await self.store.delete_addon(addon_id)
        if addon is None:
            raise NotFoundError("addon", addon_id)

        catalog_writes.labels(entity='addon', operation='delete').inc()
        logger.info(f"Add-on deleted: {addon_id}")

        return addon


# ============================================================================
# IN-MEMORY CATALOG STORE
# ============================================================================

class InMemoryCatalog:
    """
    Catalog store kept in process memory.

    Also serves the two resolver lookups: get_product and get_addons.
    """

    def __init__(self):
        self._products: Dict[int, Product] = {}
        self._addons: Dict[int, AddOn] = {}
        self._next_product_id = 1
        self._next_addon_id = 1

    def add_product(self, product: Product) -> Product:
        """Seed a ready-made product (keeps its id)."""
        self._products[product.id] = product
        self._next_product_id = max(self._next_product_id, product.id + 1)
        return product

    def add_addon(self, addon: AddOn) -> AddOn:
        """Seed a ready-made add-on (keeps its id)."""
        self._addons[addon.id] = addon
        self._next_addon_id = max(self._next_addon_id, addon.id + 1)
        return addon

    # Reads

    async def get_product(self, product_id: int) -> Optional[Product]:
        return self._products.get(product_id)

    async def get_addons(self, addon_ids: Iterable[int]) -> List[AddOn]:
        """Batch lookup; missing ids are simply absent from the result."""
        return [
            self._addons[addon_id]
            for addon_id in addon_ids
            if addon_id in self._addons
        ]

    async def list_products(self) -> List[Product]:
        return sorted(
            self._products.values(),
            key=lambda p: (p.created_at, p.id),
            reverse=True
        )

    async def list_addons(self) -> List[AddOn]:
        return sorted(self._addons.values(), key=lambda a: (a.name, a.id))

    # Writes

    async def insert_product(self, record: Dict[str, Any]) -> Product:
        product = Product.from_record({**record, "id": self._next_product_id})
        self._products[product.id] = product
        self._next_product_id += 1
        return product

    async def delete_product(self, product_id: int) -> Optional[Product]:
        return self._products.pop(product_id, None)

    async def insert_addons(self, records: List[Dict[str, Any]]) -> List[AddOn]:
        addons = []
        for offset, record in enumerate(records):
            addons.append(
                AddOn.from_record({**record, "id": self._next_addon_id + offset})
            )
        for addon in addons:
            self._addons[addon.id] = addon
        self._next_addon_id += len(addons)
        return addons

    async def delete_addon(self, addon_id: int) -> Optional[AddOn]:
        return self._addons.pop(addon_id, None)
