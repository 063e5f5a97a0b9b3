"""
Pricing Module
==============
Order Pricing Resolver.

Turns requested order lines (product id, size label, add-on ids) into
authoritative catalog prices:
✅ Prices come ONLY from the catalog (client never asserts a price)
✅ Unresolvable references are rejected (product, size, add-on)
✅ Partial add-on matches are never accepted
✅ Lines resolved concurrently, output keeps input order
✅ All-or-nothing: no partial priced order on failure

Error policy: fail-fast and deterministic. Every line is resolved, then the
error of the earliest failing line (input order) is raised.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Sequence, Tuple

from prometheus_client import Counter, Histogram

from catalog import CENT, money_to_float
from errors import NotFoundError, ValidationError
from schemas import OrderLineRequest, parse


logger = logging.getLogger(__name__)


# ============================================================================
# METRICS
# ============================================================================

pricing_resolutions = Counter(
    'pricing_resolutions_total',
    'Order pricing resolutions',
    ['result']
)
pricing_failures = Counter(
    'pricing_failures_total',
    'Order pricing failures',
    ['reason']
)
pricing_line_count = Histogram(
    'pricing_lines_per_order',
    'Lines per resolved order',
    buckets=(1, 2, 3, 5, 8, 13, 21)
)


ZERO = Decimal("0.00")


# ============================================================================
# PRICED TYPES (Immutable)
# ============================================================================

@dataclass(frozen=True)
class PricedLine:
    """
    One order line resolved against the catalog.

    total_price = base_price + add_ons_price, always.
    """
    product_id: int
    size_label: str
    add_on_ids: Tuple[int, ...]
    base_price: Decimal
    add_ons_price: Decimal
    total_price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        """Convert to wire format."""
        return {
            "productId": self.product_id,
            "sizeLabel": self.size_label,
            "addOnIds": list(self.add_on_ids),
            "basePrice": money_to_float(self.base_price),
            "addOnsPrice": money_to_float(self.add_ons_price),
            "totalPrice": money_to_float(self.total_price)
        }


@dataclass(frozen=True)
class PricedOrder:
    """Priced lines in request order plus the order total."""
    lines: Tuple[PricedLine, ...]
    order_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        """Convert to wire format."""
        return {
            "orderTotal": money_to_float(self.order_total),
            "lines": [line.to_dict() for line in self.lines]
        }


# ============================================================================
# RESOLVER
# ============================================================================

async def resolve_order(
    lines: Sequence[Any],
    lookup_product: Callable[[int], Any],
    lookup_addons: Callable[[List[int]], Any]
) -> PricedOrder:
    """
    Resolve requested lines to a priced order.

    Args:
        lines: Non-empty sequence of OrderLineRequest (or raw mappings)
        lookup_product: product_id -> Product or None (sync or async)
        lookup_addons: list of ids -> list of found AddOn (sync or async)

    Returns:
        PricedOrder

    Raises:
        ValidationError: Malformed or empty line list
        NotFoundError: Unknown product, size or add-on
        StorageError: Propagated from a failing lookup
    """
    requests = _coerce_lines(lines)

    results = await asyncio.gather(
        *(
            _resolve_line(request, lookup_product, lookup_addons)
            for request in requests
        ),
        return_exceptions=True
    )

    for result in results:
        if isinstance(result, BaseException):
            reason = getattr(result, "entity", type(result).__name__)
            pricing_failures.labels(reason=reason).inc()
            pricing_resolutions.labels(result='failed').inc()
            raise result

    priced_lines = tuple(results)
    order_total = sum((line.total_price for line in priced_lines), ZERO)

    pricing_resolutions.labels(result='ok').inc()
    pricing_line_count.observe(len(priced_lines))

    logger.info(
        f"Order resolved: {len(priced_lines)} lines, total={order_total}"
    )

    return PricedOrder(lines=priced_lines, order_total=order_total.quantize(CENT))


def resolve_order_sync(
    lines: Sequence[Any],
    lookup_product: Callable[[int], Any],
    lookup_addons: Callable[[List[int]], Any]
) -> PricedOrder:
    """Run resolve_order from synchronous code."""
    return asyncio.run(resolve_order(lines, lookup_product, lookup_addons))


async def _resolve_line(
    request: OrderLineRequest,
    lookup_product: Callable[[int], Any],
    lookup_addons: Callable[[List[int]], Any]
) -> PricedLine:
    """Resolve one line; lines never interact."""
    product = await _call(lookup_product, request.product_id)
    if product is None:
        raise NotFoundError("product", request.product_id)

    size = product.find_size(request.size_label)
    if size is None:
        raise NotFoundError(
            "size",
            request.size_label,
            available=product.size_labels()
        )

    requested_ids = list(request.add_on_ids)
    add_ons_price = ZERO

    if requested_ids:
        found = await _call(lookup_addons, requested_ids)
        by_id = {
            addon.id: addon
            for addon in (found or [])
            if addon.id in request.add_on_ids
        }

        if len(by_id) < len(requested_ids):
            missing = [i for i in requested_ids if i not in by_id]
            raise NotFoundError("addon", missing)

        add_ons_price = sum((by_id[i].price for i in requested_ids), ZERO)

    return PricedLine(
        product_id=request.product_id,
        size_label=request.size_label,
        add_on_ids=tuple(requested_ids),
        base_price=size.price,
        add_ons_price=add_ons_price,
        total_price=size.price + add_ons_price
    )


async def _call(lookup: Callable[..., Any], *args: Any) -> Any:
    result = lookup(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _coerce_lines(lines: Any) -> List[OrderLineRequest]:
    """Validate the line list before any lookup happens."""
    if isinstance(lines, (str, bytes, dict)) or not isinstance(lines, Sequence):
        raise ValidationError("lines must be a list of order lines")

    if len(lines) == 0:
        raise ValidationError("order must contain at least one line")

    requests = []
    for index, line in enumerate(lines):
        try:
            requests.append(parse(OrderLineRequest, line))
        except ValidationError as e:
            raise ValidationError(
                f"invalid order line at index {index}",
                details=e.details
            ) from e

    return requests


# ============================================================================
# EXAMPLE USAGE
# ============================================================================

if __name__ == "__main__":
    from catalog import AddOn, InMemoryCatalog, Product, Size

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    catalog = InMemoryCatalog()
    catalog.add_product(Product(
        id=1,
        name="Açaí Tradicional",
        sizes=(
            Size("Pequeno", Decimal("8.00")),
            Size("Grande", Decimal("12.00"))
        )
    ))
    catalog.add_addon(AddOn(5, "Granola", "ADICIONAL", Decimal("2.00")))
    catalog.add_addon(AddOn(6, "Leite Ninho", "ADICIONAL", Decimal("1.50")))

    print("Pricing Module")
    print("=" * 50)

    priced = resolve_order_sync(
        [{"productId": 1, "sizeLabel": "Grande", "addOnIds": [5, 6]}],
        catalog.get_product,
        catalog.get_addons
    )
    print(priced.to_dict())

    try:
        resolve_order_sync(
            [{"productId": 1, "sizeLabel": "Gigante"}],
            catalog.get_product,
            catalog.get_addons
        )
    except NotFoundError as e:
        print(f"Rejected: {e.to_dict()}")
