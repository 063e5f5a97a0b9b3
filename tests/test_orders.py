import asyncio

import pytest

from errors import NotFoundError, StorageError, ValidationError
from orders import OrderService


def test_create_order_prices_and_persists(catalog, order_store, order_request):
    service = OrderService(catalog, order_store)

    order = asyncio.run(service.create_order(order_request))

    assert order["id"] == 1
    assert order["status"] == "pendente"
    assert order["customer_name"] == "Maria"
    assert order["order_total"] == 26.0
    assert [line["price"] for line in order["lines"]] == [15.5, 10.5]
    assert order["priceDetails"]["orderTotal"] == 26.0
    assert order["priceDetails"]["lines"][0]["addOnsPrice"] == 3.5
    assert order_store.create_calls == 1


def test_unknown_product_creates_no_order(catalog, order_store, order_request):
    order_request["lines"][1]["productId"] = 99
    service = OrderService(catalog, order_store)

    with pytest.raises(NotFoundError):
        asyncio.run(service.create_order(order_request))

    assert order_store.create_calls == 0
    assert asyncio.run(service.list_orders()) == []


def test_missing_add_on_creates_no_order(catalog, order_store, order_request):
    order_request["lines"][0]["addOnIds"] = [5, 42]
    service = OrderService(catalog, order_store)

    with pytest.raises(NotFoundError) as exc:
        asyncio.run(service.create_order(order_request))

    assert exc.value.identifier == [42]
    assert order_store.create_calls == 0


@pytest.mark.parametrize("field", ["customerName", "phone", "address", "paymentMethod"])
def test_missing_customer_field_rejected(catalog, order_store, order_request, field):
    del order_request[field]
    service = OrderService(catalog, order_store)

    with pytest.raises(ValidationError):
        asyncio.run(service.create_order(order_request))

    assert order_store.create_calls == 0


def test_empty_lines_rejected(catalog, order_store, order_request):
    order_request["lines"] = []
    service = OrderService(catalog, order_store)

    with pytest.raises(ValidationError):
        asyncio.run(service.create_order(order_request))


def test_client_total_is_rejected(catalog, order_store, order_request):
    order_request["orderTotal"] = 1.0
    service = OrderService(catalog, order_store)

    with pytest.raises(ValidationError):
        asyncio.run(service.create_order(order_request))


def test_store_failure_surfaces_as_storage_error(catalog, order_store, order_request):
    order_store.fail_next = ConnectionError("database unreachable")
    service = OrderService(catalog, order_store)

    with pytest.raises(StorageError) as exc:
        asyncio.run(service.create_order(order_request))

    assert exc.value.operation == "create order"
    assert asyncio.run(service.list_orders()) == []


def test_storage_error_passes_through(catalog, order_store, order_request):
    original = StorageError("create order", "circuit breaker open")
    order_store.fail_next = original
    service = OrderService(catalog, order_store)

    with pytest.raises(StorageError) as exc:
        asyncio.run(service.create_order(order_request))

    assert exc.value is original


def test_list_orders_oldest_first(catalog, order_store, order_request):
    service = OrderService(catalog, order_store)

    asyncio.run(service.create_order(order_request))
    order_request["customerName"] = "João"
    asyncio.run(service.create_order(order_request))

    orders = asyncio.run(service.list_orders())
    assert [o["customer_name"] for o in orders] == ["Maria", "João"]
    assert [o["id"] for o in orders] == [1, 2]
