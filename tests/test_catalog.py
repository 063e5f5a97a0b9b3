import asyncio
from decimal import Decimal

import pytest

from catalog import CatalogService, InMemoryCatalog, Product, to_money
from errors import NotFoundError, ValidationError


@pytest.fixture
def service():
    return CatalogService(InMemoryCatalog())


def product_payload(**overrides):
    payload = {
        "name": "Açaí Tradicional",
        "description": "Açaí puro",
        "image": "https://img.example/acai.png",
        "sizes": [
            {"label": "Pequeno", "price": 8},
            {"label": "Grande", "price": 12.5},
        ],
    }
    payload.update(overrides)
    return payload


def test_create_and_get_product(service):
    created = asyncio.run(service.create_product(product_payload()))

    assert created.id == 1
    assert created.size_labels() == ["Pequeno", "Grande"]
    assert created.find_size("Grande").price == Decimal("12.50")
    assert asyncio.run(service.get_product(1)) == created


@pytest.mark.parametrize("overrides", [
    {"name": ""},
    {"sizes": []},
    {"sizes": None},
    {"sizes": [{"label": "Grande"}]},
    {"sizes": [{"label": "", "price": 10}]},
    {"sizes": [{"label": "Grande", "price": "10"}]},
    {"sizes": [{"label": "Grande", "price": -1}]},
    {"sizes": [{"label": "Grande", "price": 1e30}]},
    {"sizes": [{"label": "Grande", "price": 10}, {"label": "Grande", "price": 12}]},
])
def test_invalid_product_rejected(service, overrides):
    with pytest.raises(ValidationError):
        asyncio.run(service.create_product(product_payload(**overrides)))

    assert asyncio.run(service.list_products()) == []


def test_missing_product(service):
    with pytest.raises(NotFoundError):
        asyncio.run(service.get_product(404))

    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_product(404))


def test_delete_product(service):
    created = asyncio.run(service.create_product(product_payload()))

    deleted = asyncio.run(service.delete_product(created.id))

    assert deleted == created
    assert asyncio.run(service.list_products()) == []


def test_list_products_newest_first(service):
    store = service.store
    store.add_product(Product(id=1, name="A", sizes=(), created_at="2024-01-01T00:00:00"))
    store.add_product(Product(id=2, name="B", sizes=(), created_at="2024-02-01T00:00:00"))

    assert [p.id for p in asyncio.run(service.list_products())] == [2, 1]


def test_create_addons_batch(service):
    addons = asyncio.run(service.create_addons([
        {"name": "Leite Ninho", "category": "ADICIONAL", "price": 1.5},
        {"name": "Banana", "category": "INCLUSAO", "price": 0, "active": False},
    ]))

    assert [a.id for a in addons] == [1, 2]
    assert addons[0].active is True
    assert addons[1].active is False
    assert [a.name for a in asyncio.run(service.list_addons())] == ["Banana", "Leite Ninho"]


def test_addon_batch_is_all_or_nothing(service):
    with pytest.raises(ValidationError) as exc:
        asyncio.run(service.create_addons([
            {"name": "Granola", "category": "ADICIONAL", "price": 2},
            {"name": "Paçoca", "category": "EXTRA", "price": 2},
        ]))

    assert "index 1" in exc.value.reason
    assert asyncio.run(service.list_addons()) == []


def test_addon_price_above_ceiling_rejected(service):
    with pytest.raises(ValidationError):
        asyncio.run(service.create_addons([
            {"name": "Granola", "category": "ADICIONAL", "price": 1e30},
        ]))

    assert asyncio.run(service.list_addons()) == []


def test_addon_body_must_be_a_list(service):
    with pytest.raises(ValidationError):
        asyncio.run(service.create_addons({"name": "Granola"}))


def test_delete_addon(service):
    asyncio.run(service.create_addons([
        {"name": "Granola", "category": "ADICIONAL", "price": 2},
    ]))

    assert asyncio.run(service.delete_addon(1)).name == "Granola"
    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_addon(1))


def test_to_money():
    assert to_money(12) == Decimal("12.00")
    assert to_money("3.505") == Decimal("3.51")
    assert to_money(0.1) == Decimal("0.10")

    for bad in (True, -1, "abc", None, float("nan"), "1e30"):
        with pytest.raises(ValueError):
            to_money(bad)


def test_product_from_record_rejects_malformed_sizes():
    with pytest.raises(ValueError):
        Product.from_record({"id": 1, "name": "X", "sizes": "Grande"})
