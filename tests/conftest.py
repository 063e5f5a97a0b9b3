from decimal import Decimal

import pytest

from catalog import AddOn, InMemoryCatalog, Product, Size
from orders import InMemoryOrderStore


@pytest.fixture
def catalog():
    store = InMemoryCatalog()
    store.add_product(Product(
        id=1,
        name="Açaí Tradicional",
        sizes=(
            Size("Pequeno", Decimal("8.00")),
            Size("Grande", Decimal("12.00")),
        ),
    ))
    store.add_product(Product(
        id=2,
        name="Açaí com Banana",
        sizes=(Size("Médio", Decimal("10.50")),),
    ))
    store.add_addon(AddOn(5, "Granola", "ADICIONAL", Decimal("2.00")))
    store.add_addon(AddOn(6, "Leite Ninho", "ADICIONAL", Decimal("1.50")))
    store.add_addon(AddOn(7, "Morango", "INCLUSAO", Decimal("3.00"), active=False))
    return store


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def order_request():
    return {
        "customerName": "Maria",
        "phone": "+5511999990000",
        "address": "Rua das Flores, 10",
        "paymentMethod": "pix",
        "lines": [
            {"productId": 1, "sizeLabel": "Grande", "addOnIds": [5, 6]},
            {"productId": 2, "sizeLabel": "Médio"},
        ],
    }
