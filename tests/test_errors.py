from errors import NotFoundError, StorageError, ValidationError, http_status


def test_not_found_error_object():
    error = NotFoundError("size", "Gigante", available=["Pequeno", "Grande"])

    assert error.to_dict() == {
        "error": "not_found",
        "reason": "size not found: Gigante (available: Pequeno, Grande)",
        "entity": "size",
        "identifier": "Gigante",
        "available": ["Pequeno", "Grande"],
    }


def test_not_found_lists_ids():
    error = NotFoundError("addon", [42, 43])

    assert error.reason == "addon not found: 42, 43"
    assert error.to_dict()["identifier"] == [42, 43]
    assert "available" not in error.to_dict()


def test_validation_error_details():
    error = ValidationError("invalid order line at index 0", details=[{"loc": "productId", "msg": "Field required"}])

    assert error.to_dict()["details"] == [{"loc": "productId", "msg": "Field required"}]


def test_http_status_mapping():
    assert http_status(ValidationError("bad")) == 400
    assert http_status(NotFoundError("product", 99)) == 400
    assert http_status(StorageError("create order", "down")) == 500
    assert http_status(RuntimeError("boom")) == 500
