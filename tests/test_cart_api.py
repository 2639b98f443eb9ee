from decimal import Decimal

import pytest

pytestmark = pytest.mark.django_db


def test_empty_cart(api_client):
    res = api_client.get("/api/cart/")
    assert res.status_code == 200
    assert res.json() == {"items": [], "total_items": 0, "total": "0.00"}


def test_add_merges_and_totals(api_client, product):
    api_client.post("/api/cart/add/", {"product_id": product.id, "quantity": 1}, format="json")
    res = api_client.post("/api/cart/add/", {"product_id": product.id, "quantity": 1}, format="json")

    body = res.json()
    assert res.status_code == 200
    assert body["total_items"] == 2
    assert Decimal(body["total"]) == Decimal("19.98")
    assert body["items"] == [{
        "id": product.id,
        "name": "Widget",
        "price": "9.99",
        "quantity": 2,
        "image": "https://img.example.com/widget.png",
    }]


def test_cart_survives_between_requests(api_client, product):
    api_client.post("/api/cart/add/", {"product_id": product.id}, format="json")
    assert api_client.get("/api/cart/").json()["total_items"] == 1


@pytest.mark.parametrize("payload", [{}, {"product_id": "abc"}, {"product_id": 1, "quantity": "x"}])
def test_add_rejects_invalid_parameters(api_client, payload):
    res = api_client.post("/api/cart/add/", payload, format="json")
    assert res.status_code == 400


def test_add_rejects_zero_quantity(api_client, product):
    res = api_client.post("/api/cart/add/", {"product_id": product.id, "quantity": 0}, format="json")
    assert res.status_code == 400
    assert api_client.get("/api/cart/").json()["items"] == []


def test_add_unknown_product(api_client):
    res = api_client.post("/api/cart/add/", {"product_id": 999}, format="json")
    assert res.status_code == 404


def test_update_remove_and_clear(api_client, product):
    api_client.post("/api/cart/add/", {"product_id": product.id, "quantity": 2}, format="json")

    res = api_client.post("/api/cart/update/", {"product_id": product.id, "quantity": 5}, format="json")
    assert res.json()["total_items"] == 5

    # zero is not a removal
    res = api_client.post("/api/cart/update/", {"product_id": product.id, "quantity": 0}, format="json")
    assert res.json()["total_items"] == 5

    res = api_client.post("/api/cart/remove/", {"product_id": product.id}, format="json")
    assert res.json()["items"] == []

    api_client.post("/api/cart/add/", {"product_id": product.id}, format="json")
    res = api_client.post("/api/cart/clear/")
    assert res.json()["total_items"] == 0
