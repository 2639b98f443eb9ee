from decimal import Decimal
from unittest import mock

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from shop.models import Category, Contact, OrderStatus, Product

pytestmark = pytest.mark.django_db

DENIED = (401, 403)


def test_health(api_client):
    res = api_client.get("/api/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


# --------- Products ---------
def test_anyone_can_list_and_read_products(api_client, product):
    res = api_client.get("/api/products/")
    assert res.status_code == 200
    assert res.json()["count"] == 1
    item = res.json()["results"][0]
    assert item["name"] == "Widget"
    assert item["price"] == "9.99"
    assert item["category"]["name"] == "Gadgets"

    assert api_client.get(f"/api/products/{product.id}/").status_code == 200


def test_products_filter_by_category_and_search(api_client, product):
    other = Category.objects.create(name="Books")
    Product.objects.create(name="Novel", price=Decimal("12.00"), category=other)

    res = api_client.get("/api/products/", {"category_id": other.id})
    assert [p["name"] for p in res.json()["results"]] == ["Novel"]

    res = api_client.get("/api/products/", {"search": "widg"})
    assert [p["name"] for p in res.json()["results"]] == ["Widget"]


def test_anonymous_cannot_write_products(api_client, product):
    res = api_client.post("/api/products/", {"name": "X", "price": "1.00"}, format="json")
    assert res.status_code in DENIED
    assert api_client.delete(f"/api/products/{product.id}/").status_code in DENIED
    assert Product.objects.count() == 1


def test_staff_creates_product_with_new_category_name(staff_client):
    res = staff_client.post(
        "/api/products/",
        {"name": "Lamp", "price": "25.50", "category_name": "Lighting"},
        format="json",
    )

    assert res.status_code == 201
    product = Product.objects.get(name="Lamp")
    assert product.category.name == "Lighting"
    assert res.json()["category"]["name"] == "Lighting"


def test_staff_reuses_existing_category_by_name(staff_client, category):
    staff_client.post(
        "/api/products/", {"name": "Lamp", "price": "25.50", "category_name": "Gadgets"}, format="json"
    )
    assert Category.objects.filter(name="Gadgets").count() == 1
    assert Product.objects.get(name="Lamp").category == category


def test_staff_updates_and_deletes_product(staff_client, product):
    res = staff_client.patch(f"/api/products/{product.id}/", {"price": "7.50"}, format="json")
    assert res.status_code == 200
    product.refresh_from_db()
    assert product.price == Decimal("7.50")

    assert staff_client.delete(f"/api/products/{product.id}/").status_code == 204
    assert not Product.objects.exists()


def test_negative_price_is_rejected(staff_client):
    res = staff_client.post("/api/products/", {"name": "X", "price": "-1.00"}, format="json")
    assert res.status_code == 400


# --------- Categories ---------
def test_categories_list_product_counts(api_client, product):
    res = api_client.get("/api/categories/")
    assert res.status_code == 200
    (cat,) = res.json()["results"]
    assert cat["name"] == "Gadgets"
    assert cat["product_count"] == 1


def test_category_names_are_unique(staff_client, category):
    res = staff_client.post("/api/categories/", {"name": "Gadgets"}, format="json")
    assert res.status_code == 400


# --------- Contacts ---------
def test_anyone_can_send_contact_message(api_client):
    res = api_client.post(
        "/api/contacts/",
        {"name": "Bob", "email": "bob@example.com", "subject": "Hi", "message": "Hello"},
        format="json",
    )
    assert res.status_code == 201
    assert Contact.objects.get().subject == "Hi"


def test_contact_requires_valid_email(api_client):
    res = api_client.post(
        "/api/contacts/",
        {"name": "Bob", "email": "nope", "subject": "Hi", "message": "Hello"},
        format="json",
    )
    assert res.status_code == 400


def test_only_staff_reads_contacts(api_client, staff_client):
    Contact.objects.create(name="Bob", email="bob@example.com", subject="Hi", message="Hello")

    assert api_client.get("/api/contacts/").status_code in DENIED
    res = staff_client.get("/api/contacts/")
    assert res.status_code == 200
    assert res.json()["count"] == 1


# --------- Orders (back-office) ---------
def test_orders_list_is_staff_only(api_client, staff_client, make_order):
    make_order(session_id="cs_1")
    make_order(session_id="cs_2", status=OrderStatus.COMPLETED)

    assert api_client.get("/api/orders/").status_code in DENIED

    res = staff_client.get("/api/orders/")
    assert res.json()["count"] == 2

    res = staff_client.get("/api/orders/", {"status": "COMPLETED"})
    assert [o["stripe_session_id"] for o in res.json()["results"]] == ["cs_2"]


def test_orders_are_read_only(staff_client, make_order):
    order = make_order()
    assert staff_client.delete(f"/api/orders/{order.id}/").status_code == 405


# --------- Image upload ---------
def _image(size=1024, content_type="image/png"):
    return SimpleUploadedFile("photo.png", b"\x89PNG" + b"0" * size, content_type=content_type)


def test_upload_requires_staff(api_client):
    res = api_client.post("/api/upload/", {"file": _image()}, format="multipart")
    assert res.status_code in DENIED


def test_upload_without_file(staff_client):
    res = staff_client.post("/api/upload/", {}, format="multipart")
    assert res.status_code == 400
    assert res.json() == {"error": "No file provided"}


def test_upload_rejects_non_images(staff_client):
    res = staff_client.post("/api/upload/", {"file": _image(content_type="application/pdf")}, format="multipart")
    assert res.status_code == 400
    assert res.json() == {"error": "File must be an image"}


def test_upload_rejects_large_files(staff_client):
    res = staff_client.post("/api/upload/", {"file": _image(size=5 * 1024 * 1024 + 1)}, format="multipart")
    assert res.status_code == 400
    assert res.json() == {"error": "File size must be less than 5MB"}


def test_upload_returns_hosted_url(staff_client):
    hosted = {"secure_url": "https://res.cloudinary.com/demo/products/abc.png", "public_id": "products/abc"}
    with mock.patch("shop.views.cloudinary.uploader.upload", return_value=hosted) as upload:
        res = staff_client.post("/api/upload/", {"file": _image()}, format="multipart")

    assert res.status_code == 200
    assert res.json() == {"success": True, "url": hosted["secure_url"], "public_id": "products/abc"}
    assert upload.call_args.kwargs["folder"] == "products"


def test_upload_failure_is_reported(staff_client):
    with mock.patch("shop.views.cloudinary.uploader.upload", side_effect=RuntimeError("boom")):
        res = staff_client.post("/api/upload/", {"file": _image()}, format="multipart")

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to upload image"}
