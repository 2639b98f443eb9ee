import hashlib
import hmac
import itertools
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from shop.models import Category, Order, OrderItem, OrderStatus, Product

WEBHOOK_SECRET = "whsec_test_secret"
WEBHOOK_URL = "/api/webhooks/stripe/"


@pytest.fixture(autouse=True)
def stripe_settings(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_dummy"
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.STRIPE_CURRENCY = "usd"
    settings.PUBLIC_FRONT_BASE = "http://shop.test"
    settings.NOTIFY_NEW_ORDER_TO = []
    return settings


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def staff_client(db):
    user = get_user_model().objects.create_user("admin", "admin@example.com", "pw", is_staff=True)
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def category(db):
    return Category.objects.create(name="Gadgets")


@pytest.fixture
def product(db, category):
    return Product.objects.create(
        name="Widget",
        description="A widget",
        price=Decimal("9.99"),
        image_url="https://img.example.com/widget.png",
        category=category,
    )


@pytest.fixture
def fake_stripe(monkeypatch):
    """Replaces Checkout Session creation; returns the list of recorded calls."""
    calls = []
    counter = itertools.count(1)

    def create(**kwargs):
        calls.append(kwargs)
        n = next(counter)
        return SimpleNamespace(id=f"cs_test_{n}", url=f"https://checkout.stripe.com/c/pay/cs_test_{n}")

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    return calls


@pytest.fixture
def failing_stripe(monkeypatch):
    def create(**kwargs):
        raise stripe.APIConnectionError("Network is unreachable")

    monkeypatch.setattr(stripe.checkout.Session, "create", create)


@pytest.fixture
def make_order(db):
    def _make(session_id="cs_test_existing", status=OrderStatus.PENDING, items=None):
        order = Order.objects.create(
            stripe_session_id=session_id,
            customer_name="Ada Lovelace",
            customer_email="ada@example.com",
            customer_phone="+1 555 0100",
            customer_address="1 Analytical Engine Way",
            total=Decimal("19.98"),
            status=status,
        )
        for it in items or [{"id": 1, "name": "Widget", "price": Decimal("9.99"), "quantity": 2}]:
            OrderItem.objects.create(
                order=order, product_id=it["id"], name=it["name"], price=it["price"], quantity=it["quantity"]
            )
        return order

    return _make


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(timestamp or time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_completed_event(session_id, order_id=None, event_id="evt_test_1"):
    metadata = {} if order_id is None else {"orderId": str(order_id)}
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": 1998,
                "payment_status": "paid",
                "metadata": metadata,
            }
        },
    }


@pytest.fixture
def post_event(api_client):
    """Posts an event to the webhook, signed with the configured secret unless told otherwise."""

    def _post(event, signature=None, sign=True):
        payload = json.dumps(event)
        headers = {}
        if signature is not None:
            headers["HTTP_STRIPE_SIGNATURE"] = signature
        elif sign:
            headers["HTTP_STRIPE_SIGNATURE"] = sign_payload(payload)
        return api_client.post(WEBHOOK_URL, data=payload, content_type="application/json", **headers)

    return _post


@pytest.fixture
def completed_event():
    return checkout_completed_event
