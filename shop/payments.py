# shop/payments.py: Stripe Checkout: PENDING order + hosted session, webhook reconciliation
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import stripe
from django.conf import settings
from django.db import IntegrityError, transaction

from .models import Order, OrderItem, OrderStatus
from .signals import order_completed

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
ORDER_METADATA_KEY = "orderId"


# ======================================================================
# Errors
# ======================================================================
class PaymentError(Exception):
    status_code = 500

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class CheckoutError(PaymentError):
    """The hosted session could not be opened; the PENDING order was rolled back."""


class WebhookRejected(PaymentError):
    status_code = 400


# ======================================================================
# Utils
# ======================================================================
def _stripe():
    if not getattr(settings, "STRIPE_SECRET_KEY", ""):
        raise CheckoutError("STRIPE_SECRET_KEY is not configured.")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def cents_to_amount(cents: int) -> Decimal:
    return (Decimal(int(cents)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def amount_to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _redact(secret: str) -> str:
    if not secret:
        return "<empty>"
    return f"{secret[:6]}…({len(secret)} chars)"


# ======================================================================
# Checkout Session Initiator
# ======================================================================
@dataclass
class CheckoutSession:
    id: str
    url: str
    order_id: int


@transaction.atomic
def _create_pending_order(
    amount_cents: int, currency: str, customer: Dict[str, str], items: List[Dict[str, Any]]
) -> Order:
    order = Order.objects.create(
        customer_name=customer["name"],
        customer_email=customer["email"],
        customer_phone=customer["phone"],
        customer_address=customer["address"],
        total=cents_to_amount(amount_cents),
        currency=currency.lower(),
        status=OrderStatus.PENDING,
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            product_id=it.get("id"),
            name=it["name"],
            price=Decimal(str(it["price"])),
            quantity=int(it["quantity"]),
        )
        for it in items
    ])
    return order


def _discard_order(order_id: int) -> None:
    try:
        Order.objects.filter(pk=order_id, status=OrderStatus.PENDING).delete()
    except Exception as e:
        logger.error(f"Could not delete orphaned pending order {order_id}: {e}")


def create_checkout_session(
    *,
    amount: int,
    currency: str,
    name: str,
    description: str,
    customer: Dict[str, str],
    items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
) -> CheckoutSession:
    """
    Persists a PENDING order for the cart snapshot and opens a hosted payment
    session that carries the order id in its metadata.

    ``amount`` is in minor currency units. Items are ``{id, name, price, quantity}``
    with ``price`` in major units; they are copied into OrderItem rows.
    On any failure after the order was written the order is deleted and
    ``CheckoutError`` is raised.
    """
    items_cents = sum(amount_to_cents(it["price"]) * int(it["quantity"]) for it in items)
    if items_cents != int(amount):
        logger.warning(f"Checkout amount {amount} does not match cart items total {items_cents}")

    order = _create_pending_order(amount, currency, customer, items)

    try:
        session = _open_session(order, amount, currency, name, description, customer, success_url, cancel_url)
    except CheckoutError:
        _discard_order(order.id)
        raise
    except Exception as e:
        logger.exception(f"Checkout for order {order.id} failed unexpectedly: {e}")
        _discard_order(order.id)
        raise CheckoutError("Could not start the payment session.") from e

    logger.info(f"Order {order.id} pending on session {session.id}")
    return CheckoutSession(id=session.id, url=getattr(session, "url", "") or "", order_id=order.id)


def _idempotency_key(order: Order) -> str:
    # unique across database resets sharing one Stripe account
    return f"checkout-order-{order.id}-{int(order.created_at.timestamp() * 1000)}"


def _open_session(order, amount, currency, name, description, customer, success_url, cancel_url):
    """Opens the hosted session and binds its id to the order. Raises CheckoutError."""
    try:
        session = _stripe().checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": currency.lower(),
                    "unit_amount": int(amount),
                    "product_data": {"name": name, "description": description or name},
                },
                "quantity": 1,
            }],
            customer_email=customer["email"],
            client_reference_id=str(order.id),
            metadata={ORDER_METADATA_KEY: str(order.id)},
            success_url=success_url,
            cancel_url=cancel_url,
            idempotency_key=_idempotency_key(order),
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe session creation failed for order {order.id}: {e}")
        raise CheckoutError(f"Payment provider error: {getattr(e, 'user_message', None) or e}") from e

    try:
        with transaction.atomic():
            attached = Order.objects.attach_session(order.id, session.id)
    except IntegrityError as e:
        logger.error(f"Session {session.id} is already bound to another order: {e}")
        attached = 0
    if attached != 1:
        raise CheckoutError("Could not record the payment session for this order.")
    return session


# ======================================================================
# Payment Event Reconciler (webhook)
# ======================================================================
@dataclass
class ReconcileResult:
    event_type: str
    handled: bool = False
    duplicate: bool = False
    order_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"received": True}
        if self.order_id is not None:
            data["orderId"] = self.order_id
        if self.duplicate:
            data["duplicate"] = True
        if not self.handled:
            data["ignored"] = self.event_type
        return data


def _verify(payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    if not signature:
        logger.error("Webhook rejected: no Stripe-Signature header")
        raise WebhookRejected("No signature provided")

    secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        raise WebhookRejected("Webhook secret not configured")

    body = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
    try:
        stripe.WebhookSignature.verify_header(
            body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as e:
        logger.error(
            f"Webhook signature verification failed: {e} "
            f"(secret={_redact(secret)}, body_length={len(body)})"
        )
        raise WebhookRejected("Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        logger.error("Webhook rejected: signed body is not valid JSON")
        raise WebhookRejected("Invalid payload")
    if not isinstance(event, dict):
        raise WebhookRejected("Invalid payload")
    return event


def _order_reference(session: Dict[str, Any]) -> Optional[int]:
    metadata = session.get("metadata") or {}
    raw = str(metadata.get(ORDER_METADATA_KEY) or "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def reconcile_webhook(payload: bytes, signature: Optional[str]) -> ReconcileResult:
    """
    Verifies a Stripe event and moves the referenced order PENDING -> COMPLETED.

    Safe under repeated and concurrent delivery: the transition is a
    conditional update, and an already COMPLETED session is acknowledged
    without any write.
    """
    event = _verify(payload, signature)
    event_type = str(event.get("type") or "")
    logger.info(f"Webhook {event.get('id')} verified: {event_type}")

    if event_type != CHECKOUT_COMPLETED:
        return ReconcileResult(event_type=event_type)

    session = (event.get("data") or {}).get("object") or {}
    session_id = str(session.get("id") or "")

    existing = Order.objects.for_session(session_id).first() if session_id else None
    if existing and existing.status == OrderStatus.COMPLETED:
        logger.info(f"Session {session_id} already reconciled with order {existing.id}")
        return ReconcileResult(event_type, handled=True, duplicate=True, order_id=existing.id)

    order_id = _order_reference(session)
    if order_id is None or not session_id:
        logger.error(
            f"Webhook {event.get('id')} has no order reference "
            f"(session={session_id!r}, metadata keys={sorted((session.get('metadata') or {}).keys())})"
        )
        raise WebhookRejected("No order ID found")

    try:
        with transaction.atomic():
            changed = Order.objects.mark_completed(order_id, session_id)
    except IntegrityError:
        logger.error(f"Session {session_id} is bound to an order other than {order_id}")
        raise WebhookRejected("Order does not match this session", status_code=409)

    if changed == 1:
        order = Order.objects.get(pk=order_id)
        logger.info(f"Order {order_id} completed by session {session_id}")
        order_completed.send(sender=Order, order=order)
        return ReconcileResult(event_type, handled=True, order_id=order_id)

    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        logger.error(f"Webhook for session {session_id} references unknown order {order_id}")
        raise WebhookRejected("Order not found", status_code=404)
    if order.status == OrderStatus.COMPLETED and order.stripe_session_id == session_id:
        # another delivery won the race
        return ReconcileResult(event_type, handled=True, duplicate=True, order_id=order_id)

    logger.error(
        f"Order {order_id} cannot be completed by session {session_id} "
        f"(status={order.status}, bound session={order.stripe_session_id})"
    )
    raise WebhookRejected("Order cannot be completed", status_code=409)
