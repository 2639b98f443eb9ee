# shop/checkout_views.py: session cart, Stripe checkout, webhook and order lookup for the success page
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from .cart import CartStore, SessionCartStorage
from .models import Order, OrderStatus, Product
from .payments import PaymentError, create_checkout_session, reconcile_webhook
from .serializers import CheckoutSessionRequestSerializer, OrderReadSerializer

logger = logging.getLogger(__name__)


# ======================================================================
# Utils
# ======================================================================
def _cart(request: HttpRequest) -> CartStore:
    return CartStore(SessionCartStorage(request.session))


def _cart_response(store: CartStore) -> Dict[str, Any]:
    items = store.items()
    return {
        "items": [it.to_dict() for it in items],
        "total_items": sum(it.quantity for it in items),
        "total": str(sum((it.line_total for it in items), Decimal("0.00"))),
    }


def _front_base(request: HttpRequest) -> str:
    """Return URLs point at the caller's front only when it is a known CORS origin."""
    origin = (request.headers.get("Origin") or "").rstrip("/")
    allowed = {o.rstrip("/") for o in getattr(settings, "CORS_ALLOWED_ORIGINS", [])}
    if origin and origin in allowed:
        return origin
    return getattr(settings, "PUBLIC_FRONT_BASE", "").rstrip("/") or "http://127.0.0.1:3000"


def _int_param(data, name: str, default=None) -> int:
    raw = data.get(name, default)
    if raw is None:
        raise ValueError(name)
    return int(raw)


# ======================================================================
# Cart (session)
# ======================================================================
@api_view(["GET"])
@permission_classes([AllowAny])
def cart_detail(request):
    return JsonResponse(_cart_response(_cart(request)))


@api_view(["POST"])
@permission_classes([AllowAny])
def cart_add(request):
    data = request.data or {}
    try:
        pid = _int_param(data, "product_id")
        qty = _int_param(data, "quantity", 1)
    except (TypeError, ValueError):
        return JsonResponse({"error": "Invalid parameters."}, status=400)
    if qty <= 0:
        return JsonResponse({"error": "Quantity must be >= 1."}, status=400)

    product = Product.objects.filter(pk=pid).first()
    if not product:
        return JsonResponse({"error": "Product not found."}, status=404)

    store = _cart(request)
    store.add_item(product, qty)
    return JsonResponse(_cart_response(store))


@api_view(["POST"])
@permission_classes([AllowAny])
def cart_update(request):
    data = request.data or {}
    try:
        pid = _int_param(data, "product_id")
        qty = _int_param(data, "quantity")
    except (TypeError, ValueError):
        return JsonResponse({"error": "Invalid parameters."}, status=400)

    store = _cart(request)
    store.update_quantity(pid, qty)
    return JsonResponse(_cart_response(store))


@api_view(["POST"])
@permission_classes([AllowAny])
def cart_remove(request):
    try:
        pid = _int_param(request.data or {}, "product_id")
    except (TypeError, ValueError):
        return JsonResponse({"error": "Invalid parameters."}, status=400)

    store = _cart(request)
    store.remove_item(pid)
    return JsonResponse(_cart_response(store))


@api_view(["POST"])
@permission_classes([AllowAny])
def cart_clear(request):
    store = _cart(request)
    store.clear()
    return JsonResponse(_cart_response(store))


# ======================================================================
# Checkout
# ======================================================================
@api_view(["POST"])
@permission_classes([AllowAny])
def checkout_session(request):
    """
    POST /api/checkout_sessions/
    Body: {
      amount, currency, name, description,
      customer: {name, email, phone, address},
      items: [{id, name, price, quantity}]     # optional, defaults to the session cart
    }
    """
    cart_items: List[Dict[str, Any]] = [
        {"id": it.id, "name": it.name, "price": it.price, "quantity": it.quantity}
        for it in _cart(request).items()
    ]
    ser = CheckoutSessionRequestSerializer(data=request.data, context={"cart_items": cart_items})
    if not ser.is_valid():
        logger.info(f"Checkout rejected before persistence: {dict(ser.errors)}")
        return JsonResponse({"error": "Invalid checkout request.", "fields": ser.errors}, status=400)
    data = ser.validated_data

    base = _front_base(request)
    try:
        session = create_checkout_session(
            amount=data["amount"],
            currency=data.get("currency") or settings.STRIPE_CURRENCY,
            name=data["name"],
            description=data["description"],
            customer=dict(data["customer"]),
            items=[dict(it) for it in data["items"]],
            success_url=f"{base}{settings.CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}{settings.CHECKOUT_CANCEL_PATH}",
        )
    except PaymentError as e:
        return JsonResponse({"error": e.detail}, status=e.status_code)

    return JsonResponse({"id": session.id, "url": session.url, "orderId": session.order_id})


# ======================================================================
# Webhook
# ======================================================================
@csrf_exempt
@require_http_methods(["GET", "POST"])
def stripe_webhook(request: HttpRequest):
    """
    POST /api/webhooks/stripe/ with the raw body + Stripe-Signature header.
    Plain Django view: the signature is computed over the exact bytes received.
    """
    if request.method == "GET":
        return JsonResponse({"message": "Stripe webhook endpoint is working!"})

    try:
        result = reconcile_webhook(request.body, request.headers.get("Stripe-Signature"))
    except PaymentError as e:
        return JsonResponse({"error": e.detail}, status=e.status_code)
    return JsonResponse(result.as_dict())


# ======================================================================
# Order lookup (success page)
# ======================================================================
@api_view(["GET"])
@permission_classes([AllowAny])
def order_by_session(request):
    """
    GET /api/orders/session/?session_id=cs_...
    404 means the order is not visible yet: the page should show "processing".
    """
    session_id = (request.GET.get("session_id") or request.GET.get("sessionId") or "").strip()
    if not session_id:
        return JsonResponse({"error": "Session ID is required"}, status=400)

    order = Order.objects.for_session(session_id).prefetch_related("items").first()
    if not order:
        return JsonResponse({"error": "Order not found", "status": "processing"}, status=404)

    if order.status == OrderStatus.COMPLETED:
        _cart(request).clear()
    return JsonResponse(OrderReadSerializer(order).data)
