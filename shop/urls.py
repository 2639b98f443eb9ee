# shop/urls.py: storefront API: cart, checkout, webhook, order lookup + catalog/back-office router
from django.http import JsonResponse
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import checkout_views
from .views import CategoryViewSet, ContactViewSet, OrderViewSet, ProductViewSet, upload_image


def health(_request):
    return JsonResponse({"service": "Storefront Backend", "status": "healthy"})


router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"categories", CategoryViewSet, basename="category")
router.register(r"contacts", ContactViewSet, basename="contact")
router.register(r"orders", OrderViewSet, basename="order")


urlpatterns = [
    path("health/", health, name="health"),

    # Cart
    path("cart/",         checkout_views.cart_detail, name="cart-detail"),
    path("cart/add/",     checkout_views.cart_add,    name="cart-add"),
    path("cart/update/",  checkout_views.cart_update, name="cart-update"),
    path("cart/remove/",  checkout_views.cart_remove, name="cart-remove"),
    path("cart/clear/",   checkout_views.cart_clear,  name="cart-clear"),

    # Stripe
    path("checkout_sessions/", checkout_views.checkout_session, name="checkout-session"),
    path("webhooks/stripe/",   checkout_views.stripe_webhook,   name="stripe-webhook"),

    # Success page lookup (must come before the router's orders/<pk>/)
    path("orders/session/", checkout_views.order_by_session, name="order-by-session"),

    path("upload/", upload_image, name="upload-image"),

    path("", include(router.urls)),
]
