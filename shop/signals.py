# shop/signals.py: same-process notifications for the cart and the order lifecycle
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, get_connection
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# sender=CartStore class, kwargs: store, items
cart_changed = Signal()

# sender=Order class, kwargs: order
order_completed = Signal()


@receiver(order_completed)
def notify_new_order(sender, order, **kwargs):
    """E-mails the back-office when a payment is confirmed. Never breaks the webhook."""
    recipients = list(getattr(settings, "NOTIFY_NEW_ORDER_TO", []) or [])
    if not recipients:
        return

    lines = [f"{it.quantity}x {it.name} @ {it.price}" for it in order.items.all()]
    body = (
        f"Order #{order.id} was paid.\n\n"
        f"Customer: {order.customer_name} <{order.customer_email}>\n"
        f"Phone: {order.customer_phone}\n"
        f"Address: {order.customer_address}\n\n"
        + "\n".join(lines)
        + f"\n\nTotal: {order.total} {order.currency.upper()}\n"
    )
    subject = f"[Storefront] New order #{order.id}"
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@storefront.local")
    try:
        with get_connection() as conn:
            msg = EmailMultiAlternatives(subject, body, from_email, recipients, connection=conn)
            msg.send(fail_silently=False)
    except Exception as e:
        logger.error(f"Failed to send new order notification for order {order.id}: {e}")
