# shop/models.py: catalog (Category, Product), contacts and the order lifecycle (Order, OrderItem)
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


# --------- Categories ---------
class Category(models.Model):
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self):
        return self.name


# --------- Products ---------
class Product(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    # hosted on the media service, we only keep the URL
    image_url = models.URLField(blank=True, default="")
    category = models.ForeignKey(
        Category, related_name="products", on_delete=models.SET_NULL, null=True, blank=True
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.name


# --------- Contacts ---------
class Contact(models.Model):
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=255)
    phone = models.CharField(max_length=40, blank=True, default="")
    subject = models.CharField(max_length=255)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} <{self.email}>: {self.subject}"


# --------- Orders ---------
class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


# status -> statuses it may move to; nothing goes back to PENDING
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}


class OrderQuerySet(models.QuerySet):
    """
    Every status change goes through a conditional UPDATE so that two
    requests racing on the same row cannot both apply a transition.
    """

    def pending(self):
        return self.filter(status=OrderStatus.PENDING)

    def for_session(self, session_id: str):
        return self.filter(stripe_session_id=session_id)

    def attach_session(self, order_id: int, session_id: str) -> int:
        return self.filter(pk=order_id, status=OrderStatus.PENDING).update(
            stripe_session_id=session_id, updated_at=timezone.now()
        )

    def mark_completed(self, order_id: int, session_id: str) -> int:
        """PENDING -> COMPLETED compare-and-set. Returns the number of rows changed (0 or 1)."""
        now = timezone.now()
        return (
            self.filter(pk=order_id, status=OrderStatus.PENDING)
            .filter(Q(stripe_session_id=session_id) | Q(stripe_session_id__isnull=True))
            .update(
                status=OrderStatus.COMPLETED,
                stripe_session_id=session_id,
                completed_at=now,
                updated_at=now,
            )
        )

    def cancel_stale(self, older_than) -> int:
        return self.pending().filter(created_at__lt=older_than).update(
            status=OrderStatus.CANCELLED, updated_at=timezone.now()
        )


class Order(models.Model):
    # assigned right after the hosted session is created; unique at the DB level
    stripe_session_id = models.CharField(max_length=255, unique=True, null=True, blank=True)

    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(max_length=255)
    customer_phone = models.CharField(max_length=40)
    customer_address = models.TextField()

    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="usd")
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Order #{self.id} - {self.customer_name} ({self.status})"

    def can_transition(self, new_status: str) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, set())

    def items_total(self) -> Decimal:
        return sum((it.line_total for it in self.items.all()), Decimal("0.00"))


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    # historical reference only: the product may be deleted later, name/price are copied
    product = models.ForeignKey(
        Product,
        related_name="order_items",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        db_constraint=False,
    )
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2, help_text="Unit price at order time")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity}x {self.name} in Order #{self.order_id}"

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
