# shop/serializers.py: catalog, contacts, orders (read) and the checkout request (write)
from decimal import Decimal

from rest_framework import serializers

from .models import Category, Contact, Order, OrderItem, Product
from .payments import amount_to_cents


# --------- Categories ---------
class CategorySerializer(serializers.ModelSerializer):
    # only present when the queryset is annotated
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ["id", "name", "description", "created_at", "product_count"]

    def get_product_count(self, obj):
        return int(getattr(obj, "product_count", 0) or 0)


# --------- Products ---------
class ProductSerializer(serializers.ModelSerializer):
    category = CategorySerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source="category",
        write_only=True,
        required=False,
        allow_null=True,
    )
    category_name = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "price",
            "image_url",
            "category",
            "category_id",
            "category_name",
            "created_at",
            "updated_at",
        ]

    def _resolve_category(self, validated_data):
        name = (validated_data.pop("category_name", "") or "").strip()
        if name and "category" not in validated_data:
            category, _ = Category.objects.get_or_create(
                name=name, defaults={"description": f"{name} products"}
            )
            validated_data["category"] = category
        return validated_data

    def create(self, validated_data):
        return super().create(self._resolve_category(validated_data))

    def update(self, instance, validated_data):
        return super().update(instance, self._resolve_category(validated_data))


# --------- Contacts ---------
class ContactSerializer(serializers.ModelSerializer):
    class Meta:
        model = Contact
        fields = ["id", "name", "email", "phone", "subject", "message", "created_at"]
        read_only_fields = ["created_at"]


# ===========================
#  ORDERS (READ)
# ===========================
class OrderItemReadSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(read_only=True, allow_null=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ("id", "product_id", "name", "price", "quantity", "line_total")


class OrderReadSerializer(serializers.ModelSerializer):
    items = OrderItemReadSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = (
            "id",
            "stripe_session_id",
            "customer_name",
            "customer_email",
            "customer_phone",
            "customer_address",
            "total",
            "currency",
            "status",
            "items",
            "created_at",
            "updated_at",
            "completed_at",
        )


# ===========================
#  CHECKOUT (WRITE)
# ===========================
class CustomerSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, trim_whitespace=True)
    email = serializers.EmailField(max_length=255)
    phone = serializers.CharField(max_length=40, trim_whitespace=True)
    address = serializers.CharField(trim_whitespace=True)


class CheckoutItemSerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"))
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSessionRequestSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, required=False)
    currency = serializers.CharField(max_length=3, min_length=3, required=False)
    name = serializers.CharField(max_length=255, required=False, default="Your Order")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    customer = CustomerSerializer()
    items = CheckoutItemSerializer(many=True, required=False)

    def validate(self, attrs):
        items = attrs.get("items")
        if items is None:
            items = self.context.get("cart_items") or []
        if not items:
            raise serializers.ValidationError({"items": "Cart is empty."})
        attrs["items"] = items

        if "amount" not in attrs:
            attrs["amount"] = sum(amount_to_cents(it["price"]) * int(it["quantity"]) for it in items)
            if attrs["amount"] < 1:
                raise serializers.ValidationError({"amount": "Order total must be positive."})

        if not attrs.get("description"):
            attrs["description"] = ", ".join(f"{it['name']} (x{it['quantity']})" for it in items)
        return attrs
