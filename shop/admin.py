# shop/admin.py
from django.contrib import admin, messages
from django.utils import timezone
from django.utils.html import format_html

from .models import Category, Contact, Order, OrderItem, Product


# ===============================
# Category
# ===============================
@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("name",)


# ===============================
# Product
# ===============================
@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "price", "category", "thumb", "created_at")
    list_filter = ("category",)
    search_fields = ("name", "description")
    readonly_fields = ("thumb_preview",)

    def thumb(self, obj):
        if not obj.image_url:
            return "—"
        return format_html(
            '<img src="{}" style="height:40px;width:40px;object-fit:cover;border-radius:6px;" />',
            obj.image_url,
        )
    thumb.short_description = "Thumb"

    def thumb_preview(self, obj):
        if not obj.image_url:
            return "—"
        return format_html('<img src="{}" style="max-width:240px;height:auto;border-radius:8px;" />', obj.image_url)


# ===============================
# Order / OrderItem
# ===============================
class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    # snapshot taken at checkout, never edited afterwards
    readonly_fields = ("product", "name", "price", "quantity")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "customer_name", "customer_email", "status", "total", "currency", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("customer_name", "customer_email", "stripe_session_id")
    inlines = [OrderItemInline]
    actions = ["cancel_pending"]
    readonly_fields = (
        "stripe_session_id",
        "customer_name",
        "customer_email",
        "customer_phone",
        "customer_address",
        "total",
        "currency",
        "status",
        "created_at",
        "updated_at",
        "completed_at",
    )

    def has_add_permission(self, request):
        return False

    @admin.action(description="Cancel selected pending orders")
    def cancel_pending(self, request, queryset):
        changed = queryset.cancel_stale(older_than=timezone.now())
        skipped = queryset.count() - changed
        self.message_user(request, f"{changed} order(s) cancelled.", messages.SUCCESS)
        if skipped > 0:
            self.message_user(request, f"{skipped} order(s) were not pending and were left untouched.", messages.WARNING)


# ===============================
# Contact
# ===============================
@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "email", "subject", "created_at")
    search_fields = ("name", "email", "subject", "message")
    readonly_fields = ("created_at",)
