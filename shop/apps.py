from django.apps import AppConfig


class ShopConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "shop"
    verbose_name = "Storefront"

    def ready(self):
        # connects the order_completed receivers
        from . import signals  # noqa: F401
