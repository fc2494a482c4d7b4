from django.apps import AppConfig


class PrivateOrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "private_orders"
    verbose_name = "Private client orders"
