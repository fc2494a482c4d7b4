"""
App-level settings read from ``settings.PRIVATE_ORDERS``.
"""
from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "APP_URL": "http://localhost:8000",
    "NOTIFICATION_BACKEND": "private_orders.infra.notifications.InAppNotificationBackend",
    "WEBHOOK_URL": "",
    "NOTIFICATION_TIMEOUT_SECONDS": 5.0,
    "MAX_NOTIFICATION_RETRIES": 5,
    "DISPATCH_ON_COMMIT": True,
    "DEFAULT_DISTRIBUTOR_CODE": "ORD",
    "DASHBOARD_WINDOW_DAYS": 30,
    "VERIFICATION_TIMEOUT_HOURS": 72,
}


def get_setting(name: str) -> Any:
    """Return an app setting, falling back to the default."""
    overrides = getattr(settings, "PRIVATE_ORDERS", {}) or {}
    if name in overrides:
        return overrides[name]
    if name not in DEFAULTS:
        raise KeyError(f"Unknown private_orders setting: {name}")
    return DEFAULTS[name]
