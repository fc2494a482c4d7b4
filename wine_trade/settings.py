"""
Django settings for the wine_trade project.
"""
from __future__ import annotations

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env()
environ.Env.read_env(BASE_DIR / ".env")

SECRET_KEY = env("SECRET_KEY", default="insecure-dev-key")
DEBUG = env.bool("DEBUG", default=False)
ALLOWED_HOSTS: list[str] = env.list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"])

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "private_orders",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "wine_trade.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

ASGI_APPLICATION = "wine_trade.asgi.application"

DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}
DATABASES["default"]["ATOMIC_REQUESTS"] = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

PRIVATE_ORDERS = {
    "APP_URL": env("APP_URL", default="http://localhost:8000"),
    "NOTIFICATION_BACKEND": env(
        "NOTIFICATION_BACKEND",
        default="private_orders.infra.notifications.InAppNotificationBackend",
    ),
    "WEBHOOK_URL": env("NOTIFICATION_WEBHOOK_URL", default=""),
    "NOTIFICATION_TIMEOUT_SECONDS": env.float("NOTIFICATION_TIMEOUT_SECONDS", default=5.0),
    "MAX_NOTIFICATION_RETRIES": env.int("MAX_NOTIFICATION_RETRIES", default=5),
    "DISPATCH_ON_COMMIT": env.bool("DISPATCH_ON_COMMIT", default=True),
    "DEFAULT_DISTRIBUTOR_CODE": env("DEFAULT_DISTRIBUTOR_CODE", default="ORD"),
    "DASHBOARD_WINDOW_DAYS": env.int("DASHBOARD_WINDOW_DAYS", default=30),
    "VERIFICATION_TIMEOUT_HOURS": env.int("VERIFICATION_TIMEOUT_HOURS", default=72),
}

LOG_LEVEL = env("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {"()": "private_orders.utils.logging.JsonFormatter"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
    },
    "loggers": {
        "private_orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django": {"handlers": ["console"], "level": "WARNING"},
    },
}
