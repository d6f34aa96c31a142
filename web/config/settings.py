"""Django settings for the checkout orchestration backend.

Every tunable is read from the environment so the same module serves local
development, tests and the containerised deployment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent  # .../web


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = _env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.accounts",
    "apps.catalog",
    "apps.orders",
    "apps.payments",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "gateway.middleware.AuthenticatedUserMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# Postgres when DB_NAME is provided, SQLite otherwise
if os.getenv("DB_NAME"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME"),
            "USER": os.getenv("DB_USER", "orders_user"),
            "PASSWORD": os.getenv("DB_PASSWORD", "orders-pass"),
            "HOST": os.getenv("DB_HOST", "orders-db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_RATES": {
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "600/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "600/min"),
        "payments": os.getenv("THROTTLE_PAYMENTS", "120/min"),
    },
}

# ---- Orchestration / adapters ----
USE_HTTP_ADAPTERS = _env_bool("USE_HTTP_ADAPTERS", "true")

PAYMENT_GATEWAY_BASE_URL = os.getenv("PAYMENT_GATEWAY_BASE_URL", "https://api.pagar.me/core/v5")
PAYMENT_GATEWAY_SECRET_KEY = os.getenv("PAYMENT_GATEWAY_SECRET_KEY", "")
PAYMENT_STATEMENT_DESCRIPTOR = os.getenv("PAYMENT_STATEMENT_DESCRIPTOR", "CHECKOUT")

HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "10"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

PAYMENT_SPLIT_ENABLED = _env_bool("PAYMENT_SPLIT_ENABLED")
PAYMENT_SPLIT_RECIPIENT_ID = os.getenv("PAYMENT_SPLIT_RECIPIENT_ID", "")
PAYMENT_SPLIT_PERCENTAGE = os.getenv("PAYMENT_SPLIT_PERCENTAGE", "0")
PAYMENT_SPLIT_CHARGE_PROCESSING_FEE = _env_bool("PAYMENT_SPLIT_CHARGE_PROCESSING_FEE")
PAYMENT_SPLIT_CHARGE_REMAINDER_FEE = _env_bool("PAYMENT_SPLIT_CHARGE_REMAINDER_FEE")
PAYMENT_SPLIT_LIABLE = _env_bool("PAYMENT_SPLIT_LIABLE")

DEFAULT_CUSTOMER_PHONE = os.getenv("DEFAULT_CUSTOMER_PHONE", "11999999999")
DEFAULT_CUSTOMER_COUNTRY = os.getenv("DEFAULT_CUSTOMER_COUNTRY", "br")

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(user_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
