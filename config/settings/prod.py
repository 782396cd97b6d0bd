import sentry_sdk
from decouple import Csv, config
from sentry_sdk.integrations.django import DjangoIntegration

from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK
from .base import *  # noqa

DEBUG = False

# Require explicit secret key and hosts in production
SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", cast=Csv())

CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())
CORS_ALLOW_CREDENTIALS = config("CORS_ALLOW_CREDENTIALS", default=True, cast=bool)
SESSION_COOKIE_SAMESITE = config("SESSION_COOKIE_SAMESITE", default="Lax")
CSRF_COOKIE_SAMESITE = config("CSRF_COOKIE_SAMESITE", default="Lax")

# Security hardening
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = config("SECURE_HSTS_SECONDS", default=31536000, cast=int)
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

# Cache: use Redis in production when REDIS_URL is provided; otherwise keep base cache
_REDIS_URL = config("REDIS_URL", default="")
if _REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _REDIS_URL,
        }
    }

# Sessions: cached_db stores sessions in DB with cache acceleration
SESSION_ENGINE = "django.contrib.sessions.backends.cached_db"

# Logging: JSON output with contextual extras
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "config.logging.JsonFormatter",
        },
    },
    "filters": {
        # Sample INFO logs per app; listed events are never dropped.
        "cart_info_sample": {
            "()": "config.logging.SamplingFilter",
            "rate": config("CART_LOG_SAMPLE_RATE", default=1.0, cast=float),
            "levels": ["INFO"],
            "allow_events": ["cart.checked_out", "cart.sync_conflict", "cart.expired_removed"],
        },
        "orders_info_sample": {
            "()": "config.logging.SamplingFilter",
            "rate": config("ORDERS_LOG_SAMPLE_RATE", default=1.0, cast=float),
            "levels": ["INFO"],
            "allow_events": ["order_status_changed", "order_placed", "order_paid"],
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
        "cart_console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["cart_info_sample"],
        },
        "orders_console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["orders_info_sample"],
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "storefront.catalog": {
            "handlers": ["console"],
            "level": config("CATALOG_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
        "storefront.cart": {
            "handlers": ["cart_console"],
            "level": "INFO",
            "propagate": False,
        },
        "storefront.orders": {
            "handlers": ["orders_console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

# Sentry
SENTRY_DSN = config("SENTRY_DSN", default="")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=config("SENTRY_ENV", default="production"),
        integrations=[DjangoIntegration()],
        traces_sample_rate=config("SENTRY_TRACES_SAMPLE_RATE", default=0.0, cast=float),
        send_default_pii=config("SENTRY_SEND_DEFAULT_PII", default=True, cast=bool),
    )

# DRF throttling: every scope can be tuned per deployment
REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    scope: config(f"THROTTLE_RATE_{scope.upper()}", default=rate)
    for scope, rate in BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}).items()
}

# Real gateway signatures are required in production
PAYMENT_GATEWAY_SECRET = config("PAYMENT_GATEWAY_SECRET")
PAYMENTS_MOCK_MODE = False
