from .base import BASE_DIR
from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK
from .base import *  # noqa

# Test settings: force SQLite so the suite runs without external services
DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test_db.sqlite3",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Manifest storage needs collectstatic; tests don't run it
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

PAYMENT_GATEWAY_SECRET = "test-gateway-secret"
PAYMENTS_MOCK_MODE = False

# Relax throttling for tests to reduce flakiness
REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "user": "10000/min",
    "anon": "10000/min",
    "catalog": "1000/min",
    "cart": "1000/min",
    "cart_write": "1000/min",
    "orders": "1000/min",
    "orders_write": "1000/min",
    "orders_admin": "1000/min",
}
