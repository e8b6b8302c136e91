"""Test settings - uses SQLite for fast local testing."""
import os

os.environ.setdefault("DEBUG", "True")
os.environ.setdefault(
    "SECRET_KEY",
    "test-only-secret-key-4f9c1e7a2b8d6053a9e1c7b4d2f8a6e0c3b5d7f9a1",
)

from .base import *  # noqa: F401,F403,E402

DEBUG = True

# Use SQLite for tests (no PostgreSQL dependency)
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}
DATABASES["default"]["ATOMIC_REQUESTS"] = False

# Faster password hashing in tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Redis cache in tests
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Disable Celery in tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_RESULT_BACKEND = "cache+memory://"

# Disable API throttling in tests for deterministic runs
REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []  # noqa: F405
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}  # noqa: F405

# Email
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# SMS gateway stays unconfigured: messages are logged only.
SMS_GATEWAY_URL = ""

# Disable logging noise during tests
LOGGING["root"]["level"] = "WARNING"  # noqa: F405
LOGGING["loggers"]["groupbuy"]["handlers"] = ["console"]  # noqa: F405
LOGGING["loggers"]["groupbuy"]["level"] = "WARNING"  # noqa: F405
# Let pytest's caplog see application records.
LOGGING["loggers"]["groupbuy"]["propagate"] = True  # noqa: F405
