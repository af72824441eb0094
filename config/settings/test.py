# config/settings/test.py
from .base import *  # noqa

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

BONUS_ENGINE = {
    **BONUS_ENGINE,  # noqa: F405
    "RECALC_LOCK_RETRY_DELAY": 0,
}

LOGGING["loggers"]["vn_core"]["level"] = "DEBUG"  # noqa: F405
