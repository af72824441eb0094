# config/settings/prod.py
from .base import *  # noqa

DEBUG = False

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True

LOGGING["loggers"]["vn_core"]["level"] = os.getenv("VN_LOG_LEVEL", "WARNING")  # noqa: F405
