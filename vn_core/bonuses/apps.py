# vn_core/bonuses/apps.py
from django.apps import AppConfig


class BonusesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "vn_core.bonuses"
    verbose_name = "Bonus (加算) calculation"
