from django.apps import AppConfig


class TvlPaymentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tvl_payments'
    verbose_name = "Payments & Allocations"
