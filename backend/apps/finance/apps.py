# backend/apps/finance/apps.py

"""
Finance App Configuration
"""

from django.apps import AppConfig


class FinanceConfig(AppConfig):
    """Estimates, invoices and payments"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.finance'
    verbose_name = 'Finance'

    def ready(self):
        # Import tasks for Celery
        import apps.finance.tasks  # noqa: F401
