# backend/config/celery.py
import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.prod')

app = Celery('fieldservice')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_routes = {
    # Audit records are small and latency-sensitive
    'apps.core.tasks.*': {'queue': 'activity'},

    # Daily document maintenance
    'apps.finance.tasks.*': {'queue': 'maintenance'},
}

app.conf.beat_schedule = {
    'mark-overdue-invoices': {
        'task': 'apps.finance.tasks.mark_overdue_invoices',
        'schedule': crontab(minute=15, hour=0),  # 00:15 daily
    },
    'expire-stale-estimates': {
        'task': 'apps.finance.tasks.expire_stale_estimates',
        'schedule': crontab(minute=30, hour=0),  # 00:30 daily
    },
}
