# backend/apps/core/tasks.py
from celery import shared_task
from django.conf import settings
from django.db import DatabaseError
import logging

from .services.activity import write_activity

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    acks_late=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={'max_retries': settings.FIELD_SERVICE.get('ACTIVITY_TASK_MAX_RETRIES', 5)},
)
def record_activity(self, payload):
    """Store one audit event. Redelivered events are ignored."""
    log = write_activity(payload)
    logger.debug(
        "Recorded activity %s %s#%s", payload['action'], payload['entity_type'], payload['entity_id']
    )
    return log.pk
