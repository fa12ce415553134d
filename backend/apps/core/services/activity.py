# apps/core/services/activity.py

import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEvent:
    """One audit record describing a committed mutation"""
    tenant_id: int
    actor_id: Optional[int]
    entity_type: str
    entity_id: str
    action: str
    changes: Dict = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: str = field(default_factory=lambda: timezone.now().isoformat())

    def as_payload(self) -> Dict:
        return asdict(self)


def write_activity(payload: Dict):
    """
    Persist an audit payload. Safe to call more than once for the same
    event: the event id is unique, so redelivery returns the existing row.
    """
    from ..models import ActivityLog

    occurred_at = payload.get('occurred_at')
    if isinstance(occurred_at, str):
        occurred_at = parse_datetime(occurred_at)

    log, created = ActivityLog.objects.get_or_create(
        event_id=payload['event_id'],
        defaults={
            'tenant_id': payload['tenant_id'],
            'user_id': payload.get('actor_id'),
            'entity_type': payload['entity_type'],
            'entity_id': str(payload['entity_id']),
            'action': payload['action'],
            'changes': payload.get('changes') or {},
            'occurred_at': occurred_at or timezone.now(),
        },
    )
    if not created:
        logger.debug("Activity event %s already recorded", payload['event_id'])
    return log


class CeleryActivitySink:
    """
    Emits audit events through Celery once the surrounding transaction
    commits. Rolled-back work emits nothing.
    """

    def emit(self, event: ActivityEvent):
        transaction.on_commit(lambda: self.dispatch(event))

    def dispatch(self, event: ActivityEvent):
        from ..tasks import record_activity

        payload = event.as_payload()
        try:
            record_activity.delay(payload)
        except Exception:
            # Broker unreachable: keep the record by writing it inline
            logger.exception(
                "Could not queue activity event %s, writing it directly", event.event_id
            )
            write_activity(payload)


_default_sink = CeleryActivitySink()


def get_activity_sink():
    return _default_sink
