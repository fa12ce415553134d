# ============================================================================
# backend/apps/core/services/base.py - Base Service, Context and Unit of Work
# ============================================================================

import functools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError, transaction
from django.db.models import Model, QuerySet

from ..exceptions import (
    ConcurrencyError, NotFoundError, OperationFailedError, PermissionDeniedError,
)
from .activity import ActivityEvent, get_activity_sink

logger = logging.getLogger(__name__)

SYSTEM_ROLE = 'system'

PermissionGate = Callable[['ServiceContext', str, str], bool]


@dataclass
class ServiceContext:
    """Tenant and actor every service call runs on behalf of"""
    tenant: Any
    user: Any = None
    role: str = SYSTEM_ROLE
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    metadata: Dict = field(default_factory=dict)

    @property
    def tenant_id(self) -> int:
        return self.tenant.pk

    @property
    def user_id(self) -> Optional[int]:
        return self.user.pk if self.user is not None else None

    @property
    def is_system(self) -> bool:
        return self.role == SYSTEM_ROLE

    @classmethod
    def for_user(cls, tenant, user, request_id: str = None) -> 'ServiceContext':
        """
        Build a context for an authenticated user, resolving their role
        from the active membership in ``tenant``.

        Raises:
            PermissionDeniedError: user is not an active member of the tenant
        """
        from apps.auth.models import Membership

        membership = Membership.objects.filter(
            user=user, tenant=tenant, is_active=True, status='active'
        ).first()
        if membership is None:
            raise PermissionDeniedError('tenant', 'access')

        return cls(
            tenant=tenant,
            user=user,
            role=membership.role,
            request_id=request_id or str(uuid.uuid4()),
        )

    @classmethod
    def system(cls, tenant) -> 'ServiceContext':
        return cls(tenant=tenant, user=None, role=SYSTEM_ROLE)


def _service_settings():
    return getattr(settings, 'FIELD_SERVICE', {})


def atomic_operation(func):
    """
    Run a service method as one unit of work.

    The outermost call owns the transaction and retries it when the database
    reports lock contention; nested calls join the caller's transaction as a
    savepoint and leave retrying to the owner.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if transaction.get_connection().in_atomic_block:
            with transaction.atomic():
                return func(self, *args, **kwargs)

        config = _service_settings()
        max_retries = config.get('SERVICE_MAX_RETRIES', 3)
        backoff = config.get('SERVICE_RETRY_BACKOFF', 0.05)
        attempt = 0

        while True:
            try:
                with transaction.atomic():
                    return func(self, *args, **kwargs)
            except (OperationalError, ConcurrencyError) as exc:
                attempt += 1
                if attempt > max_retries:
                    logger.error(
                        "%s.%s failed after %d attempts: %s",
                        self.__class__.__name__, func.__name__, attempt, exc
                    )
                    raise OperationFailedError(
                        f"{func.__name__.replace('_', ' ').capitalize()} could not be completed, try again",
                        details={'operation': func.__name__, 'attempts': attempt},
                    ) from exc
                logger.warning(
                    "Retrying %s.%s after contention (attempt %d/%d): %s",
                    self.__class__.__name__, func.__name__, attempt, max_retries, exc
                )
                if backoff:
                    time.sleep(backoff * attempt)

    return wrapper


class BaseService:
    """
    Base class for tenant-scoped services.

    Every public operation checks the permission gate first, resolves
    referenced entities inside the caller's tenant only, and reports
    committed mutations to the activity sink.
    """

    resource: str = None

    def __init__(self, context: ServiceContext, permission_gate: PermissionGate = None,
                 activity_sink=None):
        if context is None or context.tenant is None:
            raise ValueError("A tenant context is required")
        self.context = context
        self.tenant = context.tenant
        self.user = context.user
        self.permission_gate = permission_gate or _default_permission_gate()
        self.activity_sink = activity_sink or get_activity_sink()
        self.logger = logger.getChild(self.__class__.__name__)

    def check_permission(self, action: str, resource: str = None):
        resource = resource or self.resource
        if not self.permission_gate(self.context, resource, action):
            self.logger.warning(
                "Permission denied: tenant=%s user=%s role=%s %s:%s",
                self.context.tenant_id, self.context.user_id, self.context.role, resource, action
            )
            raise PermissionDeniedError(resource, action, role=self.context.role)

    def get_for_tenant(self, source, pk, label: str = None, lock: bool = False):
        """
        Fetch one row of this tenant by primary key.

        Rows of other tenants are indistinguishable from missing rows.

        Args:
            source: model class or queryset to look in
            pk: primary key supplied by the caller
            label: resource name used in the NotFound message
            lock: take a row lock (SELECT ... FOR UPDATE)
        """
        queryset = source if isinstance(source, QuerySet) else source.objects.all()
        label = label or queryset.model._meta.verbose_name.title()
        if pk is None or isinstance(pk, bool):
            raise NotFoundError(label, pk)
        if isinstance(pk, Model):
            pk = pk.pk
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=pk, tenant=self.tenant)
        except (queryset.model.DoesNotExist, ValueError, TypeError, DjangoValidationError):
            raise NotFoundError(label, pk)

    def log_activity(self, entity_type: str, entity_id, action: str, changes: Dict = None):
        event = ActivityEvent(
            tenant_id=self.context.tenant_id,
            actor_id=self.context.user_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            changes=changes or {},
        )
        self.activity_sink.emit(event)
        self.logger.info(
            "%s %s %s (tenant=%s, user=%s)",
            entity_type, entity_id, action, self.context.tenant_id, self.context.user_id
        )
        return event


def _default_permission_gate() -> PermissionGate:
    from apps.auth.permissions import role_permission_gate
    return role_permission_gate
