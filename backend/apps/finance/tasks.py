"""
Finance Maintenance Tasks
Daily Celery beat tasks that move documents past their dates
"""

import logging

from celery import shared_task
from django.db import DatabaseError
from django.utils import timezone

from apps.core.exceptions import ServiceException
from apps.core.models import Tenant
from apps.core.services.base import ServiceContext
from apps.core.utils import to_date

logger = logging.getLogger(__name__)


def _operational_tenants(tenant_id=None):
    tenants = Tenant.objects.filter(status__in=('active', 'trial')).order_by('id')
    if tenant_id:
        tenants = tenants.filter(id=tenant_id)
    return tenants


def _run_for_tenants(label, operation, tenant_id=None):
    """Run ``operation(tenant)`` for each tenant; one tenant failing does not stop the rest"""
    processed = 0
    failed = []

    for tenant in _operational_tenants(tenant_id):
        try:
            processed += len(operation(tenant))
        except (ServiceException, DatabaseError):
            logger.exception(f"{label} failed for tenant {tenant.pk}")
            failed.append(tenant.pk)

    logger.info(f"{label} completed: {processed} documents updated, {len(failed)} tenants failed")
    return {'processed': processed, 'failed_tenants': failed}


@shared_task
def mark_overdue_invoices(as_of=None, tenant_id=None):
    """Flag unpaid sent/viewed invoices whose due date has passed"""
    from .services import InvoiceService

    as_of = to_date(as_of, 'as_of') or timezone.localdate()
    return _run_for_tenants(
        'Overdue invoice sweep',
        lambda tenant: InvoiceService(ServiceContext.system(tenant)).mark_overdue(as_of),
        tenant_id,
    )


@shared_task
def expire_stale_estimates(as_of=None, tenant_id=None):
    """Expire sent/viewed estimates past their valid-until date"""
    from .services import EstimateService

    as_of = to_date(as_of, 'as_of') or timezone.localdate()
    return _run_for_tenants(
        'Estimate expiry sweep',
        lambda tenant: EstimateService(ServiceContext.system(tenant)).expire_estimates(as_of),
        tenant_id,
    )
