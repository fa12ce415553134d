# apps/finance/tests/unit/test_tasks.py
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from apps.core.exceptions import ServiceException
from apps.core.tests.factories import TenantFactory
from ...constants import ESTIMATE_EXPIRED, ESTIMATE_SENT, INVOICE_OVERDUE, INVOICE_SENT
from ...models import Estimate, Invoice
from ...services import InvoiceService
from ...tasks import expire_stale_estimates, mark_overdue_invoices
from ..factories import EstimateFactory, InvoiceFactory


@pytest.mark.django_db
class TestMaintenanceTasks:
    """Test the daily sweeps across tenants."""

    def test_mark_overdue_invoices_for_every_tenant(self, tenant, other_tenant):
        yesterday = timezone.localdate() - timedelta(days=1)
        first = InvoiceFactory(customer__tenant=tenant, status=INVOICE_SENT, due_date=yesterday)
        second = InvoiceFactory(customer__tenant=other_tenant, status=INVOICE_SENT, due_date=yesterday)

        result = mark_overdue_invoices(as_of=timezone.localdate().isoformat())

        assert result == {'processed': 2, 'failed_tenants': []}
        assert Invoice.objects.get(pk=first.pk).status == INVOICE_OVERDUE
        assert Invoice.objects.get(pk=second.pk).status == INVOICE_OVERDUE

    def test_single_tenant_sweep(self, tenant, other_tenant):
        yesterday = timezone.localdate() - timedelta(days=1)
        InvoiceFactory(customer__tenant=tenant, status=INVOICE_SENT, due_date=yesterday)
        untouched = InvoiceFactory(customer__tenant=other_tenant, status=INVOICE_SENT, due_date=yesterday)

        result = mark_overdue_invoices(tenant_id=tenant.pk)

        assert result['processed'] == 1
        assert Invoice.objects.get(pk=untouched.pk).status == INVOICE_SENT

    def test_suspended_tenants_are_skipped(self):
        suspended = TenantFactory(status='suspended')
        invoice = InvoiceFactory(
            customer__tenant=suspended, status=INVOICE_SENT, due_date=timezone.localdate() - timedelta(days=1),
        )

        assert mark_overdue_invoices()['processed'] == 0
        assert Invoice.objects.get(pk=invoice.pk).status == INVOICE_SENT

    def test_failing_tenant_does_not_stop_the_sweep(self, tenant, other_tenant):
        yesterday = timezone.localdate() - timedelta(days=1)
        survivor = InvoiceFactory(customer__tenant=other_tenant, status=INVOICE_SENT, due_date=yesterday)
        real_mark_overdue = InvoiceService.mark_overdue

        def flaky_mark_overdue(service, as_of=None):
            if service.tenant.pk == tenant.pk:
                raise ServiceException('ledger unavailable')
            return real_mark_overdue(service, as_of)

        with patch.object(InvoiceService, 'mark_overdue', flaky_mark_overdue):
            result = mark_overdue_invoices()

        assert result == {'processed': 1, 'failed_tenants': [tenant.pk]}
        assert Invoice.objects.get(pk=survivor.pk).status == INVOICE_OVERDUE

    def test_expire_stale_estimates(self, tenant):
        stale = EstimateFactory(
            customer__tenant=tenant, status=ESTIMATE_SENT, valid_until=timezone.localdate() - timedelta(days=1),
        )

        result = expire_stale_estimates.delay().get()

        assert result == {'processed': 1, 'failed_tenants': []}
        assert Estimate.objects.get(pk=stale.pk).status == ESTIMATE_EXPIRED
