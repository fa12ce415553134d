# apps/core/tests/unit/test_base_service.py
import pytest
from django.db import OperationalError, transaction

from apps.auth.models import Membership
from apps.core.exceptions import (
    ConcurrencyError, NotFoundError, OperationFailedError, PermissionDeniedError,
)
from apps.core.services.base import BaseService, ServiceContext, atomic_operation
from apps.crm.models import Customer
from apps.crm.tests.factories import CustomerFactory


class FlakyService(BaseService):
    resource = 'jobs'

    def __init__(self, context, failures, error=OperationalError, **kwargs):
        super().__init__(context, **kwargs)
        self.failures = failures
        self.error = error
        self.calls = 0

    @atomic_operation
    def touch(self, customer):
        self.calls += 1
        Customer.objects.filter(pk=customer.pk).update(notes=f"attempt {self.calls}")
        if self.calls <= self.failures:
            raise self.error('database is locked')
        return self.calls


@pytest.mark.django_db(transaction=True)
class TestAtomicOperation:
    """Test the unit-of-work decorator."""

    def test_retries_lock_contention(self, admin_context, activity_sink):
        """Test that the outermost call retries and then succeeds."""
        customer = CustomerFactory(tenant=admin_context.tenant)
        service = FlakyService(admin_context, failures=2, activity_sink=activity_sink)

        assert service.touch(customer) == 3
        customer.refresh_from_db()
        assert customer.notes == 'attempt 3'

    def test_retries_concurrency_errors(self, admin_context, activity_sink):
        customer = CustomerFactory(tenant=admin_context.tenant)
        service = FlakyService(admin_context, failures=1, error=ConcurrencyError, activity_sink=activity_sink)

        assert service.touch(customer) == 2

    def test_gives_up_with_generic_failure(self, admin_context, activity_sink, settings):
        """Test that exhausted retries surface as a generic failure and roll back."""
        settings.FIELD_SERVICE = {**settings.FIELD_SERVICE, 'SERVICE_MAX_RETRIES': 2}
        customer = CustomerFactory(tenant=admin_context.tenant, notes='untouched')
        service = FlakyService(admin_context, failures=10, activity_sink=activity_sink)

        with pytest.raises(OperationFailedError) as exc_info:
            service.touch(customer)

        assert service.calls == 3
        assert exc_info.value.status_code == 503
        assert exc_info.value.details == {'operation': 'touch', 'attempts': 3}
        customer.refresh_from_db()
        assert customer.notes == 'untouched'

    def test_nested_call_does_not_retry(self, admin_context, activity_sink):
        """Test that a nested call leaves retrying to the transaction owner."""
        customer = CustomerFactory(tenant=admin_context.tenant)
        service = FlakyService(admin_context, failures=1, activity_sink=activity_sink)

        with pytest.raises(OperationalError):
            with transaction.atomic():
                service.touch(customer)

        assert service.calls == 1


@pytest.mark.django_db
class TestServiceContext:
    """Test tenant context resolution."""

    def test_for_user_resolves_role(self, tenant, technician):
        context = ServiceContext.for_user(tenant, technician, request_id='req-1')

        assert context.role == Membership.ROLE_TECHNICIAN
        assert context.tenant_id == tenant.pk
        assert context.user_id == technician.pk
        assert context.request_id == 'req-1'
        assert not context.is_system

    def test_non_member_is_rejected(self, other_tenant, admin_member):
        with pytest.raises(PermissionDeniedError):
            ServiceContext.for_user(other_tenant, admin_member)

    def test_inactive_member_is_rejected(self, tenant, make_member):
        user = make_member(tenant, Membership.ROLE_ADMIN, status='inactive')

        with pytest.raises(PermissionDeniedError):
            ServiceContext.for_user(tenant, user)

    def test_system_context(self, tenant):
        context = ServiceContext.system(tenant)

        assert context.is_system
        assert context.user_id is None

    def test_service_requires_tenant(self):
        with pytest.raises(ValueError):
            BaseService(ServiceContext(tenant=None))


@pytest.mark.django_db
class TestBaseService:
    """Test permission gate and tenant-scoped lookups."""

    def test_injected_gate_denies_before_anything_else(self, admin_context, activity_sink):
        calls = []

        def deny_all(context, resource, action):
            calls.append((context.role, resource, action))
            return False

        service = BaseService(admin_context, permission_gate=deny_all, activity_sink=activity_sink)

        with pytest.raises(PermissionDeniedError) as exc_info:
            service.check_permission('update', resource='invoices')

        assert calls == [('admin', 'invoices', 'update')]
        assert exc_info.value.details['resource'] == 'invoices'

    def test_other_tenant_rows_are_not_found(self, admin_context, other_customer, activity_sink):
        """Test that a row of another tenant looks exactly like a missing row."""
        service = BaseService(admin_context, activity_sink=activity_sink)

        with pytest.raises(NotFoundError) as exc_info:
            service.get_for_tenant(Customer, other_customer.pk, 'Customer')

        assert exc_info.value.details == {'resource': 'Customer', 'id': other_customer.pk}

    @pytest.mark.parametrize('pk', [None, True, 'abc', 999999])
    def test_bad_identifiers_are_not_found(self, admin_context, activity_sink, pk):
        service = BaseService(admin_context, activity_sink=activity_sink)

        with pytest.raises(NotFoundError):
            service.get_for_tenant(Customer, pk)

    def test_log_activity_emits_event(self, admin_context, activity_sink):
        service = BaseService(admin_context, activity_sink=activity_sink)

        event = service.log_activity('job', 12, 'created', {'job_number': 'JOB-0001'})

        assert activity_sink.events == [event]
        assert event.tenant_id == admin_context.tenant_id
        assert event.actor_id == admin_context.user_id
        assert event.entity_id == '12'
