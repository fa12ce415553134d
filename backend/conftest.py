# backend/conftest.py
import pytest
from rest_framework.test import APIClient

from apps.auth.models import Membership
from apps.core.services.base import ServiceContext
from apps.core.tests.factories import MembershipFactory, TenantFactory, UserFactory
from apps.crm.tests.factories import CustomerFactory, PropertyFactory


class RecordingActivitySink:
    """In-memory activity sink that keeps every emitted event"""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def actions(self, entity_type=None):
        return [e.action for e in self.events if entity_type is None or e.entity_type == entity_type]


@pytest.fixture
def tenant():
    """Create test tenant."""
    return TenantFactory(name='Acme Heating', slug='acme')


@pytest.fixture
def other_tenant():
    """A second tenant whose data must stay invisible to the first."""
    return TenantFactory(name='Other Plumbing', slug='other')


@pytest.fixture
def make_member():
    """Create a user with an active membership of the given role."""
    def _make_member(tenant, role=Membership.ROLE_ADMIN, **kwargs):
        user = UserFactory()
        MembershipFactory(user=user, tenant=tenant, role=role, **kwargs)
        return user
    return _make_member


@pytest.fixture
def admin_member(tenant, make_member):
    return make_member(tenant, Membership.ROLE_ADMIN)


@pytest.fixture
def dispatcher_member(tenant, make_member):
    return make_member(tenant, Membership.ROLE_DISPATCHER)


@pytest.fixture
def csr_member(tenant, make_member):
    return make_member(tenant, Membership.ROLE_CSR)


@pytest.fixture
def technician(tenant, make_member):
    return make_member(tenant, Membership.ROLE_TECHNICIAN, can_be_dispatched=True)


@pytest.fixture
def activity_sink():
    return RecordingActivitySink()


@pytest.fixture
def admin_context(tenant, admin_member):
    return ServiceContext.for_user(tenant, admin_member)


@pytest.fixture
def technician_context(tenant, technician):
    return ServiceContext.for_user(tenant, technician)


@pytest.fixture
def other_context(other_tenant, make_member):
    return ServiceContext.for_user(other_tenant, make_member(other_tenant, Membership.ROLE_ADMIN))


@pytest.fixture
def customer(tenant):
    return CustomerFactory(tenant=tenant, first_name='Dana', last_name='Reyes')


@pytest.fixture
def customer_property(customer):
    return PropertyFactory(customer=customer, tenant=customer.tenant)


@pytest.fixture
def other_customer(other_tenant):
    return CustomerFactory(tenant=other_tenant)


@pytest.fixture
def api_client():
    """Create API client."""
    return APIClient()


@pytest.fixture
def member_client(api_client, tenant, admin_member):
    """API client authenticated as a tenant admin, scoped to ``tenant``."""
    api_client.force_authenticate(user=admin_member)
    api_client.credentials(HTTP_X_TENANT_SLUG=tenant.slug)
    return api_client
