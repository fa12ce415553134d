# apps/core/tests/integration/test_api_auth.py
import pytest
from rest_framework import status

from apps.auth.models import Membership
from ..factories import TenantFactory


@pytest.mark.django_db
class TestTokenAuthentication:
    """Test JWT login and tenant resolution for API requests."""

    def obtain_token(self, api_client, user):
        response = api_client.post('/api/auth/token/', {
            'email': user.email,
            'password': 'testpass123',
        }, format='json')
        assert response.status_code == status.HTTP_200_OK
        return response.data['access']

    def test_single_membership_resolves_tenant(self, api_client, admin_member):
        """Test that a bearer token alone selects the caller's only tenant."""
        token = self.obtain_token(api_client, admin_member)
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = api_client.get('/api/jobs/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 0

    def test_multiple_memberships_need_tenant_header(self, api_client, admin_member):
        second = TenantFactory()
        Membership.objects.create(user=admin_member, tenant=second, role=Membership.ROLE_DISPATCHER)
        token = self.obtain_token(api_client, admin_member)
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        assert api_client.get('/api/jobs/').status_code == status.HTTP_403_FORBIDDEN
        assert api_client.get('/api/jobs/', HTTP_X_TENANT_SLUG=second.slug).status_code == status.HTTP_200_OK

    def test_invalid_token_is_rejected(self, api_client, tenant):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = api_client.get('/api/jobs/', HTTP_X_TENANT_SLUG=tenant.slug)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['code'] == 'TOKEN_NOT_VALID'

    def test_inactive_tenant(self, api_client, make_member):
        suspended = TenantFactory(status='suspended')
        user = make_member(suspended)
        api_client.force_authenticate(user=user)

        response = api_client.get('/api/jobs/', HTTP_X_TENANT_SLUG=suspended.slug)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()['error']['code'] == 'TENANT_INACTIVE'

    def test_user_tenants(self, api_client, tenant, admin_member):
        api_client.force_authenticate(user=admin_member)

        response = api_client.get('/api/auth/tenants/')

        assert response.status_code == status.HTTP_200_OK
        assert [(m['tenant_slug'], m['role']) for m in response.data] == [(tenant.slug, 'admin')]
