# middlewares/tenant_middleware.py

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from apps.auth.models import Membership
from apps.core.models import Tenant
import logging

logger = logging.getLogger(__name__)


class TenantContextMiddleware(MiddlewareMixin):
    """
    Middleware to add tenant context to request based on:
    1. HTTP header X-Tenant-Slug
    2. The caller's only active membership
    Membership itself is verified by the API permission classes.
    """

    PUBLIC_URLS = [
        '/api/auth/',
        '/api/docs/',
        '/api/redoc/',
        '/api/schema/',
        '/admin/',
        '/static/',
    ]

    def process_request(self, request):
        """
        Add tenant context to request
        """
        request.tenant = None

        if self.is_public_url(request.path):
            return None

        tenant_slug = request.META.get('HTTP_X_TENANT_SLUG')
        if tenant_slug:
            tenant = Tenant.objects.filter(slug=tenant_slug).first()
            if tenant is None:
                return JsonResponse({
                    'error': {'code': 'TENANT_NOT_FOUND', 'message': f"Unknown tenant '{tenant_slug}'"}
                }, status=404)
        else:
            tenant = self.get_tenant_from_membership(request)

        if tenant is None:
            return None

        if not tenant.is_operational:
            return JsonResponse({
                'error': {'code': 'TENANT_INACTIVE', 'message': 'Tenant is not active'}
            }, status=403)

        request.tenant = tenant
        return None

    def is_public_url(self, path):
        return any(path.startswith(url) for url in self.PUBLIC_URLS)

    def get_tenant_from_membership(self, request):
        """
        Use the caller's tenant when they belong to exactly one
        """
        user = self.get_user(request)
        if user is None:
            return None

        memberships = list(
            Membership.objects.filter(user=user, is_active=True, status='active')
            .select_related('tenant')[:2]
        )
        if len(memberships) == 1:
            return memberships[0].tenant
        return None

    def get_user(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            return user

        try:
            auth_result = JWTAuthentication().authenticate(request)
        except (InvalidToken, TokenError, AuthenticationFailed) as e:
            logger.debug(f"Ignoring unusable bearer token: {e}")
            return None
        return auth_result[0] if auth_result else None
