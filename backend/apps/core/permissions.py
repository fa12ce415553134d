# apps/core/permissions.py

from apps.auth.permissions import IsTenantMember


class TenantPermission(IsTenantMember):
    """
    Permission class for tenant-aware operations: the caller must be an
    active member of the tenant resolved for the request, and objects
    must belong to that tenant.
    """

    def has_object_permission(self, request, view, obj):
        tenant = getattr(request, 'tenant', None)
        return tenant is not None and getattr(obj, 'tenant_id', None) == tenant.id
