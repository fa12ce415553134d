# apps/auth/permissions.py

from rest_framework import permissions

from .models import Membership

CRUD = ('create', 'read', 'update', 'delete')

# Permission matrix: role -> resource -> allowed actions
ROLE_PERMISSIONS = {
    Membership.ROLE_ADMIN: {
        'settings': CRUD + ('manage',),
        'users': CRUD + ('manage',),
        'customers': CRUD,
        'properties': CRUD,
        'equipment': CRUD,
        'jobs': CRUD,
        'schedule': CRUD,
        'estimates': CRUD,
        'invoices': CRUD,
        'payments': CRUD,
        'reports': ('read',),
    },
    Membership.ROLE_OFFICE_MANAGER: {
        'settings': ('read',),
        'users': ('read',),
        'customers': CRUD,
        'properties': CRUD,
        'equipment': CRUD,
        'jobs': CRUD,
        'schedule': CRUD,
        'estimates': CRUD,
        'invoices': CRUD,
        'payments': CRUD,
        'reports': ('read',),
    },
    Membership.ROLE_DISPATCHER: {
        'customers': ('read',),
        'properties': ('read',),
        'equipment': ('read',),
        'jobs': ('create', 'read', 'update'),
        'schedule': CRUD,
        'estimates': ('read',),
        'invoices': ('read',),
        'reports': ('read',),
    },
    Membership.ROLE_CSR: {
        'customers': ('create', 'read', 'update'),
        'properties': ('create', 'read', 'update'),
        'equipment': ('create', 'read', 'update'),
        'jobs': ('create', 'read'),
        'schedule': ('create', 'read'),
        'estimates': ('create', 'read'),
        'invoices': ('read',),
    },
    Membership.ROLE_TECHNICIAN: {
        'customers': ('read',),
        'properties': ('read',),
        'equipment': ('read', 'create', 'update'),
        'jobs': ('read', 'update'),
        'schedule': ('read',),
        'estimates': ('read', 'create'),
        'payments': ('create',),
    },
}

# Scheduled maintenance runs without a user
SYSTEM_PERMISSIONS = {
    'jobs': CRUD,
    'schedule': CRUD,
    'estimates': CRUD,
    'invoices': CRUD,
    'payments': CRUD,
}


def has_permission(role, resource, action):
    """Check the role matrix; ``manage`` implies every action on a resource"""
    if role == 'system':
        role_permissions = SYSTEM_PERMISSIONS
    else:
        role_permissions = ROLE_PERMISSIONS.get(role)
    if not role_permissions:
        return False

    allowed = role_permissions.get(resource)
    if not allowed:
        return False
    return action in allowed or 'manage' in allowed


def role_permission_gate(context, resource, action):
    """Default permission gate for the service layer"""
    return has_permission(context.role, resource, action)


class IsTenantMember(permissions.BasePermission):
    """
    Permission to check if user is a member of the current tenant
    """

    message = 'User does not have access to this tenant'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        # Get tenant from request (set by middleware)
        tenant = getattr(request, 'tenant', None)
        if not tenant:
            return False

        # Check if user is a member of this tenant
        return Membership.objects.filter(
            user=request.user,
            tenant=tenant,
            is_active=True,
            status='active'
        ).exists()
