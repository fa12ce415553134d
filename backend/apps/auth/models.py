# apps/auth/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """Custom User model shared by every tenant"""

    # Basic Info
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, blank=True)

    # Preferences
    timezone = models.CharField(max_length=50, default='UTC')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        db_table = 'auth_user_account'

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.email})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def get_tenant_memberships(self):
        """Get all tenant memberships for this user"""
        return self.memberships.filter(is_active=True, status='active')


class Membership(models.Model):
    """Links users to tenants with a field-service role"""

    ROLE_ADMIN = 'admin'
    ROLE_OFFICE_MANAGER = 'office_manager'
    ROLE_DISPATCHER = 'dispatcher'
    ROLE_CSR = 'csr'
    ROLE_TECHNICIAN = 'technician'

    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_OFFICE_MANAGER, 'Office Manager'),
        (ROLE_DISPATCHER, 'Dispatcher'),
        (ROLE_CSR, 'Customer Service Rep'),
        (ROLE_TECHNICIAN, 'Technician'),
    ]

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('pending', 'Pending'),
        ('suspended', 'Suspended'),
    ]

    # Relationships
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='memberships')
    tenant = models.ForeignKey('core.Tenant', on_delete=models.CASCADE, related_name='memberships')

    # Role & Status
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CSR)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    is_active = models.BooleanField(default=True)

    # Dispatch
    can_be_dispatched = models.BooleanField(default=False)
    color = models.CharField(max_length=7, blank=True)

    # Dates
    joined_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'auth_membership'
        unique_together = ['user', 'tenant']
        indexes = [
            models.Index(fields=['tenant', 'role']),
            models.Index(fields=['user', 'is_active']),
        ]

    def __str__(self):
        return f"{self.user.email} - Tenant {self.tenant_id} ({self.role})"
