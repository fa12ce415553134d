# ============================================================================
# backend/apps/crm/models.py - Customers and service locations
# ============================================================================

from django.db import models

from apps.core.models import TenantBaseModel


class Customer(TenantBaseModel):
    """Person or business that jobs, estimates and invoices are for"""

    CUSTOMER_TYPES = [
        ('residential', 'Residential'),
        ('commercial', 'Commercial'),
    ]

    customer_type = models.CharField(max_length=20, choices=CUSTOMER_TYPES, default='residential')
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    company_name = models.CharField(max_length=200, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'crm_customer'
        ordering = ['last_name', 'first_name', 'id']
        indexes = [
            models.Index(fields=['tenant', 'last_name']),
            models.Index(fields=['tenant', 'email']),
        ]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        if self.customer_type == 'commercial' and self.company_name:
            return self.company_name
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.company_name or f"Customer {self.pk}"


class Property(TenantBaseModel):
    """Service location belonging to a customer"""

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='properties')
    name = models.CharField(max_length=100, blank=True)
    address_line1 = models.CharField(max_length=255)
    address_line2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=50)
    postal_code = models.CharField(max_length=20)
    access_notes = models.TextField(blank=True)
    is_primary = models.BooleanField(default=False)

    class Meta:
        db_table = 'crm_property'
        verbose_name_plural = 'properties'
        ordering = ['-is_primary', 'id']

    def __str__(self):
        return f"{self.address_line1}, {self.city}"
