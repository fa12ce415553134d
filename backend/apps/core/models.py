# apps/core/models.py

import uuid

from django.conf import settings
from django.db import models
from django.utils.text import slugify


class Tenant(models.Model):
    """Isolation boundary: every business record belongs to exactly one tenant"""

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('suspended', 'Suspended'),
        ('trial', 'Trial'),
        ('expired', 'Expired'),
    ]

    # Basic Info
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')

    # Contact info
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    # Timezone and locale
    timezone = models.CharField(max_length=50, default='UTC')
    currency = models.CharField(max_length=3, default='USD')

    # Metadata
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_tenant'

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name

    @property
    def is_operational(self):
        return self.status in ('active', 'trial')


class TenantBaseModel(models.Model):
    """Base model for all tenant-scoped records"""
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class LineItemBase(TenantBaseModel):
    """
    Shared shape of every priced line: job items, estimate option items
    and invoice items. ``total`` is always ``quantity * unit_price``
    rounded to cents and is written only by the line-item ledger.
    """

    ITEM_TYPE_CHOICES = [
        ('service', 'Service'),
        ('material', 'Material'),
        ('labor', 'Labor'),
        ('discount', 'Discount'),
        ('other', 'Other'),
    ]

    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    item_type = models.CharField(max_length=20, choices=ITEM_TYPE_CHOICES, default='service')
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        abstract = True
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"{self.description} x {self.quantity}"


class TenantSequence(models.Model):
    """Per-tenant counter backing human-readable document numbers"""

    JOB = 'job'
    ESTIMATE = 'estimate'
    INVOICE = 'invoice'

    SEQUENCE_TYPE_CHOICES = [
        (JOB, 'Job'),
        (ESTIMATE, 'Estimate'),
        (INVOICE, 'Invoice'),
    ]

    PREFIXES = {
        JOB: 'JOB',
        ESTIMATE: 'EST',
        INVOICE: 'INV',
    }

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='sequences')
    sequence_type = models.CharField(max_length=20, choices=SEQUENCE_TYPE_CHOICES)
    prefix = models.CharField(max_length=10)
    current_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_tenant_sequence'
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'sequence_type'],
                name='uniq_tenant_sequence_type',
            ),
        ]

    def __str__(self):
        return f"{self.tenant_id}:{self.prefix} @ {self.current_value}"


class ActivityLog(models.Model):
    """Audit trail written after each committed mutating operation"""

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='activity_logs')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='activity_logs'
    )
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64)
    action = models.CharField(max_length=50)
    changes = models.JSONField(default=dict, blank=True)

    # Delivery is at-least-once; the event id makes redelivery a no-op
    event_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    occurred_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_activity_log'
        ordering = ['-occurred_at', '-id']
        indexes = [
            models.Index(fields=['tenant', 'entity_type', 'entity_id']),
            models.Index(fields=['tenant', 'occurred_at']),
        ]

    def __str__(self):
        return f"{self.entity_type}#{self.entity_id} {self.action}"
