"""
Estimate Models
Priced proposals with alternative options; the customer approves exactly one
"""

from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.core.models import LineItemBase, TenantBaseModel
from ..constants import ESTIMATE_DRAFT, ESTIMATE_STATUS_CHOICES


class Estimate(TenantBaseModel):
    """Customer-facing proposal made of one or more priced options"""

    estimate_number = models.CharField(max_length=20, editable=False)
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='estimates')
    property = models.ForeignKey(
        'crm.Property', on_delete=models.PROTECT,
        null=True, blank=True, related_name='estimates'
    )
    job = models.ForeignKey(
        'jobs.Job', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='estimates'
    )

    status = models.CharField(max_length=20, choices=ESTIMATE_STATUS_CHOICES, default=ESTIMATE_DRAFT, editable=False)
    summary = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)
    valid_until = models.DateField(null=True, blank=True)

    # Set once on approval and never changed afterwards
    approved_option = models.ForeignKey(
        'finance.EstimateOption', on_delete=models.PROTECT,
        null=True, blank=True, related_name='+', editable=False
    )

    # Max option total while editable, the approved option's total once approved
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)

    sent_at = models.DateTimeField(null=True, blank=True, editable=False)
    viewed_at = models.DateTimeField(null=True, blank=True, editable=False)
    approved_at = models.DateTimeField(null=True, blank=True, editable=False)
    declined_at = models.DateTimeField(null=True, blank=True, editable=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_estimates'
    )

    class Meta:
        db_table = 'finance_estimate'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'estimate_number'], name='uniq_estimate_number_per_tenant'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'customer']),
        ]

    def __str__(self):
        return self.estimate_number


class EstimateOption(TenantBaseModel):
    """One alternative scope of work ("Good", "Better", "Best")"""

    estimate = models.ForeignKey(Estimate, on_delete=models.CASCADE, related_name='options')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_recommended = models.BooleanField(default=False)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'finance_estimate_option'
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"{self.name} ({self.total})"


class EstimateOptionItem(LineItemBase):
    option = models.ForeignKey(EstimateOption, on_delete=models.CASCADE, related_name='items')

    class Meta(LineItemBase.Meta):
        db_table = 'finance_estimate_option_item'
