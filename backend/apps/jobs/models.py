# apps/jobs/models.py

from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.core.models import TenantBaseModel, LineItemBase
from .constants import JOB_STATUS_CHOICES, NEW, PRIORITY_CHOICES, PRIORITY_NORMAL


class Job(TenantBaseModel):
    """A unit of field work at a customer's property"""

    job_number = models.CharField(max_length=20, editable=False)
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='jobs')
    property = models.ForeignKey('crm.Property', on_delete=models.PROTECT, related_name='jobs')
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='assigned_jobs'
    )

    # Description
    job_type = models.CharField(max_length=100)
    service_type = models.CharField(max_length=100, blank=True)
    summary = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)
    customer_notes = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)

    # Workflow
    status = models.CharField(max_length=20, choices=JOB_STATUS_CHOICES, default=NEW, editable=False)
    priority = models.CharField(max_length=20, choices=PRIORITY_CHOICES, default=PRIORITY_NORMAL)

    # Schedule
    scheduled_start = models.DateTimeField(null=True, blank=True)
    scheduled_end = models.DateTimeField(null=True, blank=True)
    actual_start = models.DateTimeField(null=True, blank=True, editable=False)
    actual_end = models.DateTimeField(null=True, blank=True, editable=False)
    dispatched_at = models.DateTimeField(null=True, blank=True, editable=False)
    completed_at = models.DateTimeField(null=True, blank=True, editable=False)

    # Derived from line items
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_jobs'
    )

    class Meta:
        db_table = 'jobs_job'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'job_number'], name='uniq_job_number_per_tenant'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'assigned_to', 'scheduled_start']),
        ]

    def __str__(self):
        return f"{self.job_number} - {self.summary}"


class JobLineItem(LineItemBase):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='line_items')

    class Meta(LineItemBase.Meta):
        db_table = 'jobs_job_line_item'


class JobNote(TenantBaseModel):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='notes')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='job_notes'
    )
    content = models.TextField()
    is_internal = models.BooleanField(default=True)

    class Meta:
        db_table = 'jobs_job_note'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Note on {self.job_id}"
