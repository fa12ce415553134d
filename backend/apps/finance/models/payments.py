"""
Payment Models
Payments are append-only: a recorded payment is never edited or deleted
"""

from django.conf import settings
from django.db import models

from apps.core.models import TenantBaseModel
from ..constants import PAYMENT_METHOD_CHOICES, PAYMENT_STATUS_CHOICES, PAYMENT_SUCCEEDED


class Payment(TenantBaseModel):
    """Money received against an invoice"""

    invoice = models.ForeignKey('finance.Invoice', on_delete=models.PROTECT, related_name='payments')
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='payments')

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_SUCCEEDED)
    reference_number = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    processed_at = models.DateTimeField()

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='recorded_payments'
    )

    class Meta:
        db_table = 'finance_payment'
        ordering = ['processed_at', 'id']
        indexes = [
            models.Index(fields=['tenant', 'invoice']),
        ]

    def __str__(self):
        return f"{self.amount} via {self.method}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Payments are append-only and cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Payments are append-only and cannot be deleted")
