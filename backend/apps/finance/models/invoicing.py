"""
Customer Invoicing Models
Invoices carry a ledger of derived figures kept in step with their lines and payments
"""

from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.core.models import LineItemBase, TenantBaseModel
from ..constants import INVOICE_DRAFT, INVOICE_STATUS_CHOICES


class Invoice(TenantBaseModel):
    """
    Customer invoice.

    subtotal, tax_amount, total, amount_paid and balance_due are derived
    figures written only by the invoice and payment services.
    """

    invoice_number = models.CharField(max_length=20, editable=False)
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='invoices')
    job = models.ForeignKey(
        'jobs.Job', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='invoices'
    )
    estimate = models.ForeignKey(
        'finance.Estimate', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='invoices'
    )

    status = models.CharField(max_length=20, choices=INVOICE_STATUS_CHOICES, default=INVOICE_DRAFT, editable=False)
    due_date = models.DateField()
    notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)

    # Ledger
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal('0.0000'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    balance_due = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)

    sent_at = models.DateTimeField(null=True, blank=True, editable=False)
    viewed_at = models.DateTimeField(null=True, blank=True, editable=False)
    paid_at = models.DateTimeField(null=True, blank=True, editable=False)
    voided_at = models.DateTimeField(null=True, blank=True, editable=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_invoices'
    )

    class Meta:
        db_table = 'finance_invoice'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'invoice_number'], name='uniq_invoice_number_per_tenant'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'due_date']),
            models.Index(fields=['tenant', 'customer']),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.total}"


class InvoiceLineItem(LineItemBase):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='line_items')

    class Meta(LineItemBase.Meta):
        db_table = 'finance_invoice_line_item'
