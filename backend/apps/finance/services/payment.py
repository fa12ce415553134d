"""
Finance Services - Payment Service
Recording payments against invoices and keeping the invoice ledger in step
"""

import logging
from decimal import Decimal

from django.db.models import QuerySet, Sum
from django.utils import timezone

from apps.core.exceptions import ValidationError
from apps.core.services.base import BaseService, atomic_operation
from apps.core.utils import ZERO, money_str, quantize_money, to_decimal
from ..constants import (
    INVOICE_PAID, INVOICE_PARTIAL, INVOICE_PAYABLE_STATUSES, INVOICE_STATE_MACHINE,
    PAYMENT_METHOD_CHOICES, PAYMENT_SUCCEEDED,
)
from ..models import Invoice, Payment

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {choice for choice, _ in PAYMENT_METHOD_CHOICES}


class PaymentService(BaseService):
    """Append-only payments and the paid/partial status they drive"""

    resource = 'payments'
    entity_type = 'payment'

    def list_payments(self, invoice_id) -> QuerySet:
        self.check_permission('read')
        invoice = self.get_for_tenant(Invoice, invoice_id, 'Invoice')
        return Payment.objects.filter(tenant=self.tenant, invoice=invoice).order_by('processed_at', 'id')

    @atomic_operation
    def record_payment(self, invoice_id, amount, method: str, reference_number: str = '',
                       notes: str = '') -> Payment:
        """
        Record a succeeded payment against an invoice

        Args:
            invoice_id: Invoice ID
            amount: positive decimal amount, at most the balance due
            method: credit_card, debit_card, ach, cash, check or other
            reference_number: check number, processor reference, ...
            notes: free text

        Returns:
            Created Payment. The invoice row is updated in the same
            transaction: amount_paid, balance_due, status and paid_at.
        """
        self.check_permission('create')
        amount = self._clean_amount(amount)
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{method}'", field='method')

        invoice = self.get_for_tenant(Invoice, invoice_id, 'Invoice', lock=True)
        INVOICE_STATE_MACHINE.assert_in(
            invoice.status, INVOICE_PAYABLE_STATUSES, entity_id=invoice.pk,
            message='Cannot record payment for this invoice',
        )
        if amount > invoice.balance_due:
            raise ValidationError(
                f"Payment amount ({money_str(amount)}) exceeds balance due ({money_str(invoice.balance_due)})",
                details=[{
                    'field': 'amount',
                    'message': 'Payment amount exceeds balance due',
                    'balance_due': money_str(invoice.balance_due),
                }],
            )

        now = timezone.now()
        payment = Payment.objects.create(
            tenant=self.tenant,
            invoice=invoice,
            customer_id=invoice.customer_id,
            amount=amount,
            method=method,
            status=PAYMENT_SUCCEEDED,
            reference_number=str(reference_number or '').strip(),
            notes=str(notes or '').strip(),
            processed_at=now,
            created_by=self.user,
        )

        self._apply_payments(invoice, now)

        self.log_activity(self.entity_type, payment.pk, 'recorded', {
            'invoice_id': invoice.pk,
            'amount': money_str(amount),
            'method': method,
            'invoice_status': invoice.status,
            'balance_due': money_str(invoice.balance_due),
        })
        logger.info(f"Recorded payment {payment.pk} of {amount} on invoice {invoice.invoice_number}")
        return payment

    def _apply_payments(self, invoice: Invoice, now):
        """Re-derive amount paid from the succeeded payments and settle the status"""
        paid = Payment.objects.filter(invoice=invoice, status=PAYMENT_SUCCEEDED).aggregate(total=Sum('amount'))['total']
        invoice.amount_paid = quantize_money(paid if paid is not None else ZERO)
        invoice.balance_due = invoice.total - invoice.amount_paid

        update_fields = ['amount_paid', 'balance_due', 'status', 'updated_at']
        if invoice.balance_due <= 0:
            invoice.status = INVOICE_PAID
            invoice.paid_at = now
            update_fields.append('paid_at')
        else:
            invoice.status = INVOICE_PARTIAL
        invoice.save(update_fields=update_fields)
        return invoice

    def _clean_amount(self, value) -> Decimal:
        amount = to_decimal(value, 'amount')
        if amount != quantize_money(amount):
            raise ValidationError('Amount cannot have more than two decimal places', field='amount')
        amount = quantize_money(amount)
        if amount <= 0:
            raise ValidationError('Amount must be greater than zero', field='amount')
        return amount
