"""
Finance Services - Invoice Service
Invoice creation, line items with derived tax and balance, sending, voiding and overdue tracking
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.core.exceptions import InvalidStateTransition, ValidationError
from apps.core.models import TenantSequence
from apps.core.services.base import BaseService, atomic_operation
from apps.core.services.ledger import MAX_AMOUNT, LineItemLedger, normalize_line_items
from apps.core.services.sequences import SequenceAllocator
from apps.core.utils import ZERO, quantize_money, quantize_rate, to_date, to_decimal
from apps.crm.services import CustomerReferenceMixin
from apps.jobs.constants import CANCELED as JOB_CANCELED, COMPLETED as JOB_COMPLETED
from apps.jobs.models import Job, JobLineItem
from ..constants import (
    ESTIMATE_APPROVED, INVOICE_DRAFT, INVOICE_EDITABLE_STATUSES, INVOICE_OVERDUE,
    INVOICE_OVERDUE_CANDIDATES, INVOICE_SENT, INVOICE_STATE_MACHINE, INVOICE_VIEWED,
    INVOICE_VOID,
)
from ..models import Estimate, EstimateOptionItem, Invoice, InvoiceLineItem

logger = logging.getLogger(__name__)

MAX_TAX_RATE = Decimal('1')

ORDERING_FIELDS = {'created_at', 'invoice_number', 'status', 'due_date', 'total', 'balance_due'}


class InvoiceService(CustomerReferenceMixin, BaseService):
    """Invoice ledger: line items, tax, balance and the explicit status transitions"""

    resource = 'invoices'
    entity_type = 'invoice'

    # ============================================================================
    # QUERIES
    # ============================================================================

    def list_invoices(self, filters: Optional[Dict] = None) -> QuerySet:
        """
        List invoices of this tenant.

        Args:
            filters: status (str or list), customer_id, job_id, due_from,
                due_to, search, ordering
        """
        self.check_permission('read')
        filters = filters or {}
        queryset = Invoice.objects.filter(tenant=self.tenant).select_related('customer', 'job', 'estimate')

        status = filters.get('status')
        if status:
            statuses = [status] if isinstance(status, str) else list(status)
            queryset = queryset.filter(status__in=statuses)

        if filters.get('customer_id'):
            queryset = queryset.filter(customer_id=filters['customer_id'])
        if filters.get('job_id'):
            queryset = queryset.filter(job_id=filters['job_id'])
        if filters.get('due_from'):
            queryset = queryset.filter(due_date__gte=to_date(filters['due_from'], 'due_from'))
        if filters.get('due_to'):
            queryset = queryset.filter(due_date__lte=to_date(filters['due_to'], 'due_to'))

        search = (filters.get('search') or '').strip()
        if search:
            queryset = queryset.filter(Q(invoice_number__icontains=search) | Q(notes__icontains=search))

        ordering = filters.get('ordering') or '-created_at'
        if ordering.lstrip('-') not in ORDERING_FIELDS:
            raise ValidationError(f"Cannot order invoices by '{ordering}'", field='ordering')
        return queryset.order_by(ordering, '-id')

    def get_invoice(self, invoice_id) -> Invoice:
        self.check_permission('read')
        return self._get_invoice(invoice_id)

    def get_line_items(self, invoice_id):
        invoice = self.get_invoice(invoice_id)
        return self.ledger(invoice).items()

    # ============================================================================
    # INVOICE CREATION & UPDATES
    # ============================================================================

    @atomic_operation
    def create_invoice(self, data: Dict) -> Invoice:
        """
        Create a draft invoice

        Args:
            data: Invoice details dictionary
                - customer_id: Customer ID
                - job_id: linked job (optional, same customer, not canceled)
                - estimate_id: originating estimate (optional)
                - due_date: payment due date
                - tax_rate: fraction in [0, 1], default 0
                - notes, internal_notes
                - line_items: at least one {description, quantity, unit_price, item_type}

        Returns:
            Created Invoice with subtotal, tax, total and balance derived
        """
        self.check_permission('create')

        line_items = data.get('line_items') or []
        if not line_items:
            raise ValidationError('At least one line item is required', field='line_items')
        line_items = normalize_line_items(line_items)

        customer = self.resolve_customer(data.get('customer_id'))
        job = self._resolve_job(data.get('job_id'), customer)
        estimate = self._resolve_estimate(data.get('estimate_id'), customer)
        due_date = to_date(data.get('due_date'), 'due_date')
        if due_date is None:
            raise ValidationError('Due date is required', field='due_date')
        tax_rate = self._clean_tax_rate(data.get('tax_rate', ZERO))

        invoice_number = SequenceAllocator(self.tenant).allocate(TenantSequence.INVOICE)
        invoice = Invoice.objects.create(
            tenant=self.tenant,
            invoice_number=invoice_number,
            customer=customer,
            job=job,
            estimate=estimate,
            status=INVOICE_DRAFT,
            due_date=due_date,
            tax_rate=tax_rate,
            notes=str(data.get('notes') or '').strip(),
            internal_notes=str(data.get('internal_notes') or '').strip(),
            created_by=self.user,
        )
        self.ledger(invoice).add_many(line_items)

        self.log_activity(self.entity_type, invoice.pk, 'created', {
            'invoice_number': invoice.invoice_number,
            'total': str(invoice.total),
            'job_id': job.pk if job else None,
            'estimate_id': estimate.pk if estimate else None,
        })
        logger.info(f"Created invoice {invoice.invoice_number} for tenant {self.tenant.pk}")
        return invoice

    @atomic_operation
    def update_invoice(self, invoice_id, data: Dict) -> Invoice:
        """Edit due date, notes or tax rate; a tax rate change re-derives the ledger"""
        self.check_permission('update')
        if 'status' in data:
            raise ValidationError('Status changes go through the invoice actions', field='status')

        invoice = self._get_editable(invoice_id)
        fields = {}
        if 'due_date' in data:
            fields['due_date'] = to_date(data.get('due_date'), 'due_date')
            if fields['due_date'] is None:
                raise ValidationError('Due date is required', field='due_date')
        for name in ('notes', 'internal_notes'):
            if name in data:
                fields[name] = str(data.get(name) or '').strip()
        if 'tax_rate' in data:
            fields['tax_rate'] = self._clean_tax_rate(data.get('tax_rate'))

        changed = []
        for name, value in fields.items():
            if getattr(invoice, name) != value:
                setattr(invoice, name, value)
                changed.append(name)

        if changed:
            invoice.save(update_fields=changed + ['updated_at'])
            if 'tax_rate' in changed:
                self.ledger(invoice).recalculate()
            self.log_activity(self.entity_type, invoice.pk, 'updated', {
                'fields': sorted(changed),
                'total': str(invoice.total),
            })
        return invoice

    # ============================================================================
    # LINE ITEMS
    # ============================================================================

    def ledger(self, invoice: Invoice) -> LineItemLedger:
        return LineItemLedger(
            invoice, InvoiceLineItem, 'invoice', 'subtotal',
            label='Line item',
            on_recalculate=lambda subtotal: self.apply_totals(invoice, subtotal),
        )

    def apply_totals(self, invoice: Invoice, subtotal: Decimal):
        """
        Derive tax, total and balance from a fresh subtotal.

        Tax rate and amount paid are re-read from the row rather than
        taken from ``invoice`` so repeated edits never compound stale values.
        """
        current = Invoice.objects.values('tax_rate', 'amount_paid').get(pk=invoice.pk)
        tax_amount = quantize_money(subtotal * current['tax_rate'])
        total = subtotal + tax_amount
        if abs(total) > MAX_AMOUNT:
            raise ValidationError('Total is too large', field='total')
        balance_due = total - current['amount_paid']

        figures = {
            'subtotal': subtotal,
            'tax_amount': tax_amount,
            'total': total,
            'balance_due': balance_due,
        }
        Invoice.objects.filter(pk=invoice.pk).update(updated_at=timezone.now(), **figures)
        for name, value in figures.items():
            setattr(invoice, name, value)
        invoice.tax_rate = current['tax_rate']
        invoice.amount_paid = current['amount_paid']
        return invoice

    @atomic_operation
    def add_line_item(self, invoice_id, data: Dict) -> InvoiceLineItem:
        self.check_permission('update')
        invoice = self._get_editable(invoice_id)
        item = self.ledger(invoice).add(data)
        self.log_activity(self.entity_type, invoice.pk, 'line_item_added', {
            'item_id': item.pk,
            'total': str(invoice.total),
        })
        return item

    @atomic_operation
    def update_line_item(self, invoice_id, item_id, data: Dict) -> InvoiceLineItem:
        self.check_permission('update')
        invoice = self._get_editable(invoice_id)
        item = self.ledger(invoice).update(item_id, data)
        self.log_activity(self.entity_type, invoice.pk, 'line_item_updated', {
            'item_id': item.pk,
            'total': str(invoice.total),
        })
        return item

    @atomic_operation
    def delete_line_item(self, invoice_id, item_id) -> Invoice:
        self.check_permission('update')
        invoice = self._get_editable(invoice_id)
        ledger = self.ledger(invoice)
        ledger.get_item(item_id)
        if ledger.count() <= 1:
            raise ValidationError('An invoice must keep at least one line item', field='item_id')

        item = ledger.remove(item_id)
        self.log_activity(self.entity_type, invoice.pk, 'line_item_deleted', {
            'item_id': item.pk,
            'total': str(invoice.total),
        })
        return invoice

    # ============================================================================
    # STATUS WORKFLOW
    # ============================================================================

    @atomic_operation
    def send_invoice(self, invoice_id) -> Invoice:
        self.check_permission('update')
        invoice = self._get_invoice(invoice_id, lock=True)
        INVOICE_STATE_MACHINE.assert_transition(invoice.status, INVOICE_SENT, entity_id=invoice.pk)

        invoice.status = INVOICE_SENT
        invoice.sent_at = timezone.now()
        invoice.save(update_fields=['status', 'sent_at', 'updated_at'])

        self.log_activity(self.entity_type, invoice.pk, 'sent', {'from': INVOICE_DRAFT, 'to': INVOICE_SENT})
        return invoice

    @atomic_operation
    def mark_viewed(self, invoice_id) -> Invoice:
        """Record that the customer opened a sent invoice"""
        self.check_permission('update')
        invoice = self._get_invoice(invoice_id, lock=True)
        INVOICE_STATE_MACHINE.assert_transition(invoice.status, INVOICE_VIEWED, entity_id=invoice.pk)

        invoice.status = INVOICE_VIEWED
        invoice.viewed_at = timezone.now()
        invoice.save(update_fields=['status', 'viewed_at', 'updated_at'])

        self.log_activity(self.entity_type, invoice.pk, 'viewed', {'from': INVOICE_SENT, 'to': INVOICE_VIEWED})
        return invoice

    @atomic_operation
    def void_invoice(self, invoice_id) -> Invoice:
        """Void any invoice that is not already void or fully paid"""
        self.check_permission('update')
        invoice = self._get_invoice(invoice_id, lock=True)
        current_status = invoice.status
        if current_status == INVOICE_VOID:
            raise InvalidStateTransition(
                'Invoice', current_status, INVOICE_VOID, entity_id=invoice.pk,
                message='Invoice is already void',
            )
        INVOICE_STATE_MACHINE.assert_transition(current_status, INVOICE_VOID, entity_id=invoice.pk)

        invoice.status = INVOICE_VOID
        invoice.voided_at = timezone.now()
        invoice.save(update_fields=['status', 'voided_at', 'updated_at'])

        self.log_activity(self.entity_type, invoice.pk, 'voided', {'from': current_status, 'to': INVOICE_VOID})
        return invoice

    @atomic_operation
    def mark_overdue(self, as_of: date = None) -> List[Invoice]:
        """Flag sent or viewed invoices with nothing paid whose due date has passed"""
        self.check_permission('update')
        as_of = to_date(as_of, 'as_of') or timezone.localdate()

        late = list(
            Invoice.objects.select_for_update()
            .filter(
                tenant=self.tenant,
                status__in=INVOICE_OVERDUE_CANDIDATES,
                amount_paid=ZERO,
                due_date__lt=as_of,
            )
            .order_by('id')
        )
        for invoice in late:
            current_status = invoice.status
            invoice.status = INVOICE_OVERDUE
            invoice.save(update_fields=['status', 'updated_at'])
            self.log_activity(self.entity_type, invoice.pk, 'overdue', {
                'from': current_status,
                'to': INVOICE_OVERDUE,
                'due_date': invoice.due_date.isoformat(),
            })

        if late:
            logger.info(f"Marked {len(late)} invoices overdue for tenant {self.tenant.pk}")
        return late

    # ============================================================================
    # DERIVED INVOICES
    # ============================================================================

    @atomic_operation
    def generate_from_job(self, job_id, due_date, tax_rate=ZERO) -> Invoice:
        """
        Invoice a completed job from its line items.

        Raises:
            InvalidStateTransition: the job is not completed
            ValidationError: the job has no line items
        """
        self.check_permission('create')
        self.check_permission('read', resource='jobs')

        job = self.get_for_tenant(Job, job_id, 'Job', lock=True)
        if job.status != JOB_COMPLETED:
            raise InvalidStateTransition(
                'Job', job.status, entity_id=job.pk,
                message='Only completed jobs can be invoiced',
            )

        items = list(JobLineItem.objects.filter(job=job).order_by('sort_order', 'id'))
        if not items:
            raise ValidationError('Job has no line items to invoice', field='job_id')

        return self.create_invoice({
            'customer_id': job.customer_id,
            'job_id': job.pk,
            'due_date': due_date,
            'tax_rate': tax_rate,
            'line_items': _copy_items(items),
        })

    @atomic_operation
    def create_from_estimate(self, estimate_id, due_date, tax_rate=ZERO) -> Invoice:
        """Invoice the approved option of an estimate"""
        self.check_permission('create')
        self.check_permission('read', resource='estimates')

        estimate = self.get_for_tenant(Estimate, estimate_id, 'Estimate', lock=True)
        if estimate.status != ESTIMATE_APPROVED or not estimate.approved_option_id:
            raise InvalidStateTransition(
                'Estimate', estimate.status, entity_id=estimate.pk,
                message='Only approved estimates can be converted to invoices',
            )

        items = list(
            EstimateOptionItem.objects.filter(option_id=estimate.approved_option_id).order_by('sort_order', 'id')
        )
        if not items:
            raise ValidationError('Approved option has no line items to invoice', field='estimate_id')

        return self.create_invoice({
            'customer_id': estimate.customer_id,
            'job_id': estimate.job_id,
            'estimate_id': estimate.pk,
            'due_date': due_date,
            'tax_rate': tax_rate,
            'notes': estimate.notes,
            'line_items': _copy_items(items),
        })

    # ============================================================================
    # HELPERS
    # ============================================================================

    def _get_invoice(self, invoice_id, lock: bool = False) -> Invoice:
        return self.get_for_tenant(Invoice, invoice_id, 'Invoice', lock=lock)

    def _get_editable(self, invoice_id) -> Invoice:
        invoice = self._get_invoice(invoice_id, lock=True)
        INVOICE_STATE_MACHINE.assert_in(
            invoice.status, INVOICE_EDITABLE_STATUSES, entity_id=invoice.pk,
            message='Only draft, sent, or viewed invoices can be edited',
        )
        return invoice

    def _resolve_job(self, job_id, customer):
        if job_id in (None, ''):
            return None
        job = self.get_for_tenant(Job, job_id, 'Job')
        if job.status == JOB_CANCELED:
            raise InvalidStateTransition(
                'Job', job.status, entity_id=job.pk,
                message='Canceled jobs cannot be invoiced',
            )
        if job.customer_id != customer.pk:
            raise ValidationError('Job does not belong to the selected customer', field='job_id')
        return job

    def _resolve_estimate(self, estimate_id, customer):
        if estimate_id in (None, ''):
            return None
        estimate = self.get_for_tenant(Estimate, estimate_id, 'Estimate')
        if estimate.customer_id != customer.pk:
            raise ValidationError('Estimate does not belong to the selected customer', field='estimate_id')
        return estimate

    def _clean_tax_rate(self, value) -> Decimal:
        if value is None or value == '':
            return quantize_rate(ZERO)
        rate = to_decimal(value, 'tax_rate')
        if rate < 0 or rate > MAX_TAX_RATE:
            raise ValidationError('Tax rate must be between 0 and 1', field='tax_rate')
        return quantize_rate(rate)


def _copy_items(items) -> List[Dict]:
    return [
        {
            'description': item.description,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'item_type': item.item_type,
        }
        for item in items
    ]
