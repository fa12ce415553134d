# apps/finance/tests/unit/test_payment_service.py
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.core.exceptions import InvalidStateTransition, NotFoundError, PermissionDeniedError, ValidationError
from apps.core.services.base import ServiceContext
from ...constants import INVOICE_OVERDUE, INVOICE_PAID, INVOICE_PARTIAL, INVOICE_VOID
from ...models import Invoice, Payment
from ...services import InvoiceService, PaymentService


@pytest.fixture
def payment_service(admin_context, activity_sink):
    return PaymentService(admin_context, activity_sink=activity_sink)


@pytest.fixture
def invoice(admin_context, activity_sink, customer):
    """Sent invoice with a total of 519.09"""
    service = InvoiceService(admin_context, activity_sink=activity_sink)
    invoice = service.create_invoice({
        'customer_id': customer.pk,
        'due_date': timezone.localdate() + timedelta(days=14),
        'tax_rate': '0.08',
        'line_items': [
            {'description': 'Drain cleaning', 'quantity': '2', 'unit_price': '150.00'},
            {'description': 'Trap assembly', 'unit_price': '180.64'},
        ],
    })
    return service.send_invoice(invoice.pk)


@pytest.mark.django_db
class TestRecordPayment:
    """Test payments and the invoice status they drive."""

    def test_partial_then_full_payment(self, payment_service, invoice, activity_sink):
        payment_service.record_payment(invoice.pk, '300.00', 'check', reference_number='1042')

        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.status == INVOICE_PARTIAL
        assert stored.amount_paid == Decimal('300.00')
        assert stored.balance_due == Decimal('219.09')
        assert stored.paid_at is None

        payment_service.record_payment(invoice.pk, '219.09', 'credit_card')

        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.status == INVOICE_PAID
        assert stored.amount_paid == Decimal('519.09')
        assert stored.balance_due == Decimal('0.00')
        assert stored.paid_at is not None

        with pytest.raises(InvalidStateTransition):
            payment_service.record_payment(invoice.pk, '1.00', 'cash')

        assert Payment.objects.filter(invoice=invoice).count() == 2
        assert activity_sink.actions('payment') == ['recorded', 'recorded']

    def test_overpayment_is_rejected(self, payment_service, invoice):
        with pytest.raises(ValidationError) as exc_info:
            payment_service.record_payment(invoice.pk, '519.10', 'cash')

        assert exc_info.value.details[0]['balance_due'] == '519.09'
        assert not Payment.objects.exists()
        assert Invoice.objects.get(pk=invoice.pk).balance_due == Decimal('519.09')

    @pytest.mark.parametrize('amount', ['0', '-5.00', '10.005', 10.5, 'ten'])
    def test_invalid_amounts(self, payment_service, invoice, amount):
        with pytest.raises(ValidationError):
            payment_service.record_payment(invoice.pk, amount, 'cash')

        assert not Payment.objects.exists()

    def test_unknown_method(self, payment_service, invoice):
        with pytest.raises(ValidationError) as exc_info:
            payment_service.record_payment(invoice.pk, '10.00', 'bitcoin')

        assert exc_info.value.details[0]['field'] == 'method'

    def test_void_invoice_rejects_payment(self, payment_service, invoice, admin_context, activity_sink):
        InvoiceService(admin_context, activity_sink=activity_sink).void_invoice(invoice.pk)

        with pytest.raises(InvalidStateTransition) as exc_info:
            payment_service.record_payment(invoice.pk, '10.00', 'cash')

        assert exc_info.value.code == 'INVALID_STATE'
        assert Invoice.objects.get(pk=invoice.pk).status == INVOICE_VOID

    def test_overdue_invoice_accepts_payment(self, payment_service, invoice):
        Invoice.objects.filter(pk=invoice.pk).update(status=INVOICE_OVERDUE)

        payment_service.record_payment(invoice.pk, '100.00', 'ach')

        assert Invoice.objects.get(pk=invoice.pk).status == INVOICE_PARTIAL

    def test_payment_after_line_item_change(self, payment_service, invoice, admin_context, activity_sink):
        """Test that the balance keeps counting payments after the subtotal moves."""
        invoices = InvoiceService(admin_context, activity_sink=activity_sink)
        payment_service.record_payment(invoice.pk, '100.00', 'cash')

        Invoice.objects.filter(pk=invoice.pk).update(status='sent')
        invoices.add_line_item(invoice.pk, {'description': 'Permit', 'unit_price': '19.36'})

        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.total == Decimal('540.00')
        assert stored.amount_paid == Decimal('100.00')
        assert stored.balance_due == Decimal('440.00')

    def test_technician_can_collect_but_not_list(self, invoice, tenant, technician, activity_sink):
        service = PaymentService(ServiceContext.for_user(tenant, technician), activity_sink=activity_sink)

        payment = service.record_payment(invoice.pk, '50.00', 'cash')
        assert payment.created_by == technician

        with pytest.raises(PermissionDeniedError):
            service.list_payments(invoice.pk)

    def test_other_tenant_invoice(self, invoice, other_context, activity_sink):
        service = PaymentService(other_context, activity_sink=activity_sink)

        with pytest.raises(NotFoundError):
            service.record_payment(invoice.pk, '10.00', 'cash')


@pytest.mark.django_db
class TestPaymentRecord:
    """Test that payments are append-only."""

    def test_payment_cannot_be_changed_or_deleted(self, payment_service, invoice):
        payment = payment_service.record_payment(invoice.pk, '10.00', 'cash')

        payment.amount = Decimal('1.00')
        with pytest.raises(ValueError):
            payment.save()
        with pytest.raises(ValueError):
            payment.delete()

        assert Payment.objects.get(pk=payment.pk).amount == Decimal('10.00')

    def test_list_payments_in_order(self, payment_service, invoice):
        first = payment_service.record_payment(invoice.pk, '10.00', 'cash')
        second = payment_service.record_payment(invoice.pk, '20.00', 'check')

        assert list(payment_service.list_payments(invoice.pk)) == [first, second]
