# backend/apps/finance/serializers.py

from decimal import Decimal

from rest_framework import serializers

from apps.core.serializers import (
    LineItemInputSerializer, LineItemSerializer, MoneyField, line_items_data,
)
from .constants import PAYMENT_METHOD_CHOICES
from .models import Estimate, EstimateOption, EstimateOptionItem, Invoice, InvoiceLineItem, Payment


class TaxRateField(serializers.DecimalField):
    """Tax rate as a fraction in [0, 1] with four decimal places"""

    def __init__(self, **kwargs):
        kwargs.setdefault('max_digits', 5)
        kwargs.setdefault('decimal_places', 4)
        kwargs.setdefault('min_value', Decimal('0'))
        kwargs.setdefault('max_value', Decimal('1'))
        kwargs['coerce_to_string'] = True
        super().__init__(**kwargs)


# ============================================================================
# ESTIMATES
# ============================================================================

class EstimateOptionItemSerializer(LineItemSerializer):
    class Meta(LineItemSerializer.Meta):
        model = EstimateOptionItem


class EstimateOptionSerializer(serializers.ModelSerializer):
    total = MoneyField(read_only=True)
    items = EstimateOptionItemSerializer(many=True, read_only=True)

    class Meta:
        model = EstimateOption
        fields = ['id', 'name', 'description', 'is_recommended', 'total', 'sort_order', 'items']
        read_only_fields = fields


class EstimateListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    total_amount = MoneyField(read_only=True)

    class Meta:
        model = Estimate
        fields = [
            'id', 'estimate_number', 'status', 'summary', 'customer', 'customer_name',
            'property', 'job', 'valid_until', 'total_amount', 'approved_option',
            'sent_at', 'approved_at', 'created_at',
        ]
        read_only_fields = fields


class EstimateSerializer(EstimateListSerializer):
    """Detailed serializer for Estimate with its options"""

    options = EstimateOptionSerializer(many=True, read_only=True)

    class Meta(EstimateListSerializer.Meta):
        fields = EstimateListSerializer.Meta.fields + [
            'notes', 'internal_notes', 'viewed_at', 'declined_at',
            'created_by', 'updated_at', 'options',
        ]
        read_only_fields = fields


class EstimateOptionInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    is_recommended = serializers.BooleanField(default=False)
    sort_order = serializers.IntegerField(min_value=0, required=False)
    items = LineItemInputSerializer(many=True, required=False)


class EstimateOptionUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    is_recommended = serializers.BooleanField(required=False)
    sort_order = serializers.IntegerField(min_value=0, required=False)


class EstimateCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    property_id = serializers.IntegerField(required=False, allow_null=True)
    job_id = serializers.IntegerField(required=False, allow_null=True)
    summary = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    valid_until = serializers.DateField(required=False, allow_null=True)
    options = EstimateOptionInputSerializer(many=True)


class EstimateUpdateSerializer(serializers.Serializer):
    summary = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    valid_until = serializers.DateField(required=False, allow_null=True)


class EstimateApproveSerializer(serializers.Serializer):
    option_id = serializers.IntegerField()


def option_data(option):
    """Plain dict for the service layer from a validated option"""
    data = dict(option)
    data['items'] = line_items_data(data.get('items'))
    return data


# ============================================================================
# INVOICES & PAYMENTS
# ============================================================================

class InvoiceLineItemSerializer(LineItemSerializer):
    class Meta(LineItemSerializer.Meta):
        model = InvoiceLineItem


class PaymentSerializer(serializers.ModelSerializer):
    amount = MoneyField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'invoice', 'customer', 'amount', 'method', 'status',
            'reference_number', 'notes', 'processed_at', 'created_by',
        ]
        read_only_fields = fields


class InvoiceListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    subtotal = MoneyField(read_only=True)
    tax_rate = TaxRateField(read_only=True)
    tax_amount = MoneyField(read_only=True)
    total = MoneyField(read_only=True)
    amount_paid = MoneyField(read_only=True)
    balance_due = MoneyField(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'status', 'customer', 'customer_name', 'job',
            'estimate', 'due_date', 'subtotal', 'tax_rate', 'tax_amount', 'total',
            'amount_paid', 'balance_due', 'sent_at', 'paid_at', 'created_at',
        ]
        read_only_fields = fields


class InvoiceSerializer(InvoiceListSerializer):
    """Detailed serializer for Invoice with lines and payments"""

    line_items = InvoiceLineItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta(InvoiceListSerializer.Meta):
        fields = InvoiceListSerializer.Meta.fields + [
            'notes', 'internal_notes', 'viewed_at', 'voided_at',
            'created_by', 'updated_at', 'line_items', 'payments',
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    job_id = serializers.IntegerField(required=False, allow_null=True)
    estimate_id = serializers.IntegerField(required=False, allow_null=True)
    due_date = serializers.DateField()
    tax_rate = TaxRateField(required=False, default=Decimal('0'))
    notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    line_items = LineItemInputSerializer(many=True)


class InvoiceUpdateSerializer(serializers.Serializer):
    due_date = serializers.DateField(required=False)
    tax_rate = TaxRateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)


class InvoiceFromSourceSerializer(serializers.Serializer):
    due_date = serializers.DateField()
    tax_rate = TaxRateField(required=False, default=Decimal('0'))


class InvoiceFromJobSerializer(InvoiceFromSourceSerializer):
    job_id = serializers.IntegerField()


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PAYMENT_METHOD_CHOICES)
    reference_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
