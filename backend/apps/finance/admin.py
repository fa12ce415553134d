from django.contrib import admin

from apps.core.admin import TenantAdminMixin
from .models import Estimate, EstimateOption, EstimateOptionItem, Invoice, InvoiceLineItem, Payment


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class EstimateOptionInline(ReadOnlyInline):
    model = EstimateOption
    fields = ['name', 'is_recommended', 'total', 'sort_order']
    readonly_fields = fields


class InvoiceLineItemInline(ReadOnlyInline):
    model = InvoiceLineItem
    fields = ['description', 'quantity', 'unit_price', 'total', 'item_type', 'sort_order']
    readonly_fields = fields


class PaymentInline(ReadOnlyInline):
    model = Payment
    fields = ['amount', 'method', 'status', 'reference_number', 'processed_at']
    readonly_fields = fields


@admin.register(Estimate)
class EstimateAdmin(TenantAdminMixin, admin.ModelAdmin):
    """Read-mostly view; options and approval go through the estimate service"""
    list_display = ['estimate_number', 'tenant', 'customer', 'status', 'total_amount', 'valid_until', 'created_at']
    list_filter = ['status']
    search_fields = ['estimate_number', 'summary']
    readonly_fields = [
        'estimate_number', 'status', 'approved_option', 'total_amount', 'sent_at',
        'viewed_at', 'approved_at', 'declined_at', 'created_at', 'updated_at',
    ]
    inlines = [EstimateOptionInline]

    def has_add_permission(self, request):
        return False


@admin.register(EstimateOptionItem)
class EstimateOptionItemAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['option', 'description', 'quantity', 'unit_price', 'total']
    readonly_fields = ['total']


@admin.register(Invoice)
class InvoiceAdmin(TenantAdminMixin, admin.ModelAdmin):
    """Ledger figures are derived; they are never edited here"""
    list_display = ['invoice_number', 'tenant', 'customer', 'status', 'total', 'balance_due', 'due_date']
    list_filter = ['status', 'due_date']
    search_fields = ['invoice_number']
    readonly_fields = [
        'invoice_number', 'status', 'subtotal', 'tax_rate', 'tax_amount', 'total',
        'amount_paid', 'balance_due', 'sent_at', 'viewed_at', 'paid_at', 'voided_at',
        'created_at', 'updated_at',
    ]
    inlines = [InvoiceLineItemInline, PaymentInline]

    def has_add_permission(self, request):
        return False


@admin.register(Payment)
class PaymentAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['invoice', 'tenant', 'amount', 'method', 'status', 'processed_at']
    list_filter = ['method', 'status']
    search_fields = ['reference_number', 'invoice__invoice_number']

    # Payments are append-only
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
