# backend/apps/finance/filters.py

import django_filters
from django.db.models import Q

from .constants import ESTIMATE_STATUS_CHOICES, INVOICE_STATUS_CHOICES
from .models import Estimate, Invoice


class EstimateFilter(django_filters.FilterSet):
    """Filter for Estimates"""

    status = django_filters.MultipleChoiceFilter(choices=ESTIMATE_STATUS_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id')
    job = django_filters.NumberFilter(field_name='job_id')
    valid_until = django_filters.DateFromToRangeFilter()
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Estimate
        fields = ['status', 'customer', 'job']

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(estimate_number__icontains=value) |
            Q(summary__icontains=value)
        )


class InvoiceFilter(django_filters.FilterSet):
    """Filter for Invoices"""

    status = django_filters.MultipleChoiceFilter(choices=INVOICE_STATUS_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id')
    job = django_filters.NumberFilter(field_name='job_id')
    due_date = django_filters.DateFromToRangeFilter()
    has_balance = django_filters.BooleanFilter(method='filter_has_balance')
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Invoice
        fields = ['status', 'customer', 'job']

    def filter_has_balance(self, queryset, name, value):
        if value:
            return queryset.filter(balance_due__gt=0)
        return queryset.filter(balance_due__lte=0)

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(invoice_number__icontains=value) |
            Q(notes__icontains=value)
        )
