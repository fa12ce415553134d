# backend/apps/jobs/filters.py

import django_filters
from django.db.models import Q

from .constants import JOB_STATUS_CHOICES, PRIORITY_CHOICES
from .models import Job


class JobFilter(django_filters.FilterSet):
    """Filter for Jobs"""

    status = django_filters.MultipleChoiceFilter(choices=JOB_STATUS_CHOICES)
    priority = django_filters.ChoiceFilter(choices=PRIORITY_CHOICES)
    assigned_to = django_filters.NumberFilter(field_name='assigned_to_id')
    customer = django_filters.NumberFilter(field_name='customer_id')
    scheduled_start = django_filters.IsoDateTimeFromToRangeFilter()
    unassigned = django_filters.BooleanFilter(field_name='assigned_to', lookup_expr='isnull')

    # Search filters
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Job
        fields = ['status', 'priority', 'assigned_to', 'customer']

    def filter_search(self, queryset, name, value):
        """Search across number, summary and description"""
        return queryset.filter(
            Q(job_number__icontains=value) |
            Q(summary__icontains=value) |
            Q(description__icontains=value)
        )
