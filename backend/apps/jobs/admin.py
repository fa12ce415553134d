from django.contrib import admin

from apps.core.admin import TenantAdminMixin
from .models import Job, JobLineItem, JobNote


class JobLineItemInline(admin.TabularInline):
    model = JobLineItem
    extra = 0
    fields = ['description', 'quantity', 'unit_price', 'total', 'item_type', 'sort_order']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Job)
class JobAdmin(TenantAdminMixin, admin.ModelAdmin):
    """Read-mostly view; lifecycle changes go through the job service"""
    list_display = ['job_number', 'tenant', 'summary', 'status', 'priority', 'assigned_to', 'scheduled_start', 'total_amount']
    list_filter = ['status', 'priority']
    search_fields = ['job_number', 'summary']
    readonly_fields = [
        'job_number', 'status', 'total_amount', 'dispatched_at', 'actual_start',
        'actual_end', 'completed_at', 'created_at', 'updated_at',
    ]
    inlines = [JobLineItemInline]

    def has_add_permission(self, request):
        return False


@admin.register(JobNote)
class JobNoteAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['job', 'user', 'is_internal', 'created_at']
