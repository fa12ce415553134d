from django.contrib import admin
from .models import Tenant, TenantSequence, ActivityLog


class TenantAdminMixin:
    """Base admin mixin for tenant-scoped models"""
    list_select_related = ['tenant']

    def get_list_filter(self, request):
        return ['tenant', *super().get_list_filter(request)]


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'status', 'currency', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'slug']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(TenantSequence)
class TenantSequenceAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['tenant', 'sequence_type', 'prefix', 'current_value', 'updated_at']

    # Counters only move forward through the allocator
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ActivityLog)
class ActivityLogAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['occurred_at', 'tenant', 'user', 'entity_type', 'entity_id', 'action']
    list_filter = ['entity_type', 'action']
    search_fields = ['entity_id']
    readonly_fields = [f.name for f in ActivityLog._meta.fields]
