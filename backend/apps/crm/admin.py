from django.contrib import admin

from apps.core.admin import TenantAdminMixin
from .models import Customer, Property


class PropertyInline(admin.TabularInline):
    model = Property
    extra = 0
    fields = ['name', 'address_line1', 'city', 'state', 'postal_code', 'is_primary']


@admin.register(Customer)
class CustomerAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ['display_name', 'tenant', 'customer_type', 'email', 'phone', 'is_active']
    list_filter = ['customer_type', 'is_active']
    search_fields = ['first_name', 'last_name', 'company_name', 'email']
    inlines = [PropertyInline]

    def save_formset(self, request, form, formset, change):
        instances = formset.save(commit=False)
        for obj in formset.deleted_objects:
            obj.delete()
        for obj in instances:
            obj.tenant = form.instance.tenant
            obj.save()
        formset.save_m2m()
