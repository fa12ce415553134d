# apps/auth/admin.py

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, Membership


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'username', 'first_name', 'last_name', 'is_active']
    search_fields = ['email', 'username', 'first_name', 'last_name']


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ['user', 'tenant', 'role', 'status', 'can_be_dispatched', 'is_active']
    list_filter = ['role', 'status', 'can_be_dispatched', 'is_active']
    search_fields = ['user__email', 'tenant__name']
