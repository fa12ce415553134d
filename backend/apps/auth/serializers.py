# apps/auth/serializers.py

from rest_framework import serializers

from .models import User, Membership


class UserProfileSerializer(serializers.ModelSerializer):
    full_name = serializers.ReadOnlyField()

    class Meta:
        model = User
        fields = ['id', 'email', 'username', 'first_name', 'last_name', 'full_name', 'phone', 'timezone']
        read_only_fields = ['id', 'email', 'username']


class MembershipSerializer(serializers.ModelSerializer):
    """Serializer for membership information"""
    tenant_name = serializers.CharField(source='tenant.name', read_only=True)
    tenant_slug = serializers.CharField(source='tenant.slug', read_only=True)

    class Meta:
        model = Membership
        fields = [
            'id', 'tenant_id', 'tenant_name', 'tenant_slug', 'role', 'status',
            'is_active', 'can_be_dispatched', 'joined_at',
        ]
        read_only_fields = fields
