# backend/apps/jobs/serializers.py

from rest_framework import serializers

from apps.core.serializers import (
    LineItemInputSerializer, LineItemSerializer, MoneyField,
)
from .constants import JOB_STATUS_CHOICES, PRIORITY_CHOICES
from .models import Job, JobLineItem, JobNote


class JobLineItemSerializer(LineItemSerializer):
    class Meta(LineItemSerializer.Meta):
        model = JobLineItem


class JobNoteSerializer(serializers.ModelSerializer):
    author_name = serializers.CharField(source='user.full_name', read_only=True, default=None)

    class Meta:
        model = JobNote
        fields = ['id', 'content', 'is_internal', 'user', 'author_name', 'created_at']
        read_only_fields = fields


class JobListSerializer(serializers.ModelSerializer):
    """Compact job row for lists, the schedule and the dispatch board"""

    customer_name = serializers.CharField(source='customer.display_name', read_only=True)
    property_city = serializers.CharField(source='property.city', read_only=True)
    assigned_to_name = serializers.CharField(source='assigned_to.full_name', read_only=True, default=None)
    total_amount = MoneyField(read_only=True)

    class Meta:
        model = Job
        fields = [
            'id', 'job_number', 'summary', 'status', 'priority', 'job_type',
            'service_type', 'scheduled_start', 'scheduled_end', 'total_amount',
            'customer', 'customer_name', 'property', 'property_city',
            'assigned_to', 'assigned_to_name', 'created_at',
        ]
        read_only_fields = fields


class JobSerializer(JobListSerializer):
    """Detailed serializer for Job"""

    line_items = JobLineItemSerializer(many=True, read_only=True)
    notes = JobNoteSerializer(many=True, read_only=True)

    class Meta(JobListSerializer.Meta):
        fields = JobListSerializer.Meta.fields + [
            'description', 'internal_notes', 'customer_notes', 'tags',
            'actual_start', 'actual_end', 'dispatched_at', 'completed_at',
            'created_by', 'updated_at', 'line_items', 'notes',
        ]
        read_only_fields = fields


class JobCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    property_id = serializers.IntegerField()
    job_type = serializers.CharField(max_length=100)
    summary = serializers.CharField(max_length=255)
    service_type = serializers.CharField(max_length=100, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    customer_notes = serializers.CharField(required=False, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    assigned_to = serializers.IntegerField(required=False, allow_null=True)
    scheduled_start = serializers.DateTimeField(required=False, allow_null=True)
    scheduled_end = serializers.DateTimeField(required=False, allow_null=True)
    line_items = LineItemInputSerializer(many=True, required=False)


class JobUpdateSerializer(serializers.Serializer):
    job_type = serializers.CharField(max_length=100, required=False)
    summary = serializers.CharField(max_length=255, required=False)
    service_type = serializers.CharField(max_length=100, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    customer_notes = serializers.CharField(required=False, allow_blank=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    assigned_to = serializers.IntegerField(required=False, allow_null=True)
    scheduled_start = serializers.DateTimeField(required=False, allow_null=True)
    scheduled_end = serializers.DateTimeField(required=False, allow_null=True)


class JobStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=JOB_STATUS_CHOICES)


class JobAssignSerializer(serializers.Serializer):
    technician_id = serializers.IntegerField(allow_null=True)


class JobNoteCreateSerializer(serializers.Serializer):
    content = serializers.CharField()
    is_internal = serializers.BooleanField(default=True)


class ScheduleQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    technician_id = serializers.IntegerField(required=False)


class TechnicianSerializer(serializers.Serializer):
    id = serializers.IntegerField(source='user.id')
    first_name = serializers.CharField(source='user.first_name')
    last_name = serializers.CharField(source='user.last_name')
    phone = serializers.CharField(source='user.phone')
    color = serializers.CharField()
