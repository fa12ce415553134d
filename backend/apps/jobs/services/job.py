"""
Jobs Services - Job Lifecycle Service
Job creation, scheduling, dispatch status workflow and priced line items
"""

import logging
from typing import Dict, Optional

from django.db.models import Case, IntegerField, Q, QuerySet, Value, When
from django.utils import timezone

from apps.auth.models import Membership
from apps.core.exceptions import NotFoundError, ValidationError
from apps.core.models import TenantSequence
from apps.core.services.base import BaseService, atomic_operation
from apps.core.services.ledger import LineItemLedger, normalize_line_items
from apps.core.services.sequences import SequenceAllocator
from apps.core.utils import to_datetime
from apps.crm.services import CustomerReferenceMixin
from ..constants import (
    CANCELED, COMPLETED, DISPATCHABLE_STATUSES, DISPATCHED, IN_PROGRESS, JOB_STATE_MACHINE,
    NEW, PRIORITY_CHOICES, PRIORITY_NORMAL, PRIORITY_RANK, SCHEDULED,
)
from ..models import Job, JobLineItem, JobNote

logger = logging.getLogger(__name__)

PRIORITIES = {choice for choice, _ in PRIORITY_CHOICES}

TEXT_FIELDS = ('job_type', 'service_type', 'summary', 'description', 'internal_notes', 'customer_notes')
REQUIRED_TEXT_FIELDS = ('job_type', 'summary')

ORDERING_FIELDS = {
    'created_at', 'scheduled_start', 'status', 'priority', 'job_number', 'total_amount',
}


class JobService(CustomerReferenceMixin, BaseService):
    """Job lifecycle: creation, status workflow, assignment and line items"""

    resource = 'jobs'
    entity_type = 'job'

    # ============================================================================
    # QUERIES
    # ============================================================================

    def visible_jobs(self) -> QuerySet:
        """Jobs of this tenant the caller may see; technicians only see their own"""
        queryset = Job.objects.filter(tenant=self.tenant)
        if self.context.role == Membership.ROLE_TECHNICIAN:
            queryset = queryset.filter(assigned_to=self.context.user)
        return queryset

    def list_jobs(self, filters: Optional[Dict] = None) -> QuerySet:
        """
        List jobs with optional filters.

        Args:
            filters: status (str or list), priority, assigned_to, customer_id,
                scheduled_from, scheduled_to, search, ordering

        Returns:
            QuerySet of jobs, newest first unless ``ordering`` says otherwise
        """
        self.check_permission('read')
        filters = filters or {}
        queryset = self.visible_jobs().select_related('customer', 'property', 'assigned_to')

        status = filters.get('status')
        if status:
            statuses = [status] if isinstance(status, str) else list(status)
            queryset = queryset.filter(status__in=statuses)

        if filters.get('priority'):
            queryset = queryset.filter(priority=filters['priority'])

        if filters.get('assigned_to') and self.context.role != Membership.ROLE_TECHNICIAN:
            queryset = queryset.filter(assigned_to_id=filters['assigned_to'])

        if filters.get('customer_id'):
            queryset = queryset.filter(customer_id=filters['customer_id'])

        if filters.get('scheduled_from'):
            queryset = queryset.filter(
                scheduled_start__gte=to_datetime(filters['scheduled_from'], 'scheduled_from')
            )
        if filters.get('scheduled_to'):
            queryset = queryset.filter(
                scheduled_start__lte=to_datetime(filters['scheduled_to'], 'scheduled_to')
            )

        search = (filters.get('search') or '').strip()
        if search:
            queryset = queryset.filter(
                Q(summary__icontains=search)
                | Q(job_number__icontains=search)
                | Q(description__icontains=search)
            )

        ordering = filters.get('ordering') or '-created_at'
        if ordering.lstrip('-') not in ORDERING_FIELDS:
            raise ValidationError(f"Cannot order jobs by '{ordering}'", field='ordering')
        return queryset.order_by(ordering, '-id')

    def get_job(self, job_id) -> Job:
        self.check_permission('read')
        return self._get_job(job_id)

    def get_line_items(self, job_id):
        job = self.get_job(job_id)
        return self.ledger(job).items()

    def get_schedule(self, start, end, technician_id=None) -> QuerySet:
        """Non-canceled jobs whose scheduled start falls inside [start, end]"""
        self.check_permission('read', resource='schedule')
        start = to_datetime(start, 'start')
        end = to_datetime(end, 'end')
        if start is None or end is None:
            raise ValidationError('Schedule window needs a start and an end')
        if end < start:
            raise ValidationError('Schedule window ends before it starts', field='end')

        queryset = self.visible_jobs().filter(
            scheduled_start__gte=start,
            scheduled_start__lte=end,
        ).exclude(status=CANCELED)

        if technician_id and self.context.role != Membership.ROLE_TECHNICIAN:
            queryset = queryset.filter(assigned_to_id=technician_id)

        return queryset.select_related('customer', 'property', 'assigned_to').order_by('scheduled_start', 'id')

    def get_dispatchable_jobs(self) -> QuerySet:
        """Unscheduled or scheduled jobs, most urgent first, then oldest first"""
        self.check_permission('read', resource='schedule')
        rank = Case(
            *[When(priority=priority, then=Value(position)) for priority, position in PRIORITY_RANK.items()],
            default=Value(len(PRIORITY_RANK)),
            output_field=IntegerField(),
        )
        return (
            self.visible_jobs()
            .filter(status__in=DISPATCHABLE_STATUSES)
            .select_related('customer', 'property', 'assigned_to')
            .annotate(priority_rank=rank)
            .order_by('priority_rank', 'created_at', 'id')
        )

    def get_technicians(self) -> QuerySet:
        """Active members that can be dispatched to jobs"""
        self.check_permission('read', resource='schedule')
        return (
            Membership.objects.filter(
                tenant=self.tenant, can_be_dispatched=True, is_active=True, status='active'
            )
            .select_related('user')
            .order_by('user__first_name', 'user__last_name')
        )

    # ============================================================================
    # JOB CREATION & UPDATES
    # ============================================================================

    @atomic_operation
    def create_job(self, data: Dict) -> Job:
        """
        Create a job, optionally with priced line items

        Args:
            data: Job details dictionary
                - customer_id: Customer ID
                - property_id: Property ID (must belong to the customer)
                - job_type, summary: required descriptions
                - service_type, description, internal_notes, customer_notes, tags
                - priority: low/normal/high/emergency (default normal)
                - assigned_to: technician user ID (optional)
                - scheduled_start, scheduled_end: optional window
                - line_items: list of {description, quantity, unit_price, item_type}

        Returns:
            Created Job instance, ``scheduled`` when both a technician and a
            start time were given, ``new`` otherwise
        """
        self.check_permission('create')

        customer = self.resolve_customer(data.get('customer_id'))
        prop = self.resolve_property(data.get('property_id'), customer)
        technician = self._resolve_technician(data.get('assigned_to'))
        fields = self._clean_fields(data, creating=True)
        line_items = data.get('line_items') or []
        normalize_line_items(line_items)

        initial_status = SCHEDULED if technician and fields.get('scheduled_start') else NEW
        job_number = SequenceAllocator(self.tenant).allocate(TenantSequence.JOB)

        job = Job.objects.create(
            tenant=self.tenant,
            job_number=job_number,
            customer=customer,
            property=prop,
            assigned_to=technician,
            status=initial_status,
            created_by=self.user,
            **fields,
        )

        if line_items:
            self.ledger(job).add_many(line_items)

        self.log_activity(self.entity_type, job.pk, 'created', {
            'job_number': job.job_number,
            'status': job.status,
        })
        logger.info(f"Created job {job.job_number} for tenant {self.tenant.pk}")
        return job

    @atomic_operation
    def update_job(self, job_id, data: Dict) -> Job:
        """Update descriptive fields, priority, assignment and schedule. Never the status."""
        self.check_permission('update')
        if 'status' in data:
            raise ValidationError('Status changes go through the status transition', field='status')

        job = self._get_job(job_id, lock=True)
        fields = self._clean_fields(data, creating=False, current=job)
        if 'assigned_to' in data:
            fields['assigned_to'] = self._resolve_technician(data.get('assigned_to'))

        changed = []
        for name, value in fields.items():
            if getattr(job, name) != value:
                setattr(job, name, value)
                changed.append(name)

        if changed:
            job.save(update_fields=changed + ['updated_at'])
            self.log_activity(self.entity_type, job.pk, 'updated', {'fields': sorted(changed)})
        return job

    # ============================================================================
    # STATUS WORKFLOW
    # ============================================================================

    @atomic_operation
    def change_status(self, job_id, new_status: str) -> Job:
        """
        Move a job along the transition table.

        Entering ``dispatched`` stamps dispatched_at, ``in_progress`` stamps
        actual_start and ``completed`` stamps actual_end and completed_at.
        """
        self.check_permission('update')
        job = self._get_job(job_id, lock=True)
        current_status = job.status

        JOB_STATE_MACHINE.assert_transition(current_status, new_status, entity_id=job.pk)

        now = timezone.now()
        job.status = new_status
        update_fields = ['status', 'updated_at']

        if new_status == DISPATCHED:
            job.dispatched_at = now
            update_fields.append('dispatched_at')
        elif new_status == IN_PROGRESS:
            job.actual_start = now
            update_fields.append('actual_start')
        elif new_status == COMPLETED:
            job.actual_end = now
            job.completed_at = now
            update_fields.extend(['actual_end', 'completed_at'])

        job.save(update_fields=update_fields)

        self.log_activity(self.entity_type, job.pk, 'status_changed', {
            'from': current_status,
            'to': new_status,
        })
        return job

    @atomic_operation
    def assign_job(self, job_id, technician_id) -> Job:
        """Assign a dispatchable technician, or unassign with ``None``"""
        self.check_permission('update', resource='schedule')
        job = self._get_job(job_id, lock=True)
        technician = self._resolve_technician(technician_id, dispatchable=True)

        job.assigned_to = technician
        job.save(update_fields=['assigned_to', 'updated_at'])

        self.log_activity(self.entity_type, job.pk, 'assigned', {
            'technician_id': technician.pk if technician else None,
        })
        return job

    # ============================================================================
    # LINE ITEMS & NOTES
    # ============================================================================

    def ledger(self, job: Job) -> LineItemLedger:
        return LineItemLedger(job, JobLineItem, 'job', 'total_amount', label='Line item')

    @atomic_operation
    def add_line_item(self, job_id, data: Dict) -> JobLineItem:
        self.check_permission('update')
        job = self._get_job(job_id, lock=True)
        item = self.ledger(job).add(data)
        self.log_activity(self.entity_type, job.pk, 'line_item_added', {
            'item_id': item.pk,
            'total_amount': str(job.total_amount),
        })
        return item

    @atomic_operation
    def update_line_item(self, job_id, item_id, data: Dict) -> JobLineItem:
        self.check_permission('update')
        job = self._get_job(job_id, lock=True)
        item = self.ledger(job).update(item_id, data)
        self.log_activity(self.entity_type, job.pk, 'line_item_updated', {
            'item_id': item.pk,
            'total_amount': str(job.total_amount),
        })
        return item

    @atomic_operation
    def delete_line_item(self, job_id, item_id) -> Job:
        self.check_permission('update')
        job = self._get_job(job_id, lock=True)
        item = self.ledger(job).remove(item_id)
        self.log_activity(self.entity_type, job.pk, 'line_item_deleted', {
            'item_id': item.pk,
            'total_amount': str(job.total_amount),
        })
        return job

    @atomic_operation
    def add_note(self, job_id, content: str, is_internal: bool = True) -> JobNote:
        self.check_permission('update')
        content = (content or '').strip()
        if not content:
            raise ValidationError('Note content is required', field='content')

        job = self._get_job(job_id)
        note = JobNote.objects.create(
            tenant=self.tenant,
            job=job,
            user=self.user,
            content=content,
            is_internal=bool(is_internal),
        )
        self.log_activity(self.entity_type, job.pk, 'note_added', {
            'note_id': note.pk,
            'is_internal': note.is_internal,
        })
        return note

    # ============================================================================
    # HELPERS
    # ============================================================================

    def _get_job(self, job_id, lock: bool = False) -> Job:
        return self.get_for_tenant(self.visible_jobs(), job_id, 'Job', lock=lock)

    def _resolve_technician(self, user_id, dispatchable: bool = False):
        if user_id in (None, ''):
            return None
        memberships = Membership.objects.filter(
            tenant=self.tenant, is_active=True, status='active'
        ).select_related('user')
        if dispatchable:
            memberships = memberships.filter(can_be_dispatched=True)
        try:
            membership = memberships.filter(user_id=user_id).first()
        except (ValueError, TypeError):
            membership = None
        if membership is None:
            raise NotFoundError('Technician', user_id)
        return membership.user

    def _clean_fields(self, data: Dict, creating: bool, current: Job = None) -> Dict:
        fields = {}
        errors = []

        for name in TEXT_FIELDS:
            if name in data or (creating and name in REQUIRED_TEXT_FIELDS):
                value = str(data.get(name) or '').strip()
                if name in REQUIRED_TEXT_FIELDS and not value:
                    errors.append({'field': name, 'message': f"{name.replace('_', ' ').capitalize()} is required"})
                fields[name] = value

        if 'priority' in data or creating:
            priority = data.get('priority') or PRIORITY_NORMAL
            if priority not in PRIORITIES:
                errors.append({'field': 'priority', 'message': f"Unknown priority '{priority}'"})
            fields['priority'] = priority

        if 'tags' in data:
            tags = data.get('tags') or []
            if not isinstance(tags, (list, tuple)) or not all(isinstance(tag, str) for tag in tags):
                errors.append({'field': 'tags', 'message': 'Tags must be a list of strings'})
            fields['tags'] = list(tags) if isinstance(tags, (list, tuple)) else []

        for name in ('scheduled_start', 'scheduled_end'):
            if name in data:
                try:
                    fields[name] = to_datetime(data.get(name), name)
                except ValidationError as exc:
                    errors.extend(exc.details)

        if errors:
            raise ValidationError(errors[0]['message'] if len(errors) == 1 else 'Invalid job', details=errors)

        start = fields.get('scheduled_start', current.scheduled_start if current else None)
        end = fields.get('scheduled_end', current.scheduled_end if current else None)
        if start and end and end < start:
            raise ValidationError('Scheduled end is before scheduled start', field='scheduled_end')
        return fields
