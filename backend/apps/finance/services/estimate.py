"""
Finance Services - Estimate Service
Priced proposals with alternative options, sending, approval and expiry
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from django.db.models import Max, Q, QuerySet
from django.utils import timezone

from apps.core.exceptions import InvalidStateTransition, ValidationError
from apps.core.models import TenantSequence
from apps.core.services.base import BaseService, atomic_operation
from apps.core.services.ledger import LineItemLedger, normalize_line_items
from apps.core.services.sequences import SequenceAllocator
from apps.core.utils import ZERO, quantize_money, to_date
from apps.crm.services import CustomerReferenceMixin
from apps.jobs.constants import CANCELED as JOB_CANCELED
from apps.jobs.models import Job
from ..constants import (
    ESTIMATE_APPROVED, ESTIMATE_DECLINED, ESTIMATE_DRAFT, ESTIMATE_EDITABLE_STATUSES,
    ESTIMATE_EXPIRED, ESTIMATE_OPEN_STATUSES, ESTIMATE_SENT, ESTIMATE_STATE_MACHINE,
    ESTIMATE_VIEWED,
)
from ..models import Estimate, EstimateOption, EstimateOptionItem

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('summary', 'notes', 'internal_notes')

ORDERING_FIELDS = {'created_at', 'estimate_number', 'status', 'total_amount', 'valid_until'}


class EstimateService(CustomerReferenceMixin, BaseService):
    """Estimate lifecycle: drafting options, sending, approval and expiry"""

    resource = 'estimates'
    entity_type = 'estimate'

    # ============================================================================
    # QUERIES
    # ============================================================================

    def list_estimates(self, filters: Optional[Dict] = None) -> QuerySet:
        """
        List estimates of this tenant.

        Args:
            filters: status (str or list), customer_id, job_id, search, ordering
        """
        self.check_permission('read')
        filters = filters or {}
        queryset = Estimate.objects.filter(tenant=self.tenant).select_related('customer', 'property', 'job')

        status = filters.get('status')
        if status:
            statuses = [status] if isinstance(status, str) else list(status)
            queryset = queryset.filter(status__in=statuses)

        if filters.get('customer_id'):
            queryset = queryset.filter(customer_id=filters['customer_id'])
        if filters.get('job_id'):
            queryset = queryset.filter(job_id=filters['job_id'])

        search = (filters.get('search') or '').strip()
        if search:
            queryset = queryset.filter(Q(estimate_number__icontains=search) | Q(summary__icontains=search))

        ordering = filters.get('ordering') or '-created_at'
        if ordering.lstrip('-') not in ORDERING_FIELDS:
            raise ValidationError(f"Cannot order estimates by '{ordering}'", field='ordering')
        return queryset.order_by(ordering, '-id')

    def get_estimate(self, estimate_id) -> Estimate:
        self.check_permission('read')
        return self._get_estimate(estimate_id)

    # ============================================================================
    # ESTIMATE CREATION & UPDATES
    # ============================================================================

    @atomic_operation
    def create_estimate(self, data: Dict) -> Estimate:
        """
        Create a draft estimate with its options

        Args:
            data: Estimate details dictionary
                - customer_id: Customer ID
                - property_id: Property ID (optional, must belong to the customer)
                - job_id: Job ID (optional, same customer, not canceled)
                - summary, notes, internal_notes, valid_until
                - options: at least one {name, description, is_recommended, items}

        Returns:
            Created Estimate whose total is the highest option total
        """
        self.check_permission('create')

        options = data.get('options') or []
        if not options:
            raise ValidationError('At least one option is required', field='options')

        customer = self.resolve_customer(data.get('customer_id'))
        prop = self.resolve_property(data.get('property_id'), customer, required=False)
        job = self._resolve_job(data.get('job_id'), customer)
        fields = self._clean_fields(data)
        cleaned_options = [self._clean_option(option, position) for position, option in enumerate(options)]

        estimate_number = SequenceAllocator(self.tenant).allocate(TenantSequence.ESTIMATE)
        estimate = Estimate.objects.create(
            tenant=self.tenant,
            estimate_number=estimate_number,
            customer=customer,
            property=prop,
            job=job,
            status=ESTIMATE_DRAFT,
            created_by=self.user,
            **fields,
        )

        for position, (option_fields, items) in enumerate(cleaned_options):
            option_fields.setdefault('sort_order', position)
            self._create_option(estimate, option_fields, items)

        self.recalculate_total(estimate)

        self.log_activity(self.entity_type, estimate.pk, 'created', {
            'estimate_number': estimate.estimate_number,
            'options': len(cleaned_options),
            'total_amount': str(estimate.total_amount),
        })
        logger.info(f"Created estimate {estimate.estimate_number} for tenant {self.tenant.pk}")
        return estimate

    @atomic_operation
    def update_estimate(self, estimate_id, data: Dict) -> Estimate:
        """Edit the descriptive fields of a draft estimate"""
        self.check_permission('update')
        if 'status' in data:
            raise ValidationError('Status changes go through the estimate actions', field='status')

        estimate = self._get_editable(estimate_id)
        fields = self._clean_fields(data)

        changed = []
        for name, value in fields.items():
            if getattr(estimate, name) != value:
                setattr(estimate, name, value)
                changed.append(name)

        if changed:
            estimate.save(update_fields=changed + ['updated_at'])
            self.log_activity(self.entity_type, estimate.pk, 'updated', {'fields': sorted(changed)})
        return estimate

    # ============================================================================
    # OPTIONS & OPTION ITEMS (draft only)
    # ============================================================================

    def option_ledger(self, estimate: Estimate, option: EstimateOption) -> LineItemLedger:
        return LineItemLedger(
            option, EstimateOptionItem, 'option', 'total',
            label='Option item',
            on_recalculate=lambda total: self.recalculate_total(estimate),
        )

    @atomic_operation
    def add_option(self, estimate_id, data: Dict) -> EstimateOption:
        self.check_permission('update')
        option_fields, items = self._clean_option(data)
        estimate = self._get_editable(estimate_id)

        option = self._create_option(estimate, option_fields, items)
        self.recalculate_total(estimate)

        self.log_activity(self.entity_type, estimate.pk, 'option_added', {
            'option_id': option.pk,
            'total_amount': str(estimate.total_amount),
        })
        return option

    @atomic_operation
    def update_option(self, estimate_id, option_id, data: Dict) -> EstimateOption:
        """Rename or re-describe an option; its total only moves with its items"""
        self.check_permission('update')
        estimate = self._get_editable(estimate_id)
        option = self._get_option(estimate, option_id)
        fields, _ = self._clean_option(data, partial=True)

        changed = []
        for name, value in fields.items():
            if getattr(option, name) != value:
                setattr(option, name, value)
                changed.append(name)

        if changed:
            option.save(update_fields=changed + ['updated_at'])
            self.log_activity(self.entity_type, estimate.pk, 'option_updated', {
                'option_id': option.pk,
                'fields': sorted(changed),
            })
        return option

    @atomic_operation
    def delete_option(self, estimate_id, option_id) -> Estimate:
        self.check_permission('update')
        estimate = self._get_editable(estimate_id)
        option = self._get_option(estimate, option_id)
        option_pk = option.pk

        option.delete()
        self.recalculate_total(estimate)

        self.log_activity(self.entity_type, estimate.pk, 'option_deleted', {
            'option_id': option_pk,
            'total_amount': str(estimate.total_amount),
        })
        return estimate

    @atomic_operation
    def add_option_item(self, estimate_id, option_id, data: Dict) -> EstimateOptionItem:
        self.check_permission('update')
        estimate = self._get_editable(estimate_id)
        option = self._get_option(estimate, option_id, lock=True)
        item = self.option_ledger(estimate, option).add(data)
        self.log_activity(self.entity_type, estimate.pk, 'option_item_added', {
            'option_id': option.pk,
            'item_id': item.pk,
            'option_total': str(option.total),
        })
        return item

    @atomic_operation
    def update_option_item(self, estimate_id, option_id, item_id, data: Dict) -> EstimateOptionItem:
        self.check_permission('update')
        estimate = self._get_editable(estimate_id)
        option = self._get_option(estimate, option_id, lock=True)
        item = self.option_ledger(estimate, option).update(item_id, data)
        self.log_activity(self.entity_type, estimate.pk, 'option_item_updated', {
            'option_id': option.pk,
            'item_id': item.pk,
            'option_total': str(option.total),
        })
        return item

    @atomic_operation
    def delete_option_item(self, estimate_id, option_id, item_id) -> EstimateOption:
        self.check_permission('update')
        estimate = self._get_editable(estimate_id)
        option = self._get_option(estimate, option_id, lock=True)
        item = self.option_ledger(estimate, option).remove(item_id)
        self.log_activity(self.entity_type, estimate.pk, 'option_item_deleted', {
            'option_id': option.pk,
            'item_id': item.pk,
            'option_total': str(option.total),
        })
        return option

    def recalculate_total(self, estimate: Estimate):
        """
        Re-derive the estimate total from its options: the highest option
        total while the customer is still choosing, the approved option's
        total once one has been approved.
        """
        if estimate.approved_option_id:
            total = EstimateOption.objects.values_list('total', flat=True).get(pk=estimate.approved_option_id)
        else:
            total = estimate.options.aggregate(top=Max('total'))['top']
        total = quantize_money(total if total is not None else ZERO)

        estimate.total_amount = total
        Estimate.objects.filter(pk=estimate.pk).update(total_amount=total, updated_at=timezone.now())
        return total

    # ============================================================================
    # STATUS WORKFLOW
    # ============================================================================

    @atomic_operation
    def send_estimate(self, estimate_id) -> Estimate:
        self.check_permission('update')
        estimate = self._get_estimate(estimate_id, lock=True)
        ESTIMATE_STATE_MACHINE.assert_transition(estimate.status, ESTIMATE_SENT, entity_id=estimate.pk)
        if not estimate.options.exists():
            raise ValidationError('An estimate needs at least one option before it is sent', field='options')

        estimate.status = ESTIMATE_SENT
        estimate.sent_at = timezone.now()
        estimate.save(update_fields=['status', 'sent_at', 'updated_at'])

        self.log_activity(self.entity_type, estimate.pk, 'sent', {'from': ESTIMATE_DRAFT, 'to': ESTIMATE_SENT})
        return estimate

    @atomic_operation
    def mark_viewed(self, estimate_id) -> Estimate:
        """Record that the customer opened a sent estimate"""
        self.check_permission('update')
        estimate = self._get_estimate(estimate_id, lock=True)
        ESTIMATE_STATE_MACHINE.assert_transition(estimate.status, ESTIMATE_VIEWED, entity_id=estimate.pk)

        estimate.status = ESTIMATE_VIEWED
        estimate.viewed_at = timezone.now()
        estimate.save(update_fields=['status', 'viewed_at', 'updated_at'])

        self.log_activity(self.entity_type, estimate.pk, 'viewed', {'from': ESTIMATE_SENT, 'to': ESTIMATE_VIEWED})
        return estimate

    @atomic_operation
    def approve_estimate(self, estimate_id, option_id) -> Estimate:
        """
        Approve one option of a sent or viewed estimate.

        The chosen option is locked in for good: the estimate total becomes
        that option's total and no later call can approve another option.
        """
        self.check_permission('update')
        estimate = self._get_estimate(estimate_id, lock=True)
        current_status = estimate.status

        if estimate.approved_option_id:
            raise InvalidStateTransition(
                'Estimate', current_status, ESTIMATE_APPROVED, entity_id=estimate.pk,
                message='Estimate has already been approved',
            )
        ESTIMATE_STATE_MACHINE.assert_transition(current_status, ESTIMATE_APPROVED, entity_id=estimate.pk)
        option = self._get_option(estimate, option_id)

        estimate.status = ESTIMATE_APPROVED
        estimate.approved_option = option
        estimate.approved_at = timezone.now()
        estimate.total_amount = option.total
        estimate.save(update_fields=['status', 'approved_option', 'approved_at', 'total_amount', 'updated_at'])

        self.log_activity(self.entity_type, estimate.pk, 'approved', {
            'from': current_status,
            'to': ESTIMATE_APPROVED,
            'option_id': option.pk,
            'total_amount': str(estimate.total_amount),
        })
        return estimate

    @atomic_operation
    def decline_estimate(self, estimate_id) -> Estimate:
        self.check_permission('update')
        estimate = self._get_estimate(estimate_id, lock=True)
        current_status = estimate.status
        ESTIMATE_STATE_MACHINE.assert_transition(current_status, ESTIMATE_DECLINED, entity_id=estimate.pk)

        estimate.status = ESTIMATE_DECLINED
        estimate.declined_at = timezone.now()
        estimate.save(update_fields=['status', 'declined_at', 'updated_at'])

        self.log_activity(self.entity_type, estimate.pk, 'declined', {'from': current_status, 'to': ESTIMATE_DECLINED})
        return estimate

    @atomic_operation
    def expire_estimates(self, as_of: date = None) -> List[Estimate]:
        """Move sent or viewed estimates past their valid-until date to expired"""
        self.check_permission('update')
        as_of = to_date(as_of, 'as_of') or timezone.localdate()

        stale = list(
            Estimate.objects.select_for_update()
            .filter(tenant=self.tenant, status__in=ESTIMATE_OPEN_STATUSES, valid_until__lt=as_of)
            .order_by('id')
        )
        for estimate in stale:
            current_status = estimate.status
            estimate.status = ESTIMATE_EXPIRED
            estimate.save(update_fields=['status', 'updated_at'])
            self.log_activity(self.entity_type, estimate.pk, 'expired', {
                'from': current_status,
                'to': ESTIMATE_EXPIRED,
                'valid_until': estimate.valid_until.isoformat(),
            })

        if stale:
            logger.info(f"Expired {len(stale)} estimates for tenant {self.tenant.pk}")
        return stale

    # ============================================================================
    # HELPERS
    # ============================================================================

    def _get_estimate(self, estimate_id, lock: bool = False) -> Estimate:
        return self.get_for_tenant(Estimate, estimate_id, 'Estimate', lock=lock)

    def _get_editable(self, estimate_id) -> Estimate:
        estimate = self._get_estimate(estimate_id, lock=True)
        ESTIMATE_STATE_MACHINE.assert_in(
            estimate.status, ESTIMATE_EDITABLE_STATUSES, entity_id=estimate.pk,
            message='Only draft estimates can be edited',
        )
        return estimate

    def _get_option(self, estimate: Estimate, option_id, lock: bool = False) -> EstimateOption:
        return self.get_for_tenant(
            EstimateOption.objects.filter(estimate=estimate), option_id, 'Estimate option', lock=lock
        )

    def _create_option(self, estimate: Estimate, fields: Dict, items: List[Dict]) -> EstimateOption:
        if 'sort_order' not in fields:
            top = estimate.options.aggregate(top=Max('sort_order'))['top']
            fields['sort_order'] = 0 if top is None else top + 1
        option = EstimateOption.objects.create(tenant=self.tenant, estimate=estimate, **fields)
        if items:
            LineItemLedger(option, EstimateOptionItem, 'option', 'total').add_many(items)
        return option

    def _resolve_job(self, job_id, customer):
        if job_id in (None, ''):
            return None
        job = self.get_for_tenant(Job, job_id, 'Job')
        if job.status == JOB_CANCELED:
            raise InvalidStateTransition(
                'Job', job.status, entity_id=job.pk,
                message='Canceled jobs cannot be linked to an estimate',
            )
        if job.customer_id != customer.pk:
            raise ValidationError('Job does not belong to the selected customer', field='job_id')
        return job

    def _clean_fields(self, data: Dict) -> Dict:
        fields = {}
        for name in TEXT_FIELDS:
            if name in data:
                fields[name] = str(data.get(name) or '').strip()
        if 'valid_until' in data:
            fields['valid_until'] = to_date(data.get('valid_until'), 'valid_until')
        return fields

    def _clean_option(self, data: Dict, position: int = None, partial: bool = False):
        """Validate an option payload; returns (fields, cleaned items)"""
        prefix = f"options[{position}]." if position is not None else ''
        if not isinstance(data, dict):
            raise ValidationError('Option must be an object', field=prefix.rstrip('.') or 'option')

        fields = {}
        if 'name' in data or not partial:
            name = str(data.get('name') or '').strip()
            if not name:
                raise ValidationError('Option name is required', field=f'{prefix}name')
            fields['name'] = name[:255]
        if 'description' in data:
            fields['description'] = str(data.get('description') or '').strip()
        if 'is_recommended' in data or not partial:
            fields['is_recommended'] = bool(data.get('is_recommended', False))
        if data.get('sort_order') is not None:
            try:
                fields['sort_order'] = int(data['sort_order'])
            except (TypeError, ValueError):
                raise ValidationError('Sort order must be a non-negative integer', field=f'{prefix}sort_order')
            if fields['sort_order'] < 0:
                raise ValidationError('Sort order must be a non-negative integer', field=f'{prefix}sort_order')

        items = []
        if not partial:
            try:
                items = normalize_line_items(data.get('items') or [])
            except ValidationError as exc:
                raise ValidationError(
                    exc.message,
                    details=[
                        dict(detail, field=f"{prefix}{detail['field']}") for detail in exc.details
                    ],
                )
        return fields, items
