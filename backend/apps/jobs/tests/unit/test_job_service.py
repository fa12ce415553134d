# apps/jobs/tests/unit/test_job_service.py
import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.auth.models import Membership
from apps.core.exceptions import (
    InvalidStateTransition, NotFoundError, PermissionDeniedError, ValidationError,
)
from apps.core.services.base import ServiceContext
from apps.crm.tests.factories import PropertyFactory
from ...constants import (
    CANCELED, COMPLETED, DISPATCHED, IN_PROGRESS, JOB_TRANSITIONS, NEW, SCHEDULED,
)
from ...models import Job
from ...services import JobService
from ..factories import JobFactory

ALL_STATUSES = [NEW, SCHEDULED, DISPATCHED, IN_PROGRESS, COMPLETED, CANCELED]


@pytest.fixture
def job_service(admin_context, activity_sink):
    return JobService(admin_context, activity_sink=activity_sink)


@pytest.fixture
def job_data(customer, customer_property):
    return {
        'customer_id': customer.pk,
        'property_id': customer_property.pk,
        'job_type': 'HVAC Repair',
        'summary': 'No cooling upstairs',
    }


@pytest.mark.django_db
class TestJobCreation:
    """Test creating jobs."""

    def test_create_without_line_items(self, job_service, job_data, activity_sink):
        """Test that a new job starts at zero with the first number."""
        job = job_service.create_job(job_data)

        assert job.job_number == 'JOB-0001'
        assert job.status == NEW
        assert job.total_amount == Decimal('0.00')
        assert job.priority == 'normal'
        assert activity_sink.actions('job') == ['created']

    def test_line_item_scenario(self, job_service, job_data):
        """Test totals through add, add and delete."""
        job = job_service.create_job(job_data)

        first = job_service.add_line_item(job.pk, {'description': 'Labor', 'quantity': 2, 'unit_price': '50.00'})
        assert Job.objects.get(pk=job.pk).total_amount == Decimal('100.00')

        job_service.add_line_item(job.pk, {'description': 'Part', 'quantity': 1, 'unit_price': '25.00'})
        assert Job.objects.get(pk=job.pk).total_amount == Decimal('125.00')

        job_service.delete_line_item(job.pk, first.pk)
        assert Job.objects.get(pk=job.pk).total_amount == Decimal('25.00')

    def test_update_line_item_recomputes(self, job_service, job_data):
        job = job_service.create_job({**job_data, 'line_items': [
            {'description': 'Labor', 'quantity': '1.5', 'unit_price': '80.00'},
            {'description': 'Filter', 'quantity': '2', 'unit_price': '12.49'},
        ]})
        assert job.total_amount == Decimal('144.98')

        item = job_service.get_line_items(job.pk).first()
        job_service.update_line_item(job.pk, item.pk, {'quantity': '2'})

        assert Job.objects.get(pk=job.pk).total_amount == Decimal('184.98')

    def test_oversized_line_keeps_job_readable(self, job_service, job_data):
        """Test that a line total beyond the stored precision is rejected and nothing is written."""
        job = job_service.create_job(job_data)

        with pytest.raises(ValidationError) as exc_info:
            job_service.add_line_item(job.pk, {
                'description': 'Tower', 'quantity': '100', 'unit_price': '1000000000.00',
            })

        assert exc_info.value.details[0]['field'] == 'unit_price'
        assert Job.objects.get(pk=job.pk).total_amount == Decimal('0.00')
        assert not job_service.get_line_items(job.pk).exists()

    def test_job_total_cannot_exceed_storage(self, job_service, job_data):
        job = job_service.create_job(job_data)
        job_service.add_line_item(job.pk, {'description': 'Plant', 'unit_price': '9999999999.99'})

        with pytest.raises(ValidationError) as exc_info:
            job_service.add_line_item(job.pk, {'description': 'Bolt', 'unit_price': '0.01'})

        assert exc_info.value.message == 'Total is too large'
        assert Job.objects.get(pk=job.pk).total_amount == Decimal('9999999999.99')
        assert job_service.get_line_items(job.pk).count() == 1

    def test_technician_and_start_schedule_the_job(self, job_service, job_data, technician):
        start = timezone.now() + timedelta(days=1)

        job = job_service.create_job({**job_data, 'assigned_to': technician.pk, 'scheduled_start': start})

        assert job.status == SCHEDULED
        assert job.assigned_to == technician

    def test_technician_without_start_stays_new(self, job_service, job_data, technician):
        job = job_service.create_job({**job_data, 'assigned_to': technician.pk})

        assert job.status == NEW

    def test_numbers_increase(self, job_service, job_data):
        numbers = [job_service.create_job(job_data).job_number for _ in range(3)]

        assert numbers == ['JOB-0001', 'JOB-0002', 'JOB-0003']

    def test_property_must_belong_to_customer(self, job_service, job_data, tenant):
        stranger_property = PropertyFactory(customer__tenant=tenant)

        with pytest.raises(ValidationError):
            job_service.create_job({**job_data, 'property_id': stranger_property.pk})

        assert not Job.objects.exists()

    def test_customer_of_other_tenant_is_not_found(self, job_service, job_data, other_customer):
        with pytest.raises(NotFoundError):
            job_service.create_job({**job_data, 'customer_id': other_customer.pk})

    def test_invalid_line_item_creates_nothing(self, job_service, job_data, tenant):
        """Test that validation happens before the number is allocated."""
        with pytest.raises(ValidationError):
            job_service.create_job({**job_data, 'line_items': [{'description': 'Part', 'unit_price': 9.99}]})

        assert not Job.objects.exists()
        assert job_service.create_job(job_data).job_number == 'JOB-0001'

    def test_scheduled_end_before_start(self, job_service, job_data):
        start = timezone.now()

        with pytest.raises(ValidationError):
            job_service.create_job({**job_data, 'scheduled_start': start, 'scheduled_end': start - timedelta(hours=1)})

    def test_required_fields(self, job_service, job_data):
        with pytest.raises(ValidationError) as exc_info:
            job_service.create_job({**job_data, 'summary': '  '})

        assert exc_info.value.details[0]['field'] == 'summary'

    def test_csr_can_create_but_not_change_status(self, tenant, csr_member, job_data, activity_sink):
        service = JobService(ServiceContext.for_user(tenant, csr_member), activity_sink=activity_sink)
        job = service.create_job(job_data)

        with pytest.raises(PermissionDeniedError):
            service.change_status(job.pk, SCHEDULED)

        assert Job.objects.get(pk=job.pk).status == NEW


@pytest.mark.django_db
class TestJobStatusWorkflow:
    """Test the job transition table."""

    @pytest.mark.parametrize('source, target', list(itertools.product(ALL_STATUSES, ALL_STATUSES)))
    def test_transition_matrix(self, job_service, tenant, source, target):
        """Test every (source, target) pair against the table."""
        job = JobFactory(customer__tenant=tenant, status=source)

        if target in JOB_TRANSITIONS[source]:
            job_service.change_status(job.pk, target)
            assert Job.objects.get(pk=job.pk).status == target
        else:
            with pytest.raises(InvalidStateTransition) as exc_info:
                job_service.change_status(job.pk, target)
            assert exc_info.value.details['current_status'] == source
            assert exc_info.value.details['target_status'] == target
            assert Job.objects.get(pk=job.pk).status == source

    def test_full_lifecycle_stamps(self, job_service, tenant, activity_sink):
        job = JobFactory(customer__tenant=tenant, status=SCHEDULED)

        dispatched = job_service.change_status(job.pk, DISPATCHED)
        assert dispatched.dispatched_at is not None
        assert dispatched.actual_start is None

        started = job_service.change_status(job.pk, IN_PROGRESS)
        assert started.actual_start is not None
        assert started.completed_at is None

        completed = job_service.change_status(job.pk, COMPLETED)
        assert completed.actual_end is not None
        assert completed.completed_at == completed.actual_end

        events = [e for e in activity_sink.events if e.action == 'status_changed']
        assert [e.changes for e in events] == [
            {'from': SCHEDULED, 'to': DISPATCHED},
            {'from': DISPATCHED, 'to': IN_PROGRESS},
            {'from': IN_PROGRESS, 'to': COMPLETED},
        ]

    def test_stamps_are_not_applied_retroactively(self, job_service, tenant):
        """Test that leaving and re-entering a status only stamps the new entry."""
        job = JobFactory(customer__tenant=tenant, status=SCHEDULED)
        job_service.change_status(job.pk, DISPATCHED)
        job_service.change_status(job.pk, SCHEDULED)

        job.refresh_from_db()
        assert job.dispatched_at is not None
        assert job.actual_start is None
        assert job.completed_at is None

    def test_canceled_job_can_be_reopened(self, job_service, tenant):
        job = JobFactory(customer__tenant=tenant, status=CANCELED)

        assert job_service.change_status(job.pk, NEW).status == NEW

    def test_update_cannot_change_status(self, job_service, tenant):
        job = JobFactory(customer__tenant=tenant)

        with pytest.raises(ValidationError):
            job_service.update_job(job.pk, {'status': COMPLETED})


@pytest.mark.django_db
class TestJobAssignment:
    """Test technician assignment and the dispatch views."""

    def test_assign_and_unassign(self, job_service, tenant, technician):
        job = JobFactory(customer__tenant=tenant)

        assert job_service.assign_job(job.pk, technician.pk).assigned_to == technician
        assert job_service.assign_job(job.pk, None).assigned_to is None

    def test_assign_non_dispatchable_member(self, job_service, tenant, csr_member):
        job = JobFactory(customer__tenant=tenant)

        with pytest.raises(NotFoundError):
            job_service.assign_job(job.pk, csr_member.pk)

    def test_assign_member_of_other_tenant(self, job_service, tenant, other_tenant, make_member):
        outsider = make_member(other_tenant, Membership.ROLE_TECHNICIAN, can_be_dispatched=True)
        job = JobFactory(customer__tenant=tenant)

        with pytest.raises(NotFoundError):
            job_service.assign_job(job.pk, outsider.pk)

    def test_dispatchable_jobs_most_urgent_first(self, job_service, tenant):
        low = JobFactory(customer__tenant=tenant, priority='low')
        emergency = JobFactory(customer__tenant=tenant, priority='emergency')
        normal = JobFactory(customer__tenant=tenant, priority='normal', status=SCHEDULED)
        high = JobFactory(customer__tenant=tenant, priority='high')
        JobFactory(customer__tenant=tenant, priority='emergency', status=IN_PROGRESS)

        assert list(job_service.get_dispatchable_jobs()) == [emergency, high, normal, low]

    def test_schedule_window(self, job_service, tenant, technician):
        now = timezone.now()
        inside = JobFactory(customer__tenant=tenant, scheduled_start=now + timedelta(hours=2), assigned_to=technician)
        JobFactory(customer__tenant=tenant, scheduled_start=now + timedelta(hours=3), status=CANCELED)
        JobFactory(customer__tenant=tenant, scheduled_start=now + timedelta(days=3))

        jobs = job_service.get_schedule(now, now + timedelta(days=1))

        assert list(jobs) == [inside]

    def test_schedule_rejects_inverted_window(self, job_service):
        now = timezone.now()

        with pytest.raises(ValidationError):
            job_service.get_schedule(now, now - timedelta(hours=1))

    def test_technicians_list(self, job_service, technician, csr_member):
        assert [m.user for m in job_service.get_technicians()] == [technician]


@pytest.mark.django_db
class TestJobVisibility:
    """Test tenant isolation and technician scoping."""

    def test_technician_sees_only_assigned_jobs(self, tenant, technician_context, technician, activity_sink):
        mine = JobFactory(customer__tenant=tenant, assigned_to=technician)
        theirs = JobFactory(customer__tenant=tenant)
        service = JobService(technician_context, activity_sink=activity_sink)

        assert list(service.list_jobs()) == [mine]
        with pytest.raises(NotFoundError):
            service.get_job(theirs.pk)

    def test_other_tenant_cannot_touch_job(self, tenant, other_context, activity_sink):
        job = JobFactory(customer__tenant=tenant)
        service = JobService(other_context, activity_sink=activity_sink)

        with pytest.raises(NotFoundError):
            service.get_job(job.pk)
        with pytest.raises(NotFoundError):
            service.change_status(job.pk, SCHEDULED)
        with pytest.raises(NotFoundError):
            service.add_line_item(job.pk, {'description': 'X', 'unit_price': '1.00'})

        job.refresh_from_db()
        assert job.status == NEW
        assert job.total_amount == Decimal('0.00')

    def test_list_filters(self, job_service, tenant):
        JobFactory(customer__tenant=tenant, status=NEW, summary='Leaking boiler')
        scheduled = JobFactory(customer__tenant=tenant, status=SCHEDULED, summary='Annual tune-up')

        assert list(job_service.list_jobs({'status': SCHEDULED})) == [scheduled]
        assert list(job_service.list_jobs({'search': 'tune'})) == [scheduled]
        with pytest.raises(ValidationError):
            job_service.list_jobs({'ordering': 'password'})

    def test_add_note(self, job_service, tenant, admin_member):
        job = JobFactory(customer__tenant=tenant)

        note = job_service.add_note(job.pk, ' Gate code 1234 ', is_internal=False)

        assert note.content == 'Gate code 1234'
        assert note.user == admin_member
        assert not note.is_internal
        with pytest.raises(ValidationError):
            job_service.add_note(job.pk, '   ')
