# apps/core/tests/unit/test_sequences.py
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection, transaction

from apps.core.models import TenantSequence
from apps.core.services.sequences import SequenceAllocator, initialize_sequences
from apps.core.utils import format_document_number
from ..factories import TenantFactory


@pytest.mark.django_db
class TestSequenceAllocator:
    """Test tenant-scoped document numbering."""

    def test_new_tenant_gets_seeded_counters(self, tenant):
        """Test that creating a tenant seeds the three counters at zero."""
        counters = TenantSequence.objects.filter(tenant=tenant).order_by('sequence_type')

        assert [(c.sequence_type, c.prefix, c.current_value) for c in counters] == [
            ('estimate', 'EST', 0),
            ('invoice', 'INV', 0),
            ('job', 'JOB', 0),
        ]

    def test_allocations_form_contiguous_run(self, tenant):
        """Test that consecutive allocations are 1..N without gaps."""
        allocator = SequenceAllocator(tenant)

        numbers = [allocator.allocate(TenantSequence.JOB) for _ in range(12)]

        assert numbers == [f"JOB-{n:04d}" for n in range(1, 13)]
        assert TenantSequence.objects.get(tenant=tenant, sequence_type='job').current_value == 12

    def test_document_types_are_independent(self, tenant):
        """Test that each document type keeps its own counter."""
        allocator = SequenceAllocator(tenant)

        assert allocator.allocate(TenantSequence.JOB) == 'JOB-0001'
        assert allocator.allocate(TenantSequence.INVOICE) == 'INV-0001'
        assert allocator.allocate(TenantSequence.ESTIMATE) == 'EST-0001'
        assert allocator.allocate(TenantSequence.JOB) == 'JOB-0002'

    def test_tenants_are_independent(self, tenant, other_tenant):
        """Test that tenants never share a counter."""
        SequenceAllocator(tenant).allocate(TenantSequence.INVOICE)
        SequenceAllocator(tenant).allocate(TenantSequence.INVOICE)

        assert SequenceAllocator(other_tenant).allocate(TenantSequence.INVOICE) == 'INV-0001'

    def test_missing_counter_is_created_lazily(self, tenant):
        """Test that allocation upserts a counter that was never seeded."""
        TenantSequence.objects.filter(tenant=tenant).delete()

        assert SequenceAllocator(tenant).allocate(TenantSequence.ESTIMATE) == 'EST-0001'
        assert TenantSequence.objects.filter(tenant=tenant).count() == 1

    def test_continues_from_high_water_mark(self, tenant):
        """Test that numbering resumes after the stored value."""
        TenantSequence.objects.filter(tenant=tenant, sequence_type='job').update(current_value=41)

        assert SequenceAllocator(tenant).allocate(TenantSequence.JOB) == 'JOB-0042'

    def test_rolled_back_allocation_is_not_committed(self, tenant):
        """Test that an allocation is part of the caller's transaction."""
        allocator = SequenceAllocator(tenant)
        allocator.allocate(TenantSequence.JOB)

        with pytest.raises(RuntimeError):
            with transaction.atomic():
                allocator.allocate(TenantSequence.JOB)
                raise RuntimeError('abort')

        assert allocator.allocate(TenantSequence.JOB) == 'JOB-0002'

    def test_locked_increment_fallback(self, tenant):
        """Test the select_for_update path used by backends without upsert."""
        allocator = SequenceAllocator(tenant)
        with transaction.atomic():
            first = allocator._locked_increment(TenantSequence.INVOICE)
            second = allocator._locked_increment(TenantSequence.INVOICE)

        assert (first, second) == (1, 2)
        assert allocator.allocate(TenantSequence.INVOICE) == 'INV-0003'

    def test_unknown_sequence_type(self, tenant):
        """Test that an unknown document type is rejected."""
        with pytest.raises(ValueError):
            SequenceAllocator(tenant).allocate('purchase_order')

    def test_initialize_is_idempotent(self, tenant):
        """Test that seeding twice keeps existing values."""
        TenantSequence.objects.filter(tenant=tenant, sequence_type='job').update(current_value=7)

        initialize_sequences(tenant)

        assert TenantSequence.objects.filter(tenant=tenant).count() == 3
        assert TenantSequence.objects.get(tenant=tenant, sequence_type='job').current_value == 7


def test_format_document_number():
    """Test the fixed-width document number format."""
    assert format_document_number('JOB', 1) == 'JOB-0001'
    assert format_document_number('INV', 519) == 'INV-0519'
    assert format_document_number('EST', 12345) == 'EST-12345'


@pytest.mark.django_db(transaction=True)
@pytest.mark.postgresql
@pytest.mark.skipif(connection.vendor != 'postgresql', reason='needs concurrent connections, set TEST_DB_ENGINE=postgresql')
def test_concurrent_allocation_never_duplicates():
    """Test that parallel allocators on separate connections get distinct values."""
    tenant = TenantFactory()
    workers, per_worker = 8, 10

    def allocate_batch(_):
        try:
            allocator = SequenceAllocator(tenant)
            values = []
            for _ in range(per_worker):
                with transaction.atomic():
                    values.append(allocator.next_value(TenantSequence.JOB))
            return values
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = [value for batch in pool.map(allocate_batch, range(workers)) for value in batch]

    assert sorted(results) == list(range(1, workers * per_worker + 1))
