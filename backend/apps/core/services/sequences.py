# apps/core/services/sequences.py

import logging

from django.db import connection, transaction
from django.db.models import F
from django.utils import timezone

from ..models import TenantSequence
from ..utils import format_document_number

logger = logging.getLogger(__name__)


class SequenceAllocator:
    """
    Mints tenant-scoped document numbers (JOB-0001, EST-0001, INV-0001).

    The counter row is incremented and read back in one statement, inside the
    caller's transaction, so a number is only ever handed out together with a
    committed increment and two callers never see the same value.
    """

    UPSERT_VENDORS = ('postgresql', 'sqlite')

    def __init__(self, tenant):
        self.tenant = tenant

    def allocate(self, sequence_type: str) -> str:
        prefix = self.prefix_for(sequence_type)
        value = self.next_value(sequence_type)
        return format_document_number(prefix, value)

    @staticmethod
    def prefix_for(sequence_type: str) -> str:
        try:
            return TenantSequence.PREFIXES[sequence_type]
        except KeyError:
            raise ValueError(f"Unknown sequence type: {sequence_type}")

    def next_value(self, sequence_type: str) -> int:
        with transaction.atomic():
            if (connection.vendor in self.UPSERT_VENDORS
                    and connection.features.can_return_columns_from_insert):
                value = self._upsert_increment(sequence_type)
            else:
                value = self._locked_increment(sequence_type)
        logger.debug("Allocated %s #%d for tenant %s", sequence_type, value, self.tenant.pk)
        return value

    def _upsert_increment(self, sequence_type: str) -> int:
        qn = connection.ops.quote_name
        table = TenantSequence._meta.db_table
        tenant_column = TenantSequence._meta.get_field('tenant').column

        # PostgreSQL needs the existing row's column qualified by table name
        if connection.vendor == 'postgresql':
            increment = f"{qn(table)}.{qn('current_value')} + 1"
        else:
            increment = f"{qn('current_value')} + 1"

        sql = (
            f"INSERT INTO {qn(table)} "
            f"({qn(tenant_column)}, {qn('sequence_type')}, {qn('prefix')}, "
            f"{qn('current_value')}, {qn('updated_at')}) "
            f"VALUES (%s, %s, %s, 1, %s) "
            f"ON CONFLICT ({qn(tenant_column)}, {qn('sequence_type')}) "
            f"DO UPDATE SET {qn('current_value')} = {increment}, "
            f"{qn('updated_at')} = excluded.{qn('updated_at')} "
            f"RETURNING {qn('current_value')}"
        )
        now = connection.ops.adapt_datetimefield_value(timezone.now())
        params = [self.tenant.pk, sequence_type, self.prefix_for(sequence_type), now]

        with connection.cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return int(row[0])

    def _locked_increment(self, sequence_type: str) -> int:
        sequence, _ = TenantSequence.objects.select_for_update().get_or_create(
            tenant=self.tenant,
            sequence_type=sequence_type,
            defaults={'prefix': self.prefix_for(sequence_type), 'current_value': 0},
        )
        TenantSequence.objects.filter(pk=sequence.pk).update(
            current_value=F('current_value') + 1,
            updated_at=timezone.now(),
        )
        sequence.refresh_from_db(fields=['current_value'])
        return sequence.current_value


def initialize_sequences(tenant):
    """Seed the job, estimate and invoice counters of a tenant at zero"""
    TenantSequence.objects.bulk_create(
        [
            TenantSequence(
                tenant=tenant,
                sequence_type=sequence_type,
                prefix=prefix,
                current_value=0,
            )
            for sequence_type, prefix in TenantSequence.PREFIXES.items()
        ],
        ignore_conflicts=True,
    )
