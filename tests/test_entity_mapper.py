import unittest
from datetime import date, datetime

import db_support  # noqa: F401

from app.core.errors import InvalidDate, InvalidEnum, InvalidNumber, MissingField
from app.services.entity_mapper import (
    EntityKind,
    RawRecord,
    canonical_source_id,
    format_external_date,
    map_batch,
    map_record,
    parse_external_date,
    parse_kind,
    raw_record_from_row,
)


class EntityMapperTests(unittest.TestCase):
    def test_service_request_fields_are_coerced(self):
        raw = RawRecord(
            EntityKind.SERVICE_REQUEST,
            '101',
            {'dueDate': '05-01-2026', 'STATUS': 'novo', 'Cost Estimation': '1.234,50', 'scheduled_to': '06-01-2026 09:30'},
        )
        entity = map_record(raw, EntityKind.SERVICE_REQUEST)
        self.assertEqual(entity.source_id, '101')
        self.assertEqual(entity.payload['due_date'], date(2026, 1, 5))
        self.assertEqual(entity.payload['status'], 'novo')
        self.assertEqual(entity.payload['cost_estimation'], 1234.5)
        self.assertEqual(entity.payload['scheduled_to'], datetime(2026, 1, 6, 9, 30))
        self.assertIsNone(entity.payload['service'])

    def test_mapping_is_deterministic(self):
        raw = RawRecord(EntityKind.SERVICE_REQUEST, 7, {'status': 'novo', 'due_date': '2026-02-01'})
        first = map_record(raw, EntityKind.SERVICE_REQUEST)
        second = map_record(raw, EntityKind.SERVICE_REQUEST)
        self.assertEqual(first, second)
        self.assertEqual(first.canonical_payload(), second.canonical_payload())
        self.assertEqual(first.canonical_payload()['due_date'], '2026-02-01')

    def test_missing_mandatory_field(self):
        raw = RawRecord(EntityKind.SERVICE_REQUEST, '1', {'due_date': '05-01-2026'})
        with self.assertRaises(MissingField) as ctx:
            map_record(raw, EntityKind.SERVICE_REQUEST)
        self.assertEqual(ctx.exception.field, 'status')

    def test_missing_source_id(self):
        raw = RawRecord(EntityKind.CLIENT, '  ', {'name': 'Ana'})
        with self.assertRaises(MissingField):
            map_record(raw, EntityKind.CLIENT)

    def test_invalid_date(self):
        raw = RawRecord(EntityKind.SERVICE_REQUEST, '1', {'status': 'novo', 'due_date': '31-02-2026x'})
        with self.assertRaises(InvalidDate) as ctx:
            map_record(raw, EntityKind.SERVICE_REQUEST)
        self.assertEqual(ctx.exception.field, 'due_date')

    def test_excel_serial_dates(self):
        raw = RawRecord(EntityKind.SERVICE_REQUEST, '1', {'status': 'novo', 'due_date': 46027})
        entity = map_record(raw, EntityKind.SERVICE_REQUEST)
        self.assertEqual(entity.payload['due_date'], date(2026, 1, 5))

    def test_task_status_enum(self):
        ok = map_record(RawRecord(EntityKind.TASK, 't1', {'task_type': 'call', 'status': 'Concluída'}), EntityKind.TASK)
        self.assertEqual(ok.payload['status'], 'done')
        with self.assertRaises(InvalidEnum):
            map_record(RawRecord(EntityKind.TASK, 't2', {'task_type': 'call', 'status': 'weird'}), EntityKind.TASK)

    def test_boolean_enum(self):
        raw = RawRecord(EntityKind.BILLING_PROCESS, 'R1', {'process_status': 'paid', 'complaint': 'Sim'})
        self.assertTrue(map_record(raw, EntityKind.BILLING_PROCESS).payload['complaint'])
        bad = RawRecord(EntityKind.BILLING_PROCESS, 'R2', {'process_status': 'paid', 'complaint': 'maybe'})
        with self.assertRaises(InvalidEnum):
            map_record(bad, EntityKind.BILLING_PROCESS)

    def test_numeric_ids(self):
        self.assertEqual(canonical_source_id(12.0), '12')
        self.assertEqual(canonical_source_id('12.0'), '12')
        self.assertEqual(canonical_source_id(' ABC-1 '), 'ABC-1')
        with self.assertRaises(InvalidNumber):
            canonical_source_id(12.5)

    def test_money_is_lenient(self):
        raw = RawRecord(EntityKind.SERVICE_REQUEST, '1', {'status': 'novo', 'paid_amount': 'n/a'})
        self.assertEqual(map_record(raw, EntityKind.SERVICE_REQUEST).payload['paid_amount'], 0.0)

    def test_non_finite_numbers_are_rejected(self):
        for value in ('NaN', 'inf', float('nan'), float('-inf')):
            raw = RawRecord(EntityKind.BILLING_PROCESS, 'R1', {'process_status': 'paid', 'total_invoice_value': value})
            with self.assertRaises(InvalidNumber):
                map_record(raw, EntityKind.BILLING_PROCESS)
        raw = RawRecord(EntityKind.CLIENT, '1', {'total_requests': '1e400'})
        with self.assertRaises(InvalidNumber) as ctx:
            map_record(raw, EntityKind.CLIENT)
        self.assertEqual(ctx.exception.field, 'total_requests')

    def test_out_of_range_excel_serial(self):
        for value in (1e10, float('inf'), float('nan')):
            raw = RawRecord(EntityKind.SERVICE_REQUEST, '1', {'status': 'novo', 'due_date': value})
            with self.assertRaises(InvalidDate):
                map_record(raw, EntityKind.SERVICE_REQUEST)

    def test_reference_ids_must_be_numeric(self):
        ok = RawRecord(EntityKind.SERVICE_REQUEST, 'SR-1', {'status': 'novo', 'assigned_provider_id': 42.0})
        self.assertEqual(map_record(ok, EntityKind.SERVICE_REQUEST).payload['assigned_provider_id'], '42')
        bad = RawRecord(EntityKind.SERVICE_REQUEST, 'SR-1', {'status': 'novo', 'assigned_provider_id': 'abc'})
        with self.assertRaises(InvalidNumber) as ctx:
            map_record(bad, EntityKind.SERVICE_REQUEST)
        self.assertEqual(ctx.exception.field, 'assigned_provider_id')

    def test_recurrence_aliases(self):
        raw = RawRecord(
            EntityKind.RECURRENCE,
            'REC-1',
            {'RECURRENCE_STATUS': 'active', 'ADRESS_TOWN': 'Lisboa', 'INATIVATION_DATE': '01-03-2026'},
        )
        entity = map_record(raw, EntityKind.RECURRENCE)
        self.assertEqual(entity.payload['address_town'], 'Lisboa')
        self.assertEqual(entity.payload['inactivation_date'], datetime(2026, 3, 1))

    def test_kind_mismatch_is_rejected(self):
        raw = RawRecord(EntityKind.CLIENT, '1', {'name': 'Ana'})
        with self.assertRaises(InvalidEnum):
            map_record(raw, EntityKind.TASK)

    def test_map_batch_collects_failures(self):
        raws = [
            RawRecord(EntityKind.SERVICE_REQUEST, '1', {'status': 'novo'}),
            RawRecord(EntityKind.SERVICE_REQUEST, '2', {}),
            RawRecord(EntityKind.SERVICE_REQUEST, None, {'status': 'novo'}),
        ]
        outcome = map_batch(raws, EntityKind.SERVICE_REQUEST)
        self.assertEqual([e.source_id for e in outcome.entities], ['1'])
        self.assertEqual([sid for sid, _ in outcome.failures], ['2', None])

    def test_raw_record_from_row_uses_key_column(self):
        raw = raw_record_from_row(EntityKind.TASK, {'TASK_ID': 55.0, 'TASK_TYPE': 'visit', 'STATUS': 'pending'})
        self.assertEqual(map_record(raw, EntityKind.TASK).source_id, '55')

    def test_parse_kind_and_external_dates(self):
        self.assertIs(parse_kind('Service-Request'), EntityKind.SERVICE_REQUEST)
        self.assertIs(parse_kind(EntityKind.CLIENT), EntityKind.CLIENT)
        with self.assertRaises(InvalidEnum):
            parse_kind('invoices')
        self.assertEqual(parse_external_date('05-01-2026'), date(2026, 1, 5))
        self.assertEqual(format_external_date(date(2026, 1, 5)), '05-01-2026')
        with self.assertRaises(InvalidDate):
            parse_external_date('2026-01-05')


if __name__ == '__main__':
    unittest.main()
