import json
import unittest
from datetime import datetime, timedelta

from db_support import FakeClock, make_session_factory

from app.core.errors import DuplicateGroupNotFound, MergeConflict, MergeError
from app.models.onboarding import Alert, OnboardingCard, OnboardingTask
from app.models.providers import AuditLog, Provider, ProviderHistory, ProviderNote
from app.services.duplicate_service import (
    DisjointSet,
    DuplicateService,
    group_id_for,
    match_key,
    normalize_fiscal_id,
    normalize_phone,
)

BASE = datetime(2025, 6, 1, 9, 0, 0)


class NormalizationTests(unittest.TestCase):
    def test_phone_variants_share_a_key(self):
        self.assertEqual(normalize_phone('+351 912 345 678'), '912345678')
        self.assertEqual(normalize_phone('00351912345678'), '912345678')
        self.assertEqual(normalize_phone('912-345-678'), '912345678')

    def test_fiscal_id_drops_country_prefix(self):
        self.assertEqual(normalize_fiscal_id('pt 123 456 789'), '123456789')

    def test_masked_values_never_match(self):
        self.assertEqual(match_key('email', '*****'), '')
        self.assertEqual(match_key('phone', None), '')
        self.assertEqual(match_key('email', ' Geral@Canal.PT '), 'geral@canal.pt')

    def test_disjoint_set_is_transitive(self):
        dsu = DisjointSet(range(1, 6))
        dsu.union(1, 2)
        dsu.union(3, 2)
        dsu.union(4, 5)
        self.assertEqual(sorted(dsu.groups()), [[1, 2, 3], [4, 5]])

    def test_group_id_ignores_member_order(self):
        self.assertEqual(group_id_for([3, 1, 2]), group_id_for([1, 2, 3]))
        self.assertNotEqual(group_id_for([1, 2]), group_id_for([1, 3]))


class DuplicateServiceTests(unittest.TestCase):
    def setUp(self):
        self.session_factory = make_session_factory()
        self.clock = FakeClock()
        self.service = DuplicateService(session_factory=self.session_factory, clock=self.clock)
        self.offset = 0

    def _provider(self, name, **fields):
        db = self.session_factory()
        try:
            self.offset += 1
            row = Provider(name=name, created_at=BASE + timedelta(days=self.offset), **fields)
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def _add(self, *rows):
        db = self.session_factory()
        try:
            db.add_all(rows)
            db.commit()
            return [r.id for r in rows]
        finally:
            db.close()

    def _get(self, provider_id):
        db = self.session_factory()
        try:
            row = db.get(Provider, provider_id)
            db.expunge(row)
            return row
        finally:
            db.close()

    def _group_of(self, provider_id):
        for group in self.service.scan()['groups']:
            if provider_id in group['provider_ids']:
                return group
        return None

    def test_scan_groups_transitively_and_skips_masked(self):
        a = self._provider('Canal A', email='geral@canal.pt')
        b = self._provider('Canal B', email=' GERAL@canal.pt', phone='912 345 678')
        c = self._provider('Canal C', phone='+351912345678')
        self._provider('Masked 1', email='****', phone='***')
        self._provider('Masked 2', email='****', phone='***')
        self._provider('Lonely', email='only@me.pt')

        result = self.service.scan()
        self.assertEqual(result['scanned_providers'], 6)
        self.assertEqual(len(result['groups']), 1)
        group = result['groups'][0]
        self.assertEqual(group['provider_ids'], [a, b, c])
        self.assertEqual(group['group_id'], group_id_for([a, b, c]))
        self.assertEqual(result['total_duplicates'], 2)
        self.assertIn({'field': 'phone', 'value': '912345678'}, group['match_keys'])
        self.assertIn({'field': 'email', 'value': 'geral@canal.pt'}, group['match_keys'])

    def test_merge_folds_group_into_kept_provider(self):
        keep = self._provider(
            'Canal', email='geral@canal.pt', services_json='["canalizacao"]',
            application_count=1, first_application_at=BASE + timedelta(days=10),
        )
        b = self._provider(
            'Canal Lda', email='geral@canal.pt', phone='912345678', website='canal.pt',
            services_json='["canalizacao", "eletricidade"]', districts_json='["Lisboa"]',
            application_count=2, first_application_at=BASE + timedelta(days=3),
        )
        c = self._provider('Canal Porto', phone='00351 912 345 678')
        note_id, alert_id = self._add(
            ProviderNote(provider_id=b, content='ligar amanha'),
            Alert(kind='deadline', subject_id=1, trigger_condition='due_date_passed', provider_id=c, open_key='deadline:1:due_date_passed'),
        )
        card_b, card_c = self._add(OnboardingCard(provider_id=b), OnboardingCard(provider_id=c))
        (task_c,) = self._add(OnboardingTask(card_id=card_c, name='documentos'))

        group = self._group_of(keep)
        result = self.service.merge(group['group_id'], keep, actor='admin')

        self.assertEqual(result['merged_ids'], [b, c])
        self.assertEqual(result['reassigned']['provider_notes'], 1)
        self.assertEqual(result['reassigned']['alerts'], 1)
        self.assertEqual(result['reassigned']['onboarding_cards'], 1)
        self.assertEqual(result['reassigned']['onboarding_tasks'], 1)
        provider = result['provider']
        self.assertEqual(provider['phone'], '912345678')
        self.assertEqual(provider['website'], 'canal.pt')
        self.assertEqual(provider['services'], ['canalizacao', 'eletricidade'])
        self.assertEqual(provider['districts'], ['Lisboa'])
        self.assertEqual(provider['application_count'], 3)
        self.assertEqual(provider['first_application_at'], (BASE + timedelta(days=3)).isoformat())

        for other in (b, c):
            row = self._get(other)
            self.assertEqual(row.status, 'archived')
            self.assertEqual(row.merged_into_id, keep)
            self.assertEqual(row.archived_at, self.clock())

        db = self.session_factory()
        try:
            self.assertEqual(db.get(ProviderNote, note_id).provider_id, keep)
            self.assertEqual(db.get(Alert, alert_id).provider_id, keep)
            self.assertEqual(db.get(OnboardingCard, card_b).provider_id, keep)
            self.assertIsNone(db.get(OnboardingCard, card_c))
            self.assertEqual(db.get(OnboardingTask, task_c).card_id, card_b)
            history = db.query(ProviderHistory).filter_by(provider_id=keep).one()
            self.assertEqual(json.loads(history.old_value_json)['kept']['id'], keep)
            self.assertEqual(db.query(AuditLog).filter_by(entity='providers', action='merge').count(), 1)
        finally:
            db.close()

        self.assertEqual(self.service.scan()['groups'], [])

    def test_conflicting_fiscal_ids_need_a_resolution(self):
        a = self._provider('A', email='x@y.pt', fiscal_id='PT123456789')
        b = self._provider('B', email='x@y.pt', fiscal_id='987654321')
        group_id = self._group_of(a)['group_id']

        with self.assertRaises(MergeConflict) as ctx:
            self.service.merge(group_id, a)
        self.assertEqual(ctx.exception.conflicts, {'fiscal_id': {str(a): 'PT123456789', str(b): '987654321'}})
        self.assertIsNone(self._get(b).merged_into_id)

        result = self.service.merge(group_id, a, resolutions={'fiscal_id': b})
        self.assertEqual(result['provider']['fiscal_id'], '987654321')

    def test_same_fiscal_id_in_different_format_is_not_a_conflict(self):
        a = self._provider('A', fiscal_id='PT123456789')
        self._provider('B', fiscal_id='123 456 789')
        result = self.service.merge(self._group_of(a)['group_id'], a)
        self.assertEqual(result['provider']['fiscal_id'], 'PT123456789')

    def test_invalid_merge_requests(self):
        a = self._provider('A', email='x@y.pt')
        self._provider('B', email='x@y.pt')
        outsider = self._provider('C', email='other@y.pt')
        group_id = self._group_of(a)['group_id']

        with self.assertRaises(MergeError):
            self.service.merge(group_id, outsider)
        with self.assertRaises(MergeError):
            self.service.merge(group_id, a, resolutions={'name': a})
        with self.assertRaises(MergeError):
            self.service.merge(group_id, a, resolutions={'fiscal_id': outsider})
        with self.assertRaises(DuplicateGroupNotFound):
            self.service.merge('0000000000000000', a)

    def test_group_id_goes_stale_when_membership_changes(self):
        a = self._provider('A', email='x@y.pt')
        self._provider('B', email='x@y.pt')
        group_id = self._group_of(a)['group_id']
        self._provider('C', email='X@Y.pt')
        with self.assertRaises(DuplicateGroupNotFound):
            self.service.merge(group_id, a)

    def test_merge_all_keeps_oldest_and_skips_conflicts(self):
        old = self._provider('Old', phone='911111111')
        young = self._provider('Young', phone='+351 911 111 111')
        c1 = self._provider('C1', email='c@c.pt', fiscal_id='111111111')
        self._provider('C2', email='c@c.pt', fiscal_id='222222222')

        result = self.service.merge_all(actor='admin')

        self.assertEqual(result['merged_groups'], [group_id_for([old, young])])
        self.assertEqual(result['archived_providers'], 1)
        self.assertEqual(result['conflicts'], [{'group_id': self._group_of(c1)['group_id'], 'fields': ['fiscal_id']}])
        self.assertEqual(self._get(young).merged_into_id, old)


if __name__ == '__main__':
    unittest.main()
