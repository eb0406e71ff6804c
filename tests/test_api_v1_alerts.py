import unittest
from datetime import timedelta

from api_support import ApiTestCase

from app.models.onboarding import OnboardingCard, OnboardingTask
from app.models.providers import Provider


class ApiV1AlertsTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        db = self.session_factory()
        try:
            provider = Provider(name='Limpezas Sol')
            db.add(provider)
            db.flush()
            card = OnboardingCard(provider_id=provider.id)
            db.add(card)
            db.flush()
            now = self.clock()
            db.add(OnboardingTask(card_id=card.id, name='contrato', due_at=now - timedelta(days=1), last_activity_at=now - timedelta(days=10)))
            db.commit()
            self.card_id = card.id
        finally:
            db.close()

    def test_generate_then_list(self):
        r = self.client.post('/api/v1/alerts/generate', headers=self.headers('manager'))
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json(), {'deadline': {'created': 1, 'resolved': 0}, 'stalled': {'created': 1, 'resolved': 0}})

        again = self.client.post('/api/v1/alerts/generate', headers=self.headers('manager'))
        self.assertEqual(again.json()['deadline'], {'created': 0, 'resolved': 0})

        alerts = self.client.get('/api/v1/alerts', headers=self.headers('viewer')).json()
        self.assertEqual(sorted(a['kind'] for a in alerts), ['deadline', 'stalled'])
        stalled = self.client.get('/api/v1/alerts', params={'kind': 'stalled'}, headers=self.headers('viewer')).json()
        self.assertEqual([a['trigger_condition'] for a in stalled], ['no_activity_7d'])

    def test_invalid_kind_filter(self):
        r = self.client.get('/api/v1/alerts', params={'kind': 'other'}, headers=self.headers())
        self.assertError(r, 422, 'INVALID_PAYLOAD')

    def test_viewer_cannot_generate(self):
        self.assertError(self.client.post('/api/v1/alerts/generate', headers=self.headers('viewer')), 403, 'FORBIDDEN')

    def test_card_risk(self):
        r = self.client.get(f'/api/v1/alerts/cards/{self.card_id}/risk', headers=self.headers('viewer'))
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(
            r.json(),
            {'card_id': self.card_id, 'has_overdue': True, 'has_approaching_deadline': False, 'has_stalled': True},
        )
        self.assertError(self.client.get('/api/v1/alerts/cards/999/risk', headers=self.headers()), 404, 'NOT_FOUND')


if __name__ == '__main__':
    unittest.main()
