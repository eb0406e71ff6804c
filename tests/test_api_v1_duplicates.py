import unittest

from api_support import ApiTestCase

from app.models.providers import Provider


class ApiV1DuplicatesTests(ApiTestCase):
    def _providers(self, *rows):
        db = self.session_factory()
        try:
            objs = [Provider(**row) for row in rows]
            db.add_all(objs)
            db.commit()
            return [o.id for o in objs]
        finally:
            db.close()

    def _scan(self):
        r = self.client.get('/api/v1/duplicates', headers=self.headers('viewer'))
        self.assertEqual(r.status_code, 200, r.text)
        return r.json()

    def test_scan_and_merge(self):
        a, b = self._providers(
            {'name': 'Jardins Lda', 'email': 'info@jardins.pt'},
            {'name': 'Jardins', 'email': 'INFO@jardins.pt', 'phone': '913000000'},
        )
        scan = self._scan()
        self.assertEqual(scan['scanned_providers'], 2)
        group = scan['groups'][0]
        self.assertEqual(group['provider_ids'], [a, b])

        r = self.client.post(
            '/api/v1/duplicates/merge',
            json={'group_id': group['group_id'], 'keep_id': a},
            headers=self.headers(),
        )
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(body['merged_ids'], [b])
        self.assertEqual(body['provider']['phone'], '913000000')
        self.assertEqual(self._scan()['groups'], [])

    def test_conflict_is_409_with_fields(self):
        a, b = self._providers(
            {'name': 'A', 'phone': '913000000', 'fiscal_id': '111111111'},
            {'name': 'B', 'phone': '913000000', 'fiscal_id': '222222222'},
        )
        group_id = self._scan()['groups'][0]['group_id']
        r = self.client.post('/api/v1/duplicates/merge', json={'group_id': group_id, 'keep_id': a}, headers=self.headers())
        body = self.assertError(r, 409, 'MERGE_CONFLICT')
        self.assertEqual(body['details']['conflicts'], {'fiscal_id': {str(a): '111111111', str(b): '222222222'}})

        r = self.client.post(
            '/api/v1/duplicates/merge',
            json={'group_id': group_id, 'keep_id': a, 'resolutions': {'fiscal_id': b}},
            headers=self.headers(),
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()['provider']['fiscal_id'], '222222222')

    def test_unknown_group_and_bad_keep_id(self):
        a, _b = self._providers({'name': 'A', 'email': 'a@a.pt'}, {'name': 'B', 'email': 'a@a.pt'})
        r = self.client.post('/api/v1/duplicates/merge', json={'group_id': 'deadbeefdeadbeef', 'keep_id': a}, headers=self.headers())
        self.assertError(r, 404, 'GROUP_NOT_FOUND')

        group_id = self._scan()['groups'][0]['group_id']
        r = self.client.post('/api/v1/duplicates/merge', json={'group_id': group_id, 'keep_id': 12345}, headers=self.headers())
        self.assertError(r, 400, 'INVALID_MERGE')

    def test_merge_requires_merge_permission(self):
        r = self.client.post('/api/v1/duplicates/merge', json={'group_id': 'x', 'keep_id': 1}, headers=self.headers('manager'))
        body = self.assertError(r, 403, 'FORBIDDEN')
        self.assertEqual(body['details']['required'], 'providers:merge')

    def test_merge_all(self):
        self._providers(
            {'name': 'A', 'phone': '913000000'},
            {'name': 'B', 'phone': '+351 913 000 000'},
            {'name': 'C', 'email': 'c@c.pt', 'fiscal_id': '1'},
            {'name': 'D', 'email': 'c@c.pt', 'fiscal_id': '2'},
        )
        r = self.client.post('/api/v1/duplicates/merge-all', headers=self.headers())
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(len(body['merged_groups']), 1)
        self.assertEqual(body['archived_providers'], 1)
        self.assertEqual(body['conflicts'][0]['fields'], ['fiscal_id'])


if __name__ == '__main__':
    unittest.main()
