"""TestClient wired to an in-memory database through dependency overrides."""
import unittest

from db_support import FakeClock, make_session_factory

from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.deps import get_alert_service, get_duplicate_service, get_sync_service
from app.core.rate_limit import rate_limiter
from app.core.lookup_cache import LookupCache
from app.db.session import get_db
from app.main import app
from app.services.alert_service import AlertService
from app.services.duplicate_service import DuplicateService
from app.services.record_fetcher import StaticRecordFetcher
from app.services.sync_service import SyncService

USERS = {
    'admin': (settings.demo_admin_user, settings.demo_admin_password),
    'manager': (settings.demo_manager_user, settings.demo_manager_password),
    'viewer': (settings.demo_viewer_user, settings.demo_viewer_password),
}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        rate_limiter.reset()
        self.session_factory = make_session_factory()
        self.clock = FakeClock()
        self.fetcher = StaticRecordFetcher({})
        self.sync_service = SyncService(session_factory=self.session_factory, fetcher=self.fetcher, clock=self.clock)
        self.alert_service = AlertService(session_factory=self.session_factory, clock=self.clock, cache=LookupCache())
        self.duplicate_service = DuplicateService(session_factory=self.session_factory, clock=self.clock)

        def _get_db():
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_sync_service] = lambda: self.sync_service
        app.dependency_overrides[get_alert_service] = lambda: self.alert_service
        app.dependency_overrides[get_duplicate_service] = lambda: self.duplicate_service
        self.client = TestClient(app)
        self._tokens = {}

    def tearDown(self):
        app.dependency_overrides.clear()

    def headers(self, role='admin'):
        if role not in self._tokens:
            username, password = USERS[role]
            login = self.client.post('/api/v1/auth/login', json={'username': username, 'password': password})
            self.assertEqual(login.status_code, 200, login.text)
            self._tokens[role] = login.json()['access_token']
        return {'Authorization': f'Bearer {self._tokens[role]}'}

    def assertError(self, response, status_code, error_code):
        self.assertEqual(response.status_code, status_code, response.text)
        body = response.json()
        self.assertEqual(body['error_code'], error_code)
        self.assertIn('trace_id', body)
        return body
