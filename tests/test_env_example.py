import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


class EnvExampleTests(unittest.TestCase):
    def test_env_example_exists_and_has_source_and_alert_keys(self):
        env = (ROOT / '.env.example').read_text(encoding='utf-8')
        for key in [
            'DATABASE_URL', 'JWT_SECRET_KEY', 'BACKOFFICE_BASE_URL', 'BACKOFFICE_API_TOKEN',
            'SYNC_CHUNK_DAYS', 'STALLED_TASK_DAYS', 'ALERT_HOURS_BEFORE_DEADLINE',
        ]:
            self.assertIn(key + '=', env)


if __name__ == '__main__':
    unittest.main()
