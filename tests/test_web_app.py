import unittest
from concurrent.futures import Future

from sourcecrawler.ingestion.errors import InvalidSettings, SourceNotFound
from sourcecrawler.orchestration.orchestrator import CrawlOrchestrator
from tests.fakes import InMemorySourceRepo, make_source
from web_app import create_app


class StubOrchestrator:
    shutdown_requested = False

    def __init__(self, known=(), broken=()):
        self.known = set(known)
        self.broken = set(broken)
        self.triggered = []

    def held_sources(self):
        return frozenset({3})

    def trigger_source(self, source_id):
        if source_id in self.broken:
            raise InvalidSettings(f"source {source_id} has invalid settings: bad json")
        if source_id not in self.known:
            raise SourceNotFound(source_id)
        self.triggered.append(source_id)
        return Future()


class TestTriggerEndpoint(unittest.TestCase):
    def setUp(self):
        self.orchestrator = StubOrchestrator(known={5}, broken={6})
        app = create_app(self.orchestrator)
        app.config['TESTING'] = True
        self.client = app.test_client()

    def test_dispatches_known_source(self):
        resp = self.client.get('/api/sources/crawl?source_id=5')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {'success': True, 'source_id': 5, 'status': 'dispatched'})
        self.assertEqual(self.orchestrator.triggered, [5])

    def test_post_is_accepted(self):
        resp = self.client.post('/api/sources/crawl?source_id=5')
        self.assertEqual(resp.status_code, 200)

    def test_missing_id(self):
        resp = self.client.get('/api/sources/crawl')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.get_json()['success'])

    def test_non_integer_id(self):
        resp = self.client.get('/api/sources/crawl?source_id=abc')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.orchestrator.triggered, [])

    def test_unknown_or_locked_source(self):
        resp = self.client.get('/api/sources/crawl?source_id=9')
        self.assertEqual(resp.status_code, 404)
        self.assertFalse(resp.get_json()['success'])

    def test_unreadable_settings(self):
        resp = self.client.get('/api/sources/crawl?source_id=6')
        self.assertEqual(resp.status_code, 422)
        self.assertFalse(resp.get_json()['success'])
        self.assertIn('invalid settings', resp.get_json()['error'])

    def test_health(self):
        resp = self.client.get('/api/health')
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body['status'], 'healthy')
        self.assertEqual(body['running_sources'], [3])


class NoopDispatcher:
    def parse(self, source, manual=False):
        return []


class TestTriggerAfterShutdown(unittest.TestCase):
    def setUp(self):
        self.repo = InMemorySourceRepo([make_source(5)])
        self.orchestrator = CrawlOrchestrator(self.repo, NoopDispatcher(), max_workers=1)
        app = create_app(self.orchestrator)
        app.config['TESTING'] = True
        self.client = app.test_client()

    def test_stopped_crawler_returns_503(self):
        self.orchestrator.shutdown(grace_seconds=0)
        resp = self.client.get('/api/sources/crawl?source_id=5')
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.get_json(), {'success': False, 'error': 'crawler is shutting down'})
        self.assertFalse(self.repo.sources[5].is_locked)
        self.assertEqual(self.orchestrator.held_sources(), frozenset())

    def test_health_reports_stopping(self):
        self.orchestrator.shutdown(grace_seconds=0)
        self.assertEqual(self.client.get('/api/health').get_json()['status'], 'stopping')


if __name__ == "__main__":
    unittest.main()
