import json
import unittest
from datetime import date

import db_support  # noqa: F401

import httpx

from app.core.errors import FetchError
from app.services.entity_mapper import EntityKind
from app.services.record_fetcher import HttpRecordFetcher, StaticRecordFetcher


def _pages(pages, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        page = int(request.url.params['page'])
        return httpx.Response(200, json=pages[page])

    return httpx.MockTransport(handler)


class HttpRecordFetcherTests(unittest.TestCase):
    def test_pages_until_next_page_is_empty(self):
        seen = []
        transport = _pages(
            {
                1: {'records': [{'REQUEST_CODE': 'SR1', 'STATUS': 'novo'}, 'garbage'], 'next_page': 2},
                2: {'records': [{'REQUEST_CODE': 'SR2', 'STATUS': 'novo'}], 'next_page': None},
            },
            seen,
        )
        fetcher = HttpRecordFetcher('https://backoffice.test/api/', token='tkn', page_size=2, transport=transport)
        batches = list(fetcher.fetch(EntityKind.SERVICE_REQUEST, date(2026, 1, 1), date(2026, 1, 7)))

        self.assertEqual([[r.source_id for r in batch] for batch in batches], [['SR1'], ['SR2']])
        self.assertEqual(batches[0][0].data['STATUS'], 'novo')
        first = seen[0]
        self.assertEqual(first.url.path, '/api/export/service_request')
        self.assertEqual(first.url.params['dateFrom'], '01-01-2026')
        self.assertEqual(first.url.params['dateTo'], '07-01-2026')
        self.assertEqual(first.url.params['pageSize'], '2')
        self.assertEqual(first.headers['Authorization'], 'Bearer tkn')

    def test_full_table_kind_sends_no_dates(self):
        seen = []
        fetcher = HttpRecordFetcher('https://backoffice.test', transport=_pages({1: {'records': []}}, seen))
        self.assertEqual(list(fetcher.fetch(EntityKind.CLIENT, None, None)), [])
        self.assertNotIn('dateFrom', seen[0].url.params)

    def test_http_error_becomes_fetch_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text='down'))
        fetcher = HttpRecordFetcher('https://backoffice.test', transport=transport)
        with self.assertRaises(FetchError):
            list(fetcher.fetch(EntityKind.TASK, None, None))

    def test_non_json_and_unexpected_shape(self):
        for response in (httpx.Response(200, text='<html>'), httpx.Response(200, content=json.dumps([1, 2]))):
            transport = httpx.MockTransport(lambda request, response=response: response)
            fetcher = HttpRecordFetcher('https://backoffice.test', transport=transport)
            with self.assertRaises(FetchError):
                list(fetcher.fetch(EntityKind.CLIENT, None, None))

    def test_non_numeric_next_page_becomes_fetch_error(self):
        seen = []
        pages = {1: {'records': [{'USER_ID': 1}], 'next_page': 'abc'}}
        fetcher = HttpRecordFetcher('https://backoffice.test', transport=_pages(pages, seen))
        with self.assertRaises(FetchError):
            list(fetcher.fetch(EntityKind.CLIENT, None, None))
        self.assertEqual(len(seen), 1)

    def test_missing_base_url(self):
        with self.assertRaises(FetchError):
            list(HttpRecordFetcher('').fetch(EntityKind.CLIENT, None, None))


class StaticRecordFetcherTests(unittest.TestCase):
    def test_batches_are_served_once(self):
        fetcher = StaticRecordFetcher({'client': [[]]})
        self.assertEqual(list(fetcher.fetch(EntityKind.CLIENT, None, None)), [[]])
        self.assertEqual(list(fetcher.fetch(EntityKind.CLIENT, None, None)), [])
        self.assertEqual(len(fetcher.calls), 2)


if __name__ == '__main__':
    unittest.main()
