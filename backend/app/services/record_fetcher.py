from __future__ import annotations

import logging
from datetime import date
from typing import Iterator, Protocol

import httpx

from app.core.config import settings
from app.core.errors import FetchError
from app.services.entity_mapper import EntityKind, RawRecord, format_external_date, raw_record_from_row

logger = logging.getLogger(__name__)


class RecordFetcher(Protocol):
    def fetch(self, kind: EntityKind, date_from: date | None, date_to: date | None) -> Iterator[list[RawRecord]]:
        """Yield batches of raw records for one kind and (optional) date window."""


class HttpRecordFetcher:
    """Pages through GET {base}/export/{kind} which answers {records, next_page}."""

    def __init__(
        self,
        base_url: str,
        token: str = '',
        timeout_seconds: float = 60.0,
        page_size: int = 500,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = str(base_url or '').rstrip('/')
        self.token = token
        self.timeout_seconds = float(max(5.0, timeout_seconds))
        self.page_size = max(1, int(page_size))
        self.transport = transport

    @classmethod
    def from_settings(cls) -> 'HttpRecordFetcher':
        return cls(
            base_url=settings.backoffice_base_url,
            token=settings.backoffice_api_token,
            timeout_seconds=settings.backoffice_timeout_seconds,
            page_size=settings.backoffice_page_size,
        )

    def _client(self) -> httpx.Client:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return httpx.Client(timeout=self.timeout_seconds, headers=headers, transport=self.transport)

    def fetch(self, kind: EntityKind, date_from: date | None, date_to: date | None) -> Iterator[list[RawRecord]]:
        if not self.base_url:
            raise FetchError('BACKOFFICE_BASE_URL no configurado')
        kind = EntityKind(kind)
        url = f'{self.base_url}/export/{kind.value}'
        params: dict[str, str | int] = {'pageSize': self.page_size}
        if date_from is not None:
            params['dateFrom'] = format_external_date(date_from)
        if date_to is not None:
            params['dateTo'] = format_external_date(date_to)

        page: int | None = 1
        with self._client() as client:
            while page is not None:
                params['page'] = page
                try:
                    res = client.get(url, params=params)
                    res.raise_for_status()
                    body = res.json()
                except httpx.HTTPError as exc:
                    raise FetchError(f'error obteniendo {kind.value} pagina {page}: {exc}') from exc
                except ValueError as exc:
                    raise FetchError(f'respuesta no JSON para {kind.value} pagina {page}') from exc
                if not isinstance(body, dict) or not isinstance(body.get('records'), list):
                    raise FetchError(f'respuesta inesperada para {kind.value} pagina {page}')

                next_page = body.get('next_page')
                try:
                    following = int(next_page) if next_page not in (None, '', 0) else None
                except (TypeError, ValueError, OverflowError) as exc:
                    raise FetchError(f'next_page invalido para {kind.value} pagina {page}: {next_page!r}') from exc

                rows = [row for row in body['records'] if isinstance(row, dict)]
                logger.debug('[fetch:%s] page=%s rows=%s', kind.value, page, len(rows))
                if rows:
                    yield [raw_record_from_row(kind, row) for row in rows]
                page = following


class StaticRecordFetcher:
    """Serves pre-built batches, each kind once. Backs the worker's --from-file import."""

    def __init__(self, batches: dict[EntityKind, list[list[RawRecord]]] | None = None) -> None:
        self.batches = {EntityKind(k): v for k, v in (batches or {}).items()}
        self.calls: list[tuple[EntityKind, date | None, date | None]] = []

    def fetch(self, kind: EntityKind, date_from: date | None, date_to: date | None) -> Iterator[list[RawRecord]]:
        kind = EntityKind(kind)
        self.calls.append((kind, date_from, date_to))
        for batch in self.batches.pop(kind, []):
            yield list(batch)
