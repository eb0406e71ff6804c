"""
Run-once job entry point.

    python -m app.worker sync service_request --date-from 01-01-2024 --date-to 31-01-2024
    python -m app.worker sync client
    python -m app.worker sync task --from-file tasks.json
    python -m app.worker sync service_request --from-file service_request_data.xlsx --date-from 01-01-2024 --date-to 31-01-2024
    python -m app.worker alerts

Exit code is 0 on success, 1 when the job ended in error, 2 on bad arguments.
"""
import argparse
import json
import logging
import signal
import sys
from pathlib import Path

import pandas as pd

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.config import settings
from app.core.errors import FetchError, MappingError, PersistenceError, SyncAlreadyRunning, SyncCancelled
from app.core.logging_config import configure_logging
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.services.alert_service import AlertService
from app.services.entity_mapper import EntityKind, parse_external_date, parse_kind, raw_record_from_row
from app.services.record_fetcher import StaticRecordFetcher
from app.services.sync_service import CancelToken, SyncService, arm_timeout

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='app.worker')
    sub = parser.add_subparsers(dest='command', required=True)

    sync_cmd = sub.add_parser('sync', help='sincroniza un tipo de entidad')
    sync_cmd.add_argument('kind', choices=[k.value for k in EntityKind])
    sync_cmd.add_argument('--date-from', dest='date_from', default=None, help='dd-mm-yyyy')
    sync_cmd.add_argument('--date-to', dest='date_to', default=None, help='dd-mm-yyyy')
    sync_cmd.add_argument('--from-file', dest='from_file', default=None, help='export .xlsx, .csv o JSON con una lista de filas')
    sync_cmd.add_argument('--actor', default='worker')
    sync_cmd.add_argument('--timeout', type=float, default=0.0, help='segundos antes de cancelar (0 = sin limite)')

    alerts_cmd = sub.add_parser('alerts', help='genera alertas de plazos y tareas estancadas')
    alerts_cmd.add_argument('--actor', default='worker')
    return parser


def _frame_rows(frame: pd.DataFrame) -> list[dict]:
    # empty cells become None so the mapper treats them as missing
    frame = frame.astype(object).where(pd.notna(frame), None)
    return frame.to_dict(orient='records')


def _load_rows(path: str) -> list[dict]:
    """Rows of a backoffice export: .xlsx/.xls (first sheet), .csv, or JSON (list or {records: [...]})."""
    suffix = Path(path).suffix.lower()
    if suffix in ('.xlsx', '.xls'):
        return _frame_rows(pd.read_excel(path, sheet_name=0, dtype=object))
    if suffix == '.csv':
        return _frame_rows(pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8'))

    data = json.loads(Path(path).read_text(encoding='utf-8'))
    if isinstance(data, dict):
        data = data.get('records') or []
    if not isinstance(data, list):
        raise ValueError(f'{path}: se esperaba una lista de filas')
    return [row for row in data if isinstance(row, dict)]


def run_sync_command(
    args: argparse.Namespace,
    session_factory=SessionLocal,
    token: CancelToken | None = None,
) -> int:
    try:
        kind = parse_kind(args.kind)
        date_from = parse_external_date(args.date_from) if args.date_from else None
        date_to = parse_external_date(args.date_to) if args.date_to else None
    except MappingError as exc:
        logger.error('argumentos invalidos: %s', exc)
        return 2

    fetcher = None
    if args.from_file:
        try:
            rows = _load_rows(args.from_file)
        except (OSError, ValueError) as exc:
            logger.error('no se pudo leer %s: %s', args.from_file, exc)
            return 2
        fetcher = StaticRecordFetcher({kind: [[raw_record_from_row(kind, row) for row in rows]]})
    service = SyncService(session_factory=session_factory, fetcher=fetcher)

    token = token if token is not None else CancelToken()
    timer = arm_timeout(token, float(args.timeout or 0))
    try:
        result = service.run_sync(kind, date_from, date_to, user_id=args.actor, cancel_event=token)
    except ValueError as exc:
        logger.error('argumentos invalidos: %s', exc)
        return 2
    except (SyncAlreadyRunning, SyncCancelled, FetchError, PersistenceError) as exc:
        logger.error('sync %s failed: %s', kind.value, exc)
        return 1
    finally:
        if timer is not None:
            timer.cancel()
    print(json.dumps(result, ensure_ascii=False), flush=True)
    return 0


def run_alerts_command(args: argparse.Namespace, session_factory=SessionLocal) -> int:
    service = AlertService(session_factory=session_factory)
    try:
        result = service.generate_all(actor=args.actor)
    except PersistenceError as exc:
        logger.error('alert generation failed: %s', exc)
        return 1
    print(json.dumps(result, ensure_ascii=False), flush=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging(settings.log_level)
    args = _build_parser().parse_args(argv)
    if settings.app_env != 'prod':
        Base.metadata.create_all(bind=engine)
    if args.command != 'sync':
        return run_alerts_command(args)

    token = CancelToken()

    def _shutdown_handler(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info('sync worker received signal %s, cancelling...', signum)
        token.cancel(f'signal {signum}')

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)
    return run_sync_command(args, token=token)


if __name__ == '__main__':
    sys.exit(main())
