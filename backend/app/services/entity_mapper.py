"""
Normalization of raw backoffice export rows into canonical entities.

Pure functions only: no I/O, no clock, no randomness. Re-mapping the same raw
record always yields an equal Entity, which the reconciliation relies on.
"""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable

from app.core.errors import InvalidDate, InvalidEnum, InvalidNumber, MappingError, MissingField


class EntityKind(str, Enum):
    SERVICE_REQUEST = 'service_request'
    BILLING_PROCESS = 'billing_process'
    CLIENT = 'client'
    RECURRENCE = 'recurrence'
    TASK = 'task'


# Kinds fetched per dateFrom/dateTo window; the rest are full-table exports.
DATE_BOUNDED_KINDS = frozenset({EntityKind.SERVICE_REQUEST})

EXTERNAL_DATE_FORMAT = '%d-%m-%Y'
_EXCEL_EPOCH = datetime(1899, 12, 30)

_DATE_FORMATS = ('%d-%m-%Y', '%d/%m/%Y', '%Y-%m-%d', '%Y/%m/%d')
_DATETIME_FORMATS = (
    '%d-%m-%Y %H:%M:%S',
    '%d-%m-%Y %H:%M',
    '%d/%m/%Y %H:%M:%S',
    '%d/%m/%Y %H:%M',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f',
)

TASK_STATUS_VALUES = {
    'pending': 'pending',
    'pendente': 'pending',
    'por_fazer': 'pending',
    'aberta': 'pending',
    'open': 'pending',
    'em_curso': 'pending',
    'in_progress': 'pending',
    'nova': 'pending',
    'novo': 'pending',
    'todo': 'pending',
    'done': 'done',
    'concluida': 'done',
    'concluido': 'done',
    'completed': 'done',
    'finished': 'done',
    'fechada': 'done',
    'closed': 'done',
    'resolvida': 'done',
}

_TRUE_VALUES = {'true', '1', 'yes', 'y', 'sim', 's', 'x'}
_FALSE_VALUES = {'false', '0', 'no', 'n', 'nao'}


@dataclass(frozen=True)
class RawRecord:
    entity_kind: EntityKind
    source_id: Any
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Entity:
    kind: EntityKind
    source_id: str
    payload: dict

    def canonical_payload(self) -> dict:
        return {k: _to_json_value(v) for k, v in sorted(self.payload.items())}


@dataclass(frozen=True)
class FieldRule:
    name: str
    type: str = 'str'
    required: bool = False
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class KindRule:
    kind: EntityKind
    source_key: str
    fields: tuple[FieldRule, ...]


@dataclass
class MappingOutcome:
    entities: list[Entity] = field(default_factory=list)
    failures: list[tuple[str | None, MappingError]] = field(default_factory=list)


KIND_RULES: dict[EntityKind, KindRule] = {
    EntityKind.SERVICE_REQUEST: KindRule(
        kind=EntityKind.SERVICE_REQUEST,
        source_key='REQUEST_CODE',
        fields=(
            FieldRule('status', required=True),
            FieldRule('due_date', 'date', aliases=('deadline',)),
            FieldRule('scheduled_to', 'datetime'),
            FieldRule('service'),
            FieldRule('category'),
            FieldRule('client_town'),
            FieldRule('client_district'),
            FieldRule('assigned_provider_id', 'id'),
            FieldRule('assigned_provider_name'),
            FieldRule('cost_estimation', 'money'),
            FieldRule('final_cost_estimation', 'money'),
            FieldRule('paid_amount', 'money'),
            FieldRule('payment_status'),
            FieldRule('created_at', 'datetime'),
            FieldRule('last_update', 'datetime'),
        ),
    ),
    EntityKind.BILLING_PROCESS: KindRule(
        kind=EntityKind.BILLING_PROCESS,
        source_key='REQUEST_CODE',
        fields=(
            FieldRule('process_status', required=True),
            FieldRule('assigned_provider_name'),
            FieldRule('service'),
            FieldRule('scheduled_to', 'datetime'),
            FieldRule('document_date', 'date'),
            FieldRule('payment_date', 'date'),
            FieldRule('invoices_number', 'int'),
            FieldRule('credit_note_number', 'int'),
            FieldRule('complaint', 'bool'),
            FieldRule('total_service_cost', 'money', aliases=('TOTAL_SERVICE_COST (€)',)),
            FieldRule('total_invoice_value', 'money', aliases=('TOTAL_INVOICE_VALUE (€)',)),
            FieldRule('document_number'),
        ),
    ),
    EntityKind.CLIENT: KindRule(
        kind=EntityKind.CLIENT,
        source_key='USER_ID',
        fields=(
            FieldRule('name'),
            FieldRule('surname'),
            FieldRule('email'),
            FieldRule('phone'),
            FieldRule('vat'),
            FieldRule('client_status'),
            FieldRule('first_request', 'datetime'),
            FieldRule('last_request', 'datetime'),
            FieldRule('total_requests', 'int'),
            FieldRule('customer_balance', 'money'),
            FieldRule('marketing_consent', 'bool'),
            FieldRule('registration', 'datetime'),
        ),
    ),
    EntityKind.RECURRENCE: KindRule(
        kind=EntityKind.RECURRENCE,
        source_key='RECURRENCE_CODE',
        fields=(
            FieldRule('recurrence_status', required=True),
            FieldRule('recurrence_type'),
            FieldRule('submission_date', 'datetime'),
            FieldRule('service'),
            FieldRule('user_id', 'id'),
            FieldRule('client_name'),
            # the export misspells ADDRESS as ADRESS
            FieldRule('address_town', aliases=('ADRESS_TOWN',)),
            FieldRule('address_district', aliases=('ADRESS_DISTRICT',)),
            FieldRule('inactivation_date', 'datetime', aliases=('INATIVATION_DATE',)),
            FieldRule('inactivation_reason', aliases=('INATIVATION_REASON',)),
        ),
    ),
    EntityKind.TASK: KindRule(
        kind=EntityKind.TASK,
        source_key='TASK_ID',
        fields=(
            FieldRule('task_type', required=True),
            FieldRule('status', 'task_status', required=True),
            FieldRule('service_request', aliases=('SR',)),
            FieldRule('given_to'),
            FieldRule('creation_date', 'datetime'),
            FieldRule('deadline', 'datetime'),
            FieldRule('finishing_date', 'datetime'),
            FieldRule('finished_by'),
            FieldRule('assigned_provider'),
            FieldRule('scheduled_to', 'datetime'),
        ),
    ),
}


def parse_kind(value: Any) -> EntityKind:
    if isinstance(value, EntityKind):
        return value
    text = normalize_key(str(value or ''))
    for kind in EntityKind:
        if normalize_key(kind.value) == text:
            return kind
    raise InvalidEnum('entity_kind', value)


def normalize_key(text: str) -> str:
    """'dueDate', 'DUE_DATE' and 'due date' all map to 'duedate'."""
    return re.sub(r'[^a-z0-9]', '', str(text).lower())


def _strip_accents(text: str) -> str:
    return ''.join(c for c in unicodedata.normalize('NFD', text) if unicodedata.category(c) != 'Mn')


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _lookup(index: dict[str, Any], rule: FieldRule) -> Any:
    for candidate in (rule.name, *rule.aliases):
        key = normalize_key(candidate)
        if key in index and not _is_blank(index[key]):
            return index[key]
    return None


def canonical_source_id(value: Any, field_name: str = 'source_id') -> str:
    if _is_blank(value):
        raise MissingField(field_name)
    if isinstance(value, bool):
        raise InvalidNumber(field_name, value)
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidNumber(field_name, value)
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    text = str(value).strip()
    if re.fullmatch(r'\d+\.0+', text):
        return text.split('.', 1)[0]
    return text


def parse_external_date(value: str) -> date:
    """Parse a dd-mm-yyyy string as sent by the trigger surface."""
    try:
        return datetime.strptime(str(value).strip(), EXTERNAL_DATE_FORMAT).date()
    except ValueError:
        raise InvalidDate('date', value)


def format_external_date(value: date) -> str:
    return value.strftime(EXTERNAL_DATE_FORMAT)


def _excel_serial(field_name: str, value: Any) -> datetime:
    try:
        return _EXCEL_EPOCH + timedelta(days=float(value))
    except (OverflowError, ValueError):
        raise InvalidDate(field_name, value)


def _coerce_datetime(field_name: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _excel_serial(field_name, value)
    text = str(value).strip()
    if re.fullmatch(r'\d{1,5}(\.\d+)?', text):
        return _excel_serial(field_name, text)
    for fmt in _DATETIME_FORMATS + _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise InvalidDate(field_name, value)


def _finite(field_name: str, value: Any, number: float) -> float:
    if not math.isfinite(number):
        raise InvalidNumber(field_name, value)
    return number


def _coerce_money(field_name: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _finite(field_name, value, float(value))
    text = str(value).strip().replace('€', '').replace(' ', '')
    if ',' in text and '.' in text:
        text = text.replace('.', '').replace(',', '.')
    else:
        text = text.replace(',', '.')
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return _finite(field_name, value, number)


def _coerce_int(field_name: str, value: Any) -> int:
    try:
        number = float(str(value).strip().replace(',', '.'))
    except ValueError:
        return 0
    return int(_finite(field_name, value, number))


def _coerce_numeric_id(field_name: str, value: Any) -> str:
    """Reference to another backoffice row; unlike source keys these are always numeric."""
    text = canonical_source_id(value, field_name)
    if not text.isdigit():
        raise InvalidNumber(field_name, value)
    return text


def _coerce_bool(field_name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = _strip_accents(str(value).strip().lower())
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise InvalidEnum(field_name, value)


def _coerce_task_status(field_name: str, value: Any) -> str:
    text = _strip_accents(str(value).strip().lower()).replace(' ', '_').replace('-', '_')
    status = TASK_STATUS_VALUES.get(text)
    if status is None:
        raise InvalidEnum(field_name, value)
    return status


def _coerce(rule: FieldRule, value: Any) -> Any:
    if _is_blank(value):
        if rule.type == 'money':
            return 0.0
        if rule.type == 'int':
            return 0
        if rule.type == 'bool':
            return False
        return None
    if rule.type == 'str':
        return str(value).strip()
    if rule.type == 'date':
        return _coerce_datetime(rule.name, value).date()
    if rule.type == 'datetime':
        return _coerce_datetime(rule.name, value)
    if rule.type == 'money':
        return _coerce_money(rule.name, value)
    if rule.type == 'int':
        return _coerce_int(rule.name, value)
    if rule.type == 'bool':
        return _coerce_bool(rule.name, value)
    if rule.type == 'id':
        return _coerce_numeric_id(rule.name, value)
    if rule.type == 'task_status':
        return _coerce_task_status(rule.name, value)
    raise ValueError(f'unknown field type {rule.type}')


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec='seconds')
    if isinstance(value, date):
        return value.isoformat()
    return value


def map_record(raw: RawRecord, kind: EntityKind) -> Entity:
    try:
        raw_kind = EntityKind(raw.entity_kind)
    except ValueError:
        raise InvalidEnum('entity_kind', raw.entity_kind)
    if raw_kind != kind:
        raise InvalidEnum('entity_kind', raw.entity_kind)
    rule = KIND_RULES[kind]
    source_id = canonical_source_id(raw.source_id)
    index = {normalize_key(k): v for k, v in (raw.data or {}).items()}

    payload: dict[str, Any] = {}
    for field_rule in rule.fields:
        value = _lookup(index, field_rule)
        if field_rule.required and _is_blank(value):
            raise MissingField(field_rule.name)
        payload[field_rule.name] = _coerce(field_rule, value)
    return Entity(kind=kind, source_id=source_id, payload=payload)


def map_batch(raws: Iterable[RawRecord], kind: EntityKind) -> MappingOutcome:
    outcome = MappingOutcome()
    for raw in raws:
        try:
            outcome.entities.append(map_record(raw, kind))
        except MappingError as exc:
            source_id = None if _is_blank(raw.source_id) else str(raw.source_id)
            outcome.failures.append((source_id, exc))
    return outcome


def raw_record_from_row(kind: EntityKind, row: dict) -> RawRecord:
    """Wrap an export row, taking the source id from the kind's key column."""
    index = {normalize_key(k): v for k, v in row.items()}
    source_id = None
    for candidate in (KIND_RULES[kind].source_key, 'source_id'):
        value = index.get(normalize_key(candidate))
        if not _is_blank(value):
            source_id = value
            break
    return RawRecord(entity_kind=kind, source_id=source_id, data=dict(row))
