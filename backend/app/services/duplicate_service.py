"""
Duplicate provider detection and merging.

Providers sharing a normalized email, phone or fiscal id end up in the same
group (transitively) through a disjoint-set. A merge folds the group into one
kept provider inside a single transaction; the other members are archived,
never deleted.
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.errors import DuplicateGroupNotFound, MergeConflict, MergeError, PersistenceError
from app.core.logging_config import structured_log
from app.db.session import SessionLocal
from app.models.providers import Provider
from app.repositories import providers as providers_repo
from app.repositories.audit import add_audit

logger = logging.getLogger(__name__)

MATCH_FIELDS = ('email', 'phone', 'fiscal_id')
CONFLICT_FIELDS = ('fiscal_id', 'email')
FILL_FIELDS = ('name', 'email', 'phone', 'fiscal_id', 'website', 'entity_type')
LIST_FIELDS = ('services_json', 'districts_json')

_MASKED = re.compile(r'^\*+$')
_NON_DIGIT = re.compile(r'\D')
_NON_ALNUM = re.compile(r'[^A-Z0-9]')


def is_masked(value) -> bool:
    text = str(value or '').strip()
    return bool(text) and bool(_MASKED.match(text))


def normalize_email(value) -> str:
    return str(value or '').strip().lower()


def normalize_phone(value) -> str:
    digits = _NON_DIGIT.sub('', str(value or ''))
    if digits.startswith('00'):
        digits = digits[2:]
    if digits.startswith('351') and len(digits) > 9:
        digits = digits[3:]
    return digits


def normalize_fiscal_id(value) -> str:
    text = _NON_ALNUM.sub('', str(value or '').upper())
    if text.startswith('PT') and len(text) > 2:
        text = text[2:]
    return text


NORMALIZERS: dict[str, Callable[[object], str]] = {
    'email': normalize_email,
    'phone': normalize_phone,
    'fiscal_id': normalize_fiscal_id,
}


def match_key(field_name: str, value) -> str:
    """Normalized value, or '' when it must never link providers."""
    if value is None or is_masked(value):
        return ''
    return NORMALIZERS[field_name](value)


class DisjointSet:
    def __init__(self, items: Iterable[int] = ()) -> None:
        self._parent: dict[int, int] = {}
        self._size: dict[int, int] = {}
        for item in items:
            self.add(item)

    def add(self, item: int) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1

    def find(self, item: int) -> int:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: int, b: int) -> int:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return root_a
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return root_a

    def groups(self) -> list[list[int]]:
        by_root: dict[int, list[int]] = {}
        for item in self._parent:
            by_root.setdefault(self.find(item), []).append(item)
        return [sorted(members) for members in by_root.values()]


def group_id_for(provider_ids: Iterable[int]) -> str:
    key = ','.join(str(i) for i in sorted(provider_ids))
    return hashlib.sha1(key.encode('utf-8')).hexdigest()[:16]


@dataclass
class DuplicateGroup:
    group_id: str
    provider_ids: list[int]
    match_keys: list[dict] = field(default_factory=list)
    providers: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'group_id': self.group_id,
            'provider_ids': list(self.provider_ids),
            'match_keys': list(self.match_keys),
            'providers': list(self.providers),
        }


def build_groups(providers: list[Provider]) -> list[DuplicateGroup]:
    dsu = DisjointSet(p.id for p in providers)
    first_seen: dict[tuple[str, str], int] = {}
    for provider in providers:
        for field_name in MATCH_FIELDS:
            key = match_key(field_name, getattr(provider, field_name))
            if not key:
                continue
            anchor = first_seen.setdefault((field_name, key), provider.id)
            if anchor != provider.id:
                dsu.union(anchor, provider.id)

    by_id = {p.id: p for p in providers}
    groups: list[DuplicateGroup] = []
    for members in dsu.groups():
        if len(members) < 2:
            continue
        counts: dict[tuple[str, str], int] = {}
        for pid in members:
            for field_name in MATCH_FIELDS:
                key = match_key(field_name, getattr(by_id[pid], field_name))
                if key:
                    counts[(field_name, key)] = counts.get((field_name, key), 0) + 1
        shared = [{'field': f, 'value': v} for (f, v), n in sorted(counts.items()) if n > 1]
        groups.append(
            DuplicateGroup(
                group_id=group_id_for(members),
                provider_ids=members,
                match_keys=shared,
                providers=[providers_repo.provider_to_dict(by_id[pid]) for pid in members],
            )
        )
    groups.sort(key=lambda g: g.provider_ids[0])
    return groups


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and (not value.strip() or is_masked(value)))


class DuplicateService:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, clock: Clock = utcnow) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def scan(self) -> dict:
        db = self.session_factory()
        try:
            providers = providers_repo.active_providers(db)
            groups = build_groups(providers)
        finally:
            db.close()
        return {
            'groups': [g.to_dict() for g in groups],
            'total_duplicates': sum(len(g.provider_ids) - 1 for g in groups),
            'scanned_providers': len(providers),
        }

    @staticmethod
    def _find_group(db: Session, group_id: str) -> DuplicateGroup:
        for group in build_groups(providers_repo.active_providers(db)):
            if group.group_id == group_id:
                return group
        raise DuplicateGroupNotFound(f'grupo de duplicados no encontrado o desactualizado: {group_id}')

    @staticmethod
    def _resolve_conflicts(members: list[Provider], resolutions: dict[str, int]) -> dict[str, object]:
        """Return the winning raw value per resolved field; raise MergeConflict for unresolved ones."""
        by_id = {p.id: p for p in members}
        unknown = sorted(set(resolutions) - set(CONFLICT_FIELDS))
        if unknown:
            raise MergeError(f'campos no resolubles: {", ".join(unknown)}')

        chosen: dict[str, object] = {}
        conflicts: dict[str, dict] = {}
        for field_name in CONFLICT_FIELDS:
            candidates = {
                p.id: getattr(p, field_name)
                for p in members
                if match_key(field_name, getattr(p, field_name))
            }
            distinct = {match_key(field_name, v) for v in candidates.values()}
            if field_name in resolutions:
                member_id = resolutions[field_name]
                if member_id not in by_id:
                    raise MergeError(f'la resolucion de {field_name} apunta a un prestador fuera del grupo: {member_id}')
                if member_id not in candidates:
                    raise MergeError(f'el prestador {member_id} no tiene valor para {field_name}')
                chosen[field_name] = candidates[member_id]
            elif len(distinct) > 1:
                conflicts[field_name] = {str(pid): value for pid, value in sorted(candidates.items())}
        if conflicts:
            raise MergeConflict(conflicts)
        return chosen

    def merge(
        self,
        group_id: str,
        keep_id: int,
        resolutions: dict[str, int] | None = None,
        actor: str = 'system',
    ) -> dict:
        db = self.session_factory()
        try:
            return self._merge(db, self._find_group(db, group_id), keep_id, resolutions or {}, actor)
        finally:
            db.close()

    def _merge(
        self,
        db: Session,
        group: DuplicateGroup,
        keep_id: int,
        resolutions: dict[str, int],
        actor: str,
    ) -> dict:
        if keep_id not in group.provider_ids:
            raise MergeError(f'keep_id {keep_id} no pertenece al grupo {group.group_id}')

        rows = providers_repo.get_providers(db, group.provider_ids)
        keeper = rows[keep_id]
        others = sorted(
            (rows[pid] for pid in group.provider_ids if pid != keep_id),
            key=lambda p: (p.created_at, p.id),
        )
        members = [keeper, *others]
        chosen = self._resolve_conflicts(members, resolutions)

        now = self.clock()
        other_ids = [p.id for p in others]
        snapshot = {'kept': providers_repo.provider_to_dict(keeper), 'merged': [providers_repo.provider_to_dict(p) for p in others]}
        try:
            for field_name in FILL_FIELDS:
                if field_name in chosen:
                    setattr(keeper, field_name, chosen[field_name])
                    continue
                if not _is_empty(getattr(keeper, field_name)):
                    continue
                for other in others:
                    value = getattr(other, field_name)
                    if not _is_empty(value):
                        setattr(keeper, field_name, value)
                        break

            for column in LIST_FIELDS:
                merged: list = []
                for member in members:
                    for item in providers_repo.load_list(getattr(member, column)):
                        if item not in merged:
                            merged.append(item)
                setattr(keeper, column, providers_repo.dump_list(merged))

            keeper.application_count = sum(int(p.application_count or 0) for p in members)
            firsts = [p.first_application_at for p in members if p.first_application_at is not None]
            keeper.first_application_at = min(firsts) if firsts else None
            keeper.updated_at = now

            reassigned = providers_repo.reassign_references(db, other_ids, keep_id)
            cards_moved = 0
            tasks_moved = 0
            for other in others:
                for card in providers_repo.cards_for(db, other.id):
                    kept_cards = providers_repo.cards_for(db, keep_id)
                    if not kept_cards:
                        card.provider_id = keep_id
                        cards_moved += 1
                    else:
                        tasks_moved += providers_repo.move_tasks(db, card.id, kept_cards[0].id)
                        db.delete(card)
                    db.flush()

            for other in others:
                providers_repo.archive_provider(other, keep_id, now)
            providers_repo.add_history(
                db,
                keep_id,
                f'Prestador fusionado con registros duplicados (IDs: {", ".join(str(i) for i in other_ids)})',
                old_value=snapshot,
                new_value={'resolutions': resolutions, 'group_id': group.group_id},
                created_by=actor,
            )
            add_audit(
                db,
                'providers',
                'merge',
                actor,
                {'group_id': group.group_id, 'keep_id': keep_id, 'merged_ids': other_ids},
                commit=False,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception('merge of group %s failed', group.group_id)
            raise PersistenceError(str(exc)) from exc

        db.refresh(keeper)
        structured_log('info', 'providers_merged', actor=actor, group_id=group.group_id, keep_id=keep_id, merged_ids=other_ids)
        return {
            'group_id': group.group_id,
            'keep_id': keep_id,
            'merged_ids': other_ids,
            'reassigned': {**reassigned, 'onboarding_cards': cards_moved, 'onboarding_tasks': tasks_moved},
            'provider': providers_repo.provider_to_dict(keeper),
        }

    def merge_all(self, actor: str = 'system') -> dict:
        """Merge every group into its oldest member; groups with conflicts are left for manual review."""
        db = self.session_factory()
        merged: list[str] = []
        conflicted: list[dict] = []
        archived = 0
        try:
            for group in build_groups(providers_repo.active_providers(db)):
                rows = providers_repo.get_providers(db, group.provider_ids)
                oldest = min(rows.values(), key=lambda p: (p.created_at, p.id))
                try:
                    result = self._merge(db, group, oldest.id, {}, actor)
                except MergeConflict as exc:
                    conflicted.append({'group_id': group.group_id, 'fields': sorted(exc.conflicts)})
                    continue
                merged.append(group.group_id)
                archived += len(result['merged_ids'])
        finally:
            db.close()
        return {'merged_groups': merged, 'archived_providers': archived, 'conflicts': conflicted}
