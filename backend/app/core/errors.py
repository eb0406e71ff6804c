"""
Domain exceptions raised by the sync, alert and duplicate services.
The API layer maps them to the JSON error body in app.main.
"""
from __future__ import annotations

from typing import Any


class MappingError(ValueError):
    """A raw record could not be normalized. Recovered per record."""

    code = 'MAPPING_ERROR'

    def __init__(self, field: str, message: str, value: Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        return {'code': self.code, 'field': self.field, 'value': None if self.value is None else str(self.value)}


class MissingField(MappingError):
    code = 'MISSING_FIELD'

    def __init__(self, field: str) -> None:
        super().__init__(field, f'campo obligatorio ausente: {field}')


class InvalidDate(MappingError):
    code = 'INVALID_DATE'

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(field, f'fecha invalida en {field}: {value!r} (esperado dd-mm-yyyy)', value)


class InvalidEnum(MappingError):
    code = 'INVALID_ENUM'

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(field, f'valor no reconocido en {field}: {value!r}', value)


class InvalidNumber(MappingError):
    code = 'INVALID_NUMBER'

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(field, f'numero invalido en {field}: {value!r}', value)


class PersistenceError(RuntimeError):
    """A batch's unit of work could not be written; nothing from it was kept."""


class FetchError(RuntimeError):
    """The external record source failed to deliver a batch."""


class SyncCancelled(RuntimeError):
    def __init__(self, reason: str = 'cancelled') -> None:
        super().__init__(reason)
        self.reason = reason


class SyncAlreadyRunning(RuntimeError):
    pass


class SyncRunFinalized(RuntimeError):
    pass


class MergeConflict(RuntimeError):
    def __init__(self, conflicts: dict[str, dict[str, Any]]) -> None:
        fields = ', '.join(sorted(conflicts))
        super().__init__(f'conflicto de fusion en: {fields}')
        self.conflicts = conflicts


class MergeError(ValueError):
    """Invalid merge request (keep id outside the group, bad resolution)."""


class DuplicateGroupNotFound(LookupError):
    """The group id no longer matches a current scan (unknown or stale)."""


class AuthorizationError(PermissionError):
    def __init__(self, required: str) -> None:
        super().__init__(f'permiso insuficiente: {required}')
        self.required = required
