import json

from sqlalchemy.orm import Session

from app.models.providers import AuditLog


def add_audit(db: Session, entity: str, action: str, actor: str, payload: dict, commit: bool = True) -> AuditLog:
    row = AuditLog(
        entity=entity,
        action=action,
        actor=actor or 'system',
        payload_json=json.dumps(payload, ensure_ascii=False, default=str),
    )
    db.add(row)
    if commit:
        db.commit()
    return row
