from pydantic import BaseModel


class ScanCountsOut(BaseModel):
    created: int
    resolved: int


class AlertsGenerateOut(BaseModel):
    deadline: ScanCountsOut
    stalled: ScanCountsOut


class AlertOut(BaseModel):
    id: int
    kind: str
    subject_type: str
    subject_id: int
    trigger_condition: str
    provider_id: int | None = None
    user_id: str | None = None
    title: str
    message: str | None = None
    created_at: str | None = None
    resolved_at: str | None = None


class CardRiskOut(BaseModel):
    card_id: int
    has_overdue: bool
    has_approaching_deadline: bool
    has_stalled: bool
