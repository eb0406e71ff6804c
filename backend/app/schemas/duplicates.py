from pydantic import BaseModel, Field


class ProviderOut(BaseModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    fiscal_id: str | None = None
    status: str | None = None
    website: str | None = None
    entity_type: str | None = None
    services: list = Field(default_factory=list)
    districts: list = Field(default_factory=list)
    application_count: int = 0
    first_application_at: str | None = None
    merged_into_id: int | None = None
    archived_at: str | None = None
    created_at: str | None = None


class MatchKeyOut(BaseModel):
    field: str
    value: str


class DuplicateGroupOut(BaseModel):
    group_id: str
    provider_ids: list[int]
    match_keys: list[MatchKeyOut]
    providers: list[ProviderOut]


class DuplicateScanOut(BaseModel):
    groups: list[DuplicateGroupOut]
    total_duplicates: int
    scanned_providers: int


class MergeIn(BaseModel):
    group_id: str = Field(min_length=1, max_length=64)
    keep_id: int
    resolutions: dict[str, int] = Field(default_factory=dict)


class MergeOut(BaseModel):
    group_id: str
    keep_id: int
    merged_ids: list[int]
    reassigned: dict[str, int]
    provider: ProviderOut


class MergeConflictGroupOut(BaseModel):
    group_id: str
    fields: list[str]


class MergeAllOut(BaseModel):
    merged_groups: list[str]
    archived_providers: int
    conflicts: list[MergeConflictGroupOut]
