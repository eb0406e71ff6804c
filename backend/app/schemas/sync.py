from pydantic import BaseModel, ConfigDict, Field


class SyncRunIn(BaseModel):
    """Dates travel as dd-mm-yyyy strings; the endpoint parses them so bad values answer 400."""

    model_config = ConfigDict(populate_by_name=True)

    date_from: str | None = Field(default=None, alias='dateFrom', max_length=32)
    date_to: str | None = Field(default=None, alias='dateTo', max_length=32)


class SyncRunOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: int = Field(serialization_alias='runId')
    records_processed: int = Field(serialization_alias='recordsProcessed')
    records_inserted: int = Field(serialization_alias='recordsInserted')
    records_updated: int = Field(serialization_alias='recordsUpdated')
    records_skipped: int = Field(serialization_alias='recordsSkipped')
    records_failed: int = Field(serialization_alias='recordsFailed')


class SyncRunRecordOut(BaseModel):
    run_id: int
    entity_kind: str
    date_from: str | None = None
    date_to: str | None = None
    triggered_by: str
    status: str
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    error_message: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    duration_seconds: float | None = None
