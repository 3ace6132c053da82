"""
Request and response models for the memory proxy API.

Request models accept both snake_case names and the sheet header names used
by existing clients ("Topics", "key facts", "Confirmation Status", ...).
Required-field checks happen in the repository so missing fields are reported
as 400 with the same message whichever route is used.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.schema import Draft, Record


class RecordCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topics: Optional[str] = Field(None, alias="Topics")
    tags: Optional[str] = Field(None, alias="Tags")
    key_facts: Optional[str] = Field(None, alias="key facts")
    confirmation_status: Optional[str] = Field(None, alias="Confirmation Status")

    @model_validator(mode="before")
    @classmethod
    def unwrap_data_envelope(cls, values: Any):
        # Accept {"data": {...}} and {"data": [{...}]} as sent by older clients
        if isinstance(values, dict) and "data" in values:
            data = values["data"]
            if isinstance(data, list):
                return data[0] if data else {}
            if isinstance(data, dict):
                return data
        return values


class SummaryCreateRequest(RecordCreateRequest):
    """Auto-generated summary row; tags fall back to the configured draft tags."""
    pass


class RecordStatusUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = Field(None, alias="ID")
    confirmation_status: Optional[str] = Field(None, alias="ConfirmationStatus")


class RecordDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = Field(None, alias="ID")


class DraftPreviewRequest(BaseModel):
    conversation: Optional[str] = ""
    topics: Optional[str] = None
    tags: Optional[str] = None


class DraftTokenRequest(BaseModel):
    token: str


class RecordResponse(BaseModel):
    id: int
    topics: str
    tags: str
    key_facts: str
    last_updated: Optional[date]
    confirmation_status: str

    @classmethod
    def from_record(cls, record: Record) -> "RecordResponse":
        return cls(
            id=record.id,
            topics=record.topics,
            tags=record.tags,
            key_facts=record.key_facts,
            last_updated=record.last_updated,
            confirmation_status=record.confirmation_status,
        )


class RecordListResponse(BaseModel):
    data: List[RecordResponse]
    count: int


class RecordMutationResponse(BaseModel):
    success: bool
    message: str
    record: RecordResponse


class RecordDeleteResponse(BaseModel):
    success: bool
    message: str


class CleanupResponse(BaseModel):
    success: bool
    message: str
    deleted_ids: List[int]
    report: Dict[str, Any]


class DraftResponse(BaseModel):
    token: str
    topics: str
    tags: str
    key_facts: str
    last_updated: date
    created_at: datetime
    confirmation_status: str = "pending"

    @classmethod
    def from_draft(cls, draft: Draft) -> "DraftResponse":
        return cls(
            token=draft.token,
            topics=draft.topics,
            tags=draft.tags,
            key_facts=draft.key_facts,
            last_updated=draft.last_updated,
            created_at=draft.created_at,
        )


class DraftPreviewResponse(BaseModel):
    summary_card: DraftResponse
    status: str = "pending"


class DraftSaveResponse(BaseModel):
    status: str = "saved"
    record: RecordResponse


class DraftDiscardResponse(BaseModel):
    status: str = "discarded"
    token: str


class PendingDraftsResponse(BaseModel):
    pending_cards: List[DraftResponse]
    count: int


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: datetime
    store_health: bool
    pending_drafts: int
    heartbeat_status: str
