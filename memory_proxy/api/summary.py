"""
Summary card endpoints: auto-summary rows and the draft preview/save/discard flow.
"""

from fastapi import APIRouter, Depends

from ..core.config import DRAFT_DEFAULT_TAGS
from ..core.services import ProxyServices
from .deps import get_services
from .schemas import (
    DraftDiscardResponse,
    DraftPreviewRequest,
    DraftPreviewResponse,
    DraftResponse,
    DraftSaveResponse,
    DraftTokenRequest,
    PendingDraftsResponse,
    RecordMutationResponse,
    RecordResponse,
    SummaryCreateRequest,
)

router = APIRouter()


@router.post("", response_model=RecordMutationResponse)
def create_summary_record(request: SummaryCreateRequest, services: ProxyServices = Depends(get_services)):
    """Append an auto-generated summary row directly, bypassing the draft queue."""
    record = services.repository.create(
        topics=request.topics,
        tags=request.tags or DRAFT_DEFAULT_TAGS,
        key_facts=request.key_facts,
        confirmation_status=request.confirmation_status,
    )
    return RecordMutationResponse(
        success=True,
        message="Auto-summary row added successfully",
        record=RecordResponse.from_record(record),
    )


@router.post("/preview", response_model=DraftPreviewResponse)
def preview_draft(request: DraftPreviewRequest, services: ProxyServices = Depends(get_services)):
    """Queue a summary card for confirmation. Nothing is written to the store."""
    draft = services.drafts.preview(request.conversation or "", topics=request.topics, tags=request.tags)
    return DraftPreviewResponse(summary_card=DraftResponse.from_draft(draft))


@router.post("/save", response_model=DraftSaveResponse)
def save_draft(request: DraftTokenRequest, services: ProxyServices = Depends(get_services)):
    """Persist a queued card as a confirmed record."""
    record = services.drafts.save(request.token)
    return DraftSaveResponse(record=RecordResponse.from_record(record))


@router.post("/discard", response_model=DraftDiscardResponse)
def discard_draft(request: DraftTokenRequest, services: ProxyServices = Depends(get_services)):
    services.drafts.discard(request.token)
    return DraftDiscardResponse(token=request.token)


@router.get("/pending", response_model=PendingDraftsResponse)
def list_pending_drafts(services: ProxyServices = Depends(get_services)):
    drafts = services.drafts.list_pending()
    return PendingDraftsResponse(
        pending_cards=[DraftResponse.from_draft(d) for d in drafts],
        count=len(drafts),
    )
