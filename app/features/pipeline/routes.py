"""
Deal (pipeline) API routes.

Every deal is shared: any principal allowed to read the pipeline sees every
deal, and each response carries has_unseen_changes for the caller.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.access.dependencies import require_access
from app.features.access.types import Action, Principal
from app.features.pipeline.coordinator import board_stages
from app.features.pipeline.ledger import has_unseen_changes, unacknowledged
from app.features.pipeline.schemas import DealCreate, DealResponse, DealUpdate, StageMove, UnseenResponse
from app.features.pipeline.store import DealStore


router = APIRouter()

CanRead = Annotated[Principal, Depends(require_access(config.PIPELINE_FEATURE, Action.READ))]
CanWrite = Annotated[Principal, Depends(require_access(config.PIPELINE_FEATURE, Action.WRITE))]
CanDelete = Annotated[Principal, Depends(require_access(config.PIPELINE_FEATURE, Action.DELETE))]


async def get_deal_store(db: Annotated[AsyncSession, Depends(get_db)]) -> DealStore:
    return DealStore(db)


Store = Annotated[DealStore, Depends(get_deal_store)]


def _for_viewer(deal: DealResponse, principal: Principal) -> DealResponse:
    return deal.model_copy(update={"has_unseen_changes": has_unseen_changes(deal, principal.id)})


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(deal: DealCreate, principal: CanWrite, store: Store):
    """Create a new deal."""
    return _for_viewer(await store.create(deal, principal.id), principal)


@router.get("", response_model=List[DealResponse])
async def list_deals(principal: CanRead, store: Store):
    """List all deals, newest first."""
    return [_for_viewer(deal, principal) for deal in await store.list()]


@router.get("/stages", response_model=List[str])
async def list_stages(_principal: CanRead, store: Store):
    """Board columns: the canonical stages, then any ad hoc stage in use."""
    return board_stages(await store.list())


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(deal_id: str, principal: CanRead, store: Store):
    """Get a deal with its change log."""
    return _for_viewer(await store.get(deal_id), principal)


@router.put("/{deal_id}", response_model=DealResponse)
async def update_deal(deal_id: str, deal_update: DealUpdate, principal: CanWrite, store: Store):
    """Update a deal. Changes to tracked fields are appended to its change log."""
    return _for_viewer(await store.update(deal_id, deal_update, principal.id), principal)


@router.patch("/{deal_id}/stage", response_model=DealResponse)
async def move_deal(deal_id: str, move: StageMove, principal: CanWrite, store: Store):
    """Move a deal to another stage. Any stage may follow any other."""
    return _for_viewer(await store.update(deal_id, DealUpdate(stage=move.stage), principal.id), principal)


@router.patch("/{deal_id}/acknowledge", response_model=DealResponse)
async def acknowledge_changes(deal_id: str, principal: CanRead, store: Store):
    """Mark every change on the deal as seen by the caller."""
    return _for_viewer(await store.acknowledge(deal_id, principal.id), principal)


@router.get("/{deal_id}/unseen", response_model=UnseenResponse)
async def get_unseen(deal_id: str, principal: CanRead, store: Store):
    """Whether the caller has changes on this deal left to review."""
    deal = await store.get(deal_id)
    return UnseenResponse(
        deal_id=deal.id,
        has_unseen_changes=has_unseen_changes(deal, principal.id),
        unacknowledged=len(unacknowledged(deal, principal.id)),
    )


@router.delete("/{deal_id}")
async def delete_deal(deal_id: str, _principal: CanDelete, store: Store):
    """Delete a deal and its change log."""
    await store.delete(deal_id)
    return {"message": "Deal deleted successfully"}
