"""Queue admin API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from fairqueue.core.dependencies import get_queue_engine
from fairqueue.services.queue_engine import QueueEngine
from fairqueue.shared.models.queue import DeleteMode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queue", tags=["queue"])


# ============================================
# Response / Request Models
# ============================================


class QueueEntryResponse(BaseModel):
    id: str
    user_id: str
    login: str
    display_name: str
    avatar_url: str
    enqueued_at: datetime
    position: int
    recent_participation_count: int


class DeleteRequest(BaseModel):
    mode: DeleteMode


# ============================================
# Endpoints
# ============================================


@router.get("", response_model=list[QueueEntryResponse])
async def get_queue(engine: QueueEngine = Depends(get_queue_engine)) -> list[QueueEntryResponse]:
    """Ordered snapshot of everyone waiting."""
    entries = await engine.snapshot()
    return [QueueEntryResponse.model_validate(e, from_attributes=True) for e in entries]


@router.post("/{item_id}/move_up", status_code=204)
async def move_up(item_id: str, engine: QueueEngine = Depends(get_queue_engine)) -> Response:
    await engine.move_up(item_id)
    return Response(status_code=204)


@router.post("/{item_id}/move_down", status_code=204)
async def move_down(item_id: str, engine: QueueEngine = Depends(get_queue_engine)) -> Response:
    await engine.move_down(item_id)
    return Response(status_code=204)


@router.post("/{item_id}/delete", status_code=204)
async def delete_item(
    item_id: str,
    body: DeleteRequest,
    engine: QueueEngine = Depends(get_queue_engine),
) -> Response:
    """Remove an item; ``completed`` records a participation, ``canceled`` does not."""
    await engine.delete(item_id, body.mode)
    logger.info(f"Queue item {item_id} removed as {body.mode}")
    return Response(status_code=204)
