"""Read-only queue for the stream overlay (no auth)."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fairqueue.core.dependencies import get_queue_engine
from fairqueue.services.queue_engine import QueueEngine

router = APIRouter(prefix="/api/overlay", tags=["overlay"])


class OverlayEntryResponse(BaseModel):
    id: str
    login: str
    display_name: str
    avatar_url: str


@router.get("/queue", response_model=list[OverlayEntryResponse])
async def get_overlay_queue(
    engine: QueueEngine = Depends(get_queue_engine),
) -> list[OverlayEntryResponse]:
    entries = await engine.snapshot()
    return [
        OverlayEntryResponse(
            id=e.id, login=e.login, display_name=e.display_name, avatar_url=e.avatar_url
        )
        for e in entries
    ]
