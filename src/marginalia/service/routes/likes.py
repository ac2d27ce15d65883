from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from marginalia.library.models import target_from_params
from marginalia.service.routes.deps import get_store, optional_reader, required_reader
from marginalia.service.schemas import LikeRequest
from marginalia.service.store import EngagementStore

router = APIRouter(prefix="/api/likes", tags=["likes"])


@router.get("")
def like_status(
    book_id: Optional[str] = None,
    chapter_id: Optional[str] = None,
    line_number: Optional[int] = Query(default=None, ge=1),
    reader_id: Optional[str] = Depends(optional_reader),
    store: EngagementStore = Depends(get_store),
):
    """
    Aggregate count for a target plus whether the caller liked it.
    Unknown targets report zero likes.
    """
    try:
        target = target_from_params(book_id, chapter_id, line_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "item": store.like_status(target, reader_id).to_dict()}


@router.post("")
def set_like(
    req: LikeRequest,
    reader_id: str = Depends(required_reader),
    store: EngagementStore = Depends(get_store),
):
    try:
        target = target_from_params(req.book_id, req.chapter_id, req.line_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    state = store.set_like(target, reader_id, liked=req.action == "like")
    return {"ok": True, "item": state.to_dict()}
