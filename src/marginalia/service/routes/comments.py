import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from marginalia.library.models import target_from_params
from marginalia.service.routes.deps import (
    get_store,
    is_admin,
    optional_reader,
    required_reader,
)
from marginalia.service.schemas import CommentCreate, CommentUpdate
from marginalia.service.store import (
    CommentNotFound,
    EngagementStore,
    InvalidComment,
    NotCommentOwner,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["comments"])


@router.get("")
def list_comments(
    book_id: Optional[str] = None,
    chapter_id: Optional[str] = None,
    line_number: Optional[int] = Query(default=None, ge=1),
    kind: Optional[str] = Query(default=None, alias="type"),
    reader_id: Optional[str] = Depends(optional_reader),
    store: EngagementStore = Depends(get_store),
):
    """
    List comments newest first.
    type=line lists line comments of a chapter (all lines unless line_number),
    type=chapter lists chapter-level comments, type=book book-level ones.
    """
    if kind is None:
        kind = "line" if line_number is not None else ("chapter" if chapter_id else "book")
    if kind in ("line", "chapter") and not chapter_id:
        raise HTTPException(status_code=400, detail="chapter_id required")
    if kind == "book" and not book_id:
        raise HTTPException(status_code=400, detail="book_id required")
    try:
        items = store.list_comments(kind, reader_id, book_id, chapter_id, line_number)
    except InvalidComment as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "items": [c.to_dict() for c in items]}


@router.post("")
def create_comment(
    req: CommentCreate,
    reader_id: str = Depends(required_reader),
    store: EngagementStore = Depends(get_store),
):
    try:
        target = target_from_params(req.book_id, req.chapter_id, req.line_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        comment = store.add_comment(
            target, req.author_name, req.body, reader_id, parent_id=req.parent_id
        )
    except InvalidComment as e:
        raise HTTPException(status_code=422, detail=str(e))
    except CommentNotFound:
        raise HTTPException(status_code=404, detail="parent comment not found")
    log.info("Comment %s added on %s", comment.id, target)
    return {"ok": True, "item": comment.to_dict()}


@router.put("/{comment_id}")
def update_comment(
    comment_id: str,
    req: CommentUpdate,
    reader_id: Optional[str] = Depends(optional_reader),
    admin: bool = Depends(is_admin),
    x_admin_name: Optional[str] = Header(default=None),
    store: EngagementStore = Depends(get_store),
):
    """
    Authors edit the body; admins hide/unhide or attach an admin reply.
    """
    if req.body is None and req.hidden is None and req.admin_reply is None:
        raise HTTPException(status_code=400, detail="nothing to update")
    if (req.hidden is not None or req.admin_reply is not None) and not admin:
        raise HTTPException(status_code=403, detail="admin only")
    try:
        comment = store.get_comment(comment_id)
        if req.body is not None:
            comment = store.update_body(comment_id, req.body, reader_id)
        if req.hidden is not None:
            comment = store.set_hidden(comment_id, req.hidden)
        if req.admin_reply is not None:
            comment = store.set_admin_reply(
                comment_id, req.admin_reply, x_admin_name or "Admin"
            )
    except CommentNotFound:
        raise HTTPException(status_code=404, detail="comment not found")
    except NotCommentOwner as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidComment as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "item": comment.to_dict()}


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: str,
    reader_id: Optional[str] = Depends(optional_reader),
    admin: bool = Depends(is_admin),
    store: EngagementStore = Depends(get_store),
):
    try:
        deleted = store.delete_comment(comment_id, reader_id, is_admin=admin)
    except CommentNotFound:
        raise HTTPException(status_code=404, detail="comment not found")
    except NotCommentOwner as e:
        raise HTTPException(status_code=403, detail=str(e))
    log.info("Comment %s deleted (%d total)", comment_id, len(deleted))
    return {"ok": True, "deleted": deleted}
