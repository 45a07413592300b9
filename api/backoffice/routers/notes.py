from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from ..auth import RequestContext, require_feature
from ..db import get_session
from ..models import WorkspaceNote
from ..schemas import NoteUpdate
from ..utils import extract_mentions, utcnow

router = APIRouter()

MAX_NOTE_LENGTH = 20000


def _note(session: Session, business: str):
    return session.exec(select(WorkspaceNote).where(WorkspaceNote.business == business)).first()


@router.get("")
def get_note(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("notebook")),
):
    note = _note(session, ctx.business)
    if not note:
        return {"business": ctx.business, "content": "", "mentions": [], "updated_at": None, "updated_by": None}
    return note


@router.put("")
def save_note(
    body: NoteUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("notebook")),
):
    content = body.content[:MAX_NOTE_LENGTH]
    note = _note(session, ctx.business) or WorkspaceNote(business=ctx.business)
    note.content = content
    note.mentions = extract_mentions(content)
    note.updated_at = utcnow()
    note.updated_by = ctx.email
    session.add(note)
    session.commit()
    session.refresh(note)
    return note
