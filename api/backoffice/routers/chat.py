from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select

from ..auth import RequestContext, require_feature
from ..db import get_session
from ..models import ChatMessage, User
from ..schemas import ChatSend
from ..utils import clip_text, normalize_email

router = APIRouter()

MESSAGE_HISTORY_LIMIT = 200


def department_of(user: Optional[User]) -> Optional[str]:
    if not user or not user.personal:
        return None
    return user.personal[0].get("department") or None


def can_chat(requester: User, target: Optional[User]) -> bool:
    if not target or requester.email == target.email or requester.business != target.business:
        return False
    if requester.role == "Admin" or target.role == "Admin":
        return True
    mine, theirs = department_of(requester), department_of(target)
    if not mine or not theirs or mine != theirs:
        return False
    if requester.role == "Manager":
        return target.role == "Guest"
    if requester.role == "Guest":
        return target.role == "Manager"
    return False


def conversation_key(a: str, b: str) -> str:
    return "|".join(sorted((a, b)))


def _peer(session: Session, ctx: RequestContext, email: str) -> User:
    target = session.exec(select(User).where(User.email == normalize_email(email))).first()
    if not can_chat(ctx.user, target):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "You cannot chat with this user")
    return target


@router.get("/users")
def list_chat_users(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("chat")),
):
    colleagues = session.exec(
        select(User).where(User.business == ctx.business, User.email != ctx.email).order_by(User.id)
    ).all()
    return [
        {
            "email": user.email,
            "profilename": user.profilename or user.email,
            "role": user.role,
            "department": department_of(user),
        }
        for user in colleagues
        if can_chat(ctx.user, user)
    ]


@router.get("/messages")
def list_messages(
    with_email: str = Query(alias="with"),
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("chat")),
):
    peer = _peer(session, ctx, with_email)
    rows = session.exec(
        select(ChatMessage)
        .where(
            ChatMessage.business == ctx.business,
            ChatMessage.conversation == conversation_key(ctx.email, peer.email),
        )
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(MESSAGE_HISTORY_LIMIT)
    ).all()
    return list(reversed(rows))


@router.post("/messages", status_code=status.HTTP_201_CREATED)
def send_message(
    body: ChatSend,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("chat")),
):
    text = clip_text(body.message, 4000)
    if not text:
        raise HTTPException(400, "Message is empty")
    peer = _peer(session, ctx, body.to)
    message = ChatMessage(
        business=ctx.business,
        conversation=conversation_key(ctx.email, peer.email),
        sender_email=ctx.email,
        recipient_email=peer.email,
        body=text,
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    return message
