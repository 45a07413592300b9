import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlmodel import Session, select

from ..auth import RequestContext, public_user, require_admin, resolve_context
from ..db import get_session
from ..models import User
from ..plans import PLANS
from ..schemas import AccountCreate, AccountUpdate
from ..utils import hash_password, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _member(session: Session, ctx: RequestContext, account_id: int) -> User:
    user = session.get(User, account_id)
    if not user or user.business != ctx.business:
        raise HTTPException(404, "Account not found")
    return user


@router.get("")
def list_accounts(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    users = session.exec(select(User).where(User.business == ctx.business).order_by(User.id)).all()
    return [public_user(u) for u in users]


@router.post("", status_code=status.HTTP_201_CREATED)
def add_account(
    body: AccountCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    email = normalize_email(body.email)
    if not email:
        raise HTTPException(400, "All fields are required")
    if session.exec(select(User).where(User.email == email)).first():
        raise HTTPException(status.HTTP_409_CONFLICT, "Account with this email already exists")

    # count-then-insert; two concurrent invites can both pass this check
    seat_limit = PLANS[ctx.plan_id].seat_limit
    if seat_limit is not None:
        seats = session.exec(select(func.count()).select_from(User).where(User.business == ctx.business)).one()
        if seats >= seat_limit:
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                f"Your {PLANS[ctx.plan_id].name} plan allows up to {seat_limit} accounts. Upgrade to add more.",
            )

    user = User(
        email=email,
        password_hash=hash_password(body.password) if body.password else None,
        role=body.role,
        business=ctx.business,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("%s added %s (%s) to %s", ctx.email, email, body.role, ctx.business)
    return {"message": "Account created successfully", "user": public_user(user)}


@router.put("/{account_id}")
def edit_account(
    account_id: int,
    body: AccountUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    user = _member(session, ctx, account_id)
    email = normalize_email(body.email)
    if not email:
        raise HTTPException(400, "email and role are required")
    clash = session.exec(select(User).where(User.email == email, User.id != user.id)).first()
    if clash:
        raise HTTPException(status.HTTP_409_CONFLICT, "Account with this email already exists")
    if user.id == ctx.user.id and body.role != user.role:
        raise HTTPException(400, "You cannot change your own role")
    user.email = email
    user.role = body.role
    session.add(user)
    session.commit()
    return {"message": "Account updated successfully"}


@router.delete("/{account_id}")
def delete_account(
    account_id: int,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    user = _member(session, ctx, account_id)
    if user.id == ctx.user.id:
        raise HTTPException(400, "You cannot delete your own account")
    session.delete(user)
    session.commit()
    logger.info("%s deleted account %s", ctx.email, user.email)
    return {"message": "Account deleted successfully"}
