from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from itsdangerous import BadData
from sqlmodel import Session, select

from .config import SESSION_COOKIE
from .db import get_session
from .models import User
from .plans import UPGRADE_MESSAGES, effective_plan_id, entitlements_for
from .utils import read_token


@dataclass
class RequestContext:
    """Identity, tenant and plan entitlement, resolved once per request."""

    user: User
    plan_id: str
    entitlements: dict = field(default_factory=dict)

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def business(self) -> str:
        return self.user.business

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def is_admin(self) -> bool:
        return self.user.role == "Admin"

    def allows(self, module: str) -> bool:
        return bool(self.entitlements.get(module))


def session_email(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> str:
    candidate = request.cookies.get(SESSION_COOKIE)
    if not candidate and authorization and authorization.lower().startswith("bearer "):
        candidate = authorization.split(" ", 1)[1].strip()
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        data = read_token(candidate)
    except BadData:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
    email = data.get("email") if isinstance(data, dict) else None
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
    return email


def find_business_owner(session: Session, business: str) -> Optional[User]:
    return session.exec(
        select(User).where(User.business == business, User.role == "Admin").order_by(User.id)
    ).first()


def build_context(session: Session, user: User) -> RequestContext:
    owner = find_business_owner(session, user.business)
    subscription = (owner.subscription if owner else None) or user.subscription
    plan_id = effective_plan_id(subscription)
    return RequestContext(user=user, plan_id=plan_id, entitlements=entitlements_for(plan_id))


def resolve_context(
    email: str = Depends(session_email),
    session: Session = Depends(get_session),
) -> RequestContext:
    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return build_context(session, user)


def require_admin(ctx: RequestContext = Depends(resolve_context)) -> RequestContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only")
    return ctx


def require_feature(module: str):
    def dependency(ctx: RequestContext = Depends(resolve_context)) -> RequestContext:
        if not ctx.allows(module):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=UPGRADE_MESSAGES[module])
        return ctx

    return dependency


def public_user(user: User) -> dict:
    return user.model_dump(exclude={"password_hash"})


def require_admin_feature(module: str):
    def dependency(ctx: RequestContext = Depends(require_admin)) -> RequestContext:
        if not ctx.allows(module):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=UPGRADE_MESSAGES[module])
        return ctx

    return dependency
