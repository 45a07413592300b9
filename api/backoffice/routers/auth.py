import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlmodel import Session, select

from ..auth import RequestContext, public_user, resolve_context
from ..config import COOKIE_SECURE, SESSION_COOKIE, SESSION_MAX_AGE
from ..db import get_session
from ..models import User
from ..plans import PLANS
from ..schemas import EmailCheck, LoginRequest, PasswordSetup, ProfileUpdate, RegisterRequest
from ..utils import clip_text, hash_password, make_token, normalize_email, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, session: Session = Depends(get_session)):
    email = normalize_email(body.email)
    business = body.business.strip()
    if not email or not business:
        raise HTTPException(400, "Missing required fields")
    if session.exec(select(User).where(User.email == email)).first():
        raise HTTPException(400, "User already exists")
    if session.exec(select(User).where(User.business == business)).first():
        raise HTTPException(400, "Business already exists")
    user = User(
        email=email,
        password_hash=hash_password(body.password),
        role="Admin",
        business=business,
        profilename=clip_text(body.profilename, 120),
        phone=clip_text(body.phone, 40),
    )
    session.add(user)
    session.commit()
    logger.info("registered business %r for %s", business, email)
    return {"message": "User registered successfully"}


@router.post("/login")
def login(body: LoginRequest, response: Response, session: Session = Depends(get_session)):
    email = normalize_email(body.email)
    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")
    token = make_token({"email": user.email})
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="strict",
        secure=COOKIE_SECURE,
        path="/",
    )
    return {
        "message": "Login successful",
        "token": token,
        "user": {"email": user.email, "profilename": user.profilename, "business": user.business, "role": user.role},
    }


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"message": "Logged out"}


@router.get("/me")
def me(ctx: RequestContext = Depends(resolve_context)):
    user = ctx.user
    return {
        "user": {
            "email": user.email,
            "profilename": user.profilename,
            "business": user.business,
            "role": user.role,
        },
        "plan": {"id": ctx.plan_id, "name": PLANS[ctx.plan_id].name},
        "entitlements": ctx.entitlements,
    }


@router.post("/check-email")
def check_email(body: EmailCheck, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == normalize_email(body.email))).first()
    if not user:
        return {"exists": False}
    return {"exists": True, "has_password": bool(user.password_hash)}


@router.post("/setup-password")
def setup_password(body: PasswordSetup, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == normalize_email(body.email))).first()
    # only invited accounts that never set a password
    if not user or user.password_hash:
        raise HTTPException(400, "Password setup is not available for this account")
    user.password_hash = hash_password(body.password)
    session.add(user)
    session.commit()
    return {"message": "Password set successfully"}


@router.put("/profile")
def update_profile(
    body: ProfileUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    user = ctx.user
    if body.profilename is not None:
        user.profilename = clip_text(body.profilename, 120)
    if body.phone is not None:
        user.phone = clip_text(body.phone, 40)
    session.add(user)
    session.commit()
    session.refresh(user)
    return public_user(user)
