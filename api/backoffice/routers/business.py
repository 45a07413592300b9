from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from ..auth import RequestContext, require_admin, resolve_context
from ..db import get_session
from ..industries import INDUSTRIES, get_industry, serialize_industry
from ..models import BusinessProfile
from ..schemas import BusinessProfileUpdate
from ..utils import clip_text, utcnow

router = APIRouter()

MAX_FOCUS_AREAS = 5


def _profile(session: Session, business: str):
    return session.exec(select(BusinessProfile).where(BusinessProfile.business == business)).first()


@router.get("/industries")
def list_industries():
    return [serialize_industry(i) for i in INDUSTRIES]


@router.get("/profile")
def get_profile(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    profile = _profile(session, ctx.business)
    if not profile:
        return {
            "business": ctx.business,
            "industry": None,
            "focus_areas": [],
            "country": None,
            "currency": None,
            "locale": None,
        }
    return profile


@router.put("/profile")
def save_profile(
    body: BusinessProfileUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    if not get_industry(body.industry):
        raise HTTPException(400, "Choose an industry from the list")
    focus = [clip_text(f, 60) for f in body.focus_areas if clip_text(f, 60)]
    if len(focus) > MAX_FOCUS_AREAS:
        raise HTTPException(400, f"Pick up to {MAX_FOCUS_AREAS} focus areas")

    profile = _profile(session, ctx.business) or BusinessProfile(business=ctx.business, industry=body.industry)
    profile.industry = body.industry
    profile.focus_areas = focus
    profile.country = clip_text(body.country, 80) or None
    profile.currency = clip_text(body.currency, 8).upper() or None
    profile.locale = clip_text(body.locale, 16) or None
    profile.updated_at = utcnow()
    profile.updated_by = ctx.email
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
