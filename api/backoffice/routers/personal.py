from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from ..auth import RequestContext, public_user, resolve_context
from ..db import get_session
from ..schemas import PersonalRecord
from ..utils import normalize_email

router = APIRouter()


def _save(session: Session, ctx: RequestContext, records: list[dict]):
    ctx.user.personal = records
    session.add(ctx.user)
    session.commit()


@router.get("")
def get_user_info(ctx: RequestContext = Depends(resolve_context)):
    data = public_user(ctx.user)
    data["legalnames"] = [p.get("legalname") for p in ctx.user.personal or []]
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
def add_personal(
    body: PersonalRecord,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    record = body.model_dump()
    record["email"] = normalize_email(body.email)
    records = list(ctx.user.personal or [])
    if any(p.get("email") == record["email"] for p in records):
        raise HTTPException(status.HTTP_409_CONFLICT, "Person with this email already exists")
    _save(session, ctx, records + [record])
    return {"message": "Person added successfully", "person": record}


@router.put("")
def edit_personal(
    body: PersonalRecord,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    email = normalize_email(body.email)
    records = list(ctx.user.personal or [])
    for index, person in enumerate(records):
        if person.get("email") == email:
            records[index] = {**person, **body.model_dump(exclude={"email"})}
            _save(session, ctx, records)
            return {"message": "Personal data updated successfully"}
    raise HTTPException(404, "Personal data not found")


@router.delete("")
def delete_personal(
    email: str,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    email = normalize_email(email)
    records = [p for p in ctx.user.personal or [] if p.get("email") != email]
    if len(records) == len(ctx.user.personal or []):
        raise HTTPException(404, "Person not found")
    _save(session, ctx, records)
    return {"message": "Person deleted successfully"}
