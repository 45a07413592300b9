import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from ..auth import RequestContext, resolve_context
from ..db import get_session
from ..schemas import StockCreate, StockUpdate
from ..utils import clip_text

router = APIRouter()


def _number(value) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _find(stocks: list[dict], product_name: str) -> int:
    for index, stock in enumerate(stocks):
        if stock.get("product_name") == product_name:
            return index
    return -1


def _save(session: Session, ctx: RequestContext, stocks: list[dict]):
    ctx.user.stocks = stocks
    session.add(ctx.user)
    session.commit()


@router.get("")
def list_stocks(ctx: RequestContext = Depends(resolve_context)):
    return ctx.user.stocks or []


@router.post("", status_code=status.HTTP_201_CREATED)
def add_stock(
    body: StockCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    stocks = list(ctx.user.stocks or [])
    name = body.product_name.strip()
    if _find(stocks, name) >= 0:
        raise HTTPException(status.HTTP_409_CONFLICT, "Stock with this product name already exists")
    stock = dict(body.model_dump(), product_name=name)
    _save(session, ctx, stocks + [stock])
    return {"message": "Stock added successfully", "stock": stock}


@router.put("")
def edit_stock(
    body: StockUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    price, quantity = _number(body.price), _number(body.quantity)
    if price is None or quantity is None:
        raise HTTPException(400, "Price and quantity must be numbers")

    stocks = list(ctx.user.stocks or [])
    index = _find(stocks, body.product_name)
    if index < 0:
        raise HTTPException(404, "Stock not found")

    current = stocks[index]
    score = _number(body.vendor.score)
    stocks[index] = {
        **current,
        "price": price,
        "quantity": quantity,
        "location": body.location or current.get("location") or "",
        "date_of_purchase": body.date_of_purchase or current.get("date_of_purchase") or "",
        "barcode": clip_text(body.barcode, 120),
        "reorder_point": _number(body.reorder_point),
        "asset_life_years": _number(body.asset_life_years),
        "residual_value": _number(body.residual_value) or 0,
        "vendor": {
            "name": body.vendor.name or "",
            "contact": body.vendor.contact or "",
            "score": min(100.0, max(0.0, score)) if score is not None else None,
        },
        "last_audit_date": body.last_audit_date,
        "notes": clip_text(body.notes, 2000),
    }
    _save(session, ctx, stocks)
    return {"message": "Stock updated successfully", "stock": stocks[index]}


@router.delete("")
def delete_stock(
    product_name: str,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    stocks = [s for s in ctx.user.stocks or [] if s.get("product_name") != product_name]
    if len(stocks) == len(ctx.user.stocks or []):
        raise HTTPException(404, "Stock not found")
    _save(session, ctx, stocks)
    return {"message": "Stock unit deleted successfully"}
