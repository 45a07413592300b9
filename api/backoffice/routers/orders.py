from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..auth import RequestContext, resolve_context
from ..db import get_session
from ..errors import PermissionDenied
from ..orders import apply_action, capture_payment, create_order, list_orders, load_order, start_payment
from ..schemas import OrderAction, OrderCreate, PaymentCapture, PaymentCreate

router = APIRouter()


@router.get("")
def orders(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return list_orders(session, ctx)


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_order(
    body: OrderCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return create_order(session, ctx, body)


@router.post("/pay/create")
def create_payment(
    body: PaymentCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return {"paypal_order_id": start_payment(session, ctx, body.order_id)}


@router.post("/pay/capture")
def capture(
    body: PaymentCapture,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return capture_payment(session, ctx, body.order_id, body.paypal_order_id)


@router.get("/{order_id}")
def get_order(
    order_id: int,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    order = load_order(session, ctx, order_id)
    if not ctx.is_admin and order.created_by != ctx.email:
        raise PermissionDenied("Not allowed")
    return order


@router.put("/{order_id}")
def update_order(
    order_id: int,
    body: OrderAction,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return apply_action(session, ctx, order_id, body)


@router.delete("/{order_id}")
def cancel_order(
    order_id: int,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return apply_action(session, ctx, order_id, OrderAction(action="cancel"))
