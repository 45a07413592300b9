import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from .. import paypal
from ..auth import RequestContext, require_admin, resolve_context
from ..db import get_session
from ..plans import PLANS, activate, get_plan, pending_plan, record_pending_order, serialize_plan, start_trial
from ..schemas import PlanCapture, PlanSelect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/plans")
def list_plans():
    return [serialize_plan(plan) for plan in PLANS.values()]


@router.get("")
def current_subscription(ctx: RequestContext = Depends(resolve_context)):
    return {
        "plan_id": ctx.plan_id,
        "entitlements": ctx.entitlements,
        "subscription": ctx.user.subscription if ctx.is_admin else None,
    }


@router.post("/trial")
def begin_trial(
    body: PlanSelect,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    ctx.user.subscription = start_trial(ctx.user.subscription, body.plan_id)
    session.add(ctx.user)
    session.commit()
    logger.info("%s started a %s trial", ctx.business, body.plan_id)
    return {"subscription": ctx.user.subscription}


@router.post("/order")
def create_plan_order(
    body: PlanSelect,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    plan = get_plan(body.plan_id)
    order = paypal.create_order(
        plan.price,
        description=f"{plan.name} plan subscription",
        custom_id=f"{plan.id}:{ctx.email}",
    )
    ctx.user.subscription = record_pending_order(ctx.user.subscription, plan.id, order["id"])
    session.add(ctx.user)
    session.commit()
    return {"order_id": order["id"]}


@router.post("/capture")
def capture_plan_order(
    body: PlanCapture,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_admin),
):
    plan = pending_plan(ctx.user.subscription, body.order_id, body.plan_id)
    capture = paypal.capture_order(body.order_id)
    if capture.get("status") != paypal.COMPLETED:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "PayPal capture did not complete")
    ctx.user.subscription = activate(ctx.user.subscription, plan.id, body.order_id)
    session.add(ctx.user)
    session.commit()
    logger.info("%s activated the %s plan", ctx.business, plan.id)
    return {"subscription": ctx.user.subscription}
