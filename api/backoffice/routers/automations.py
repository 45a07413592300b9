from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..auth import RequestContext, require_admin_feature, require_feature, resolve_context
from ..automations import (
    DATE_FIELDS,
    METRICS,
    acknowledge_alerts,
    create_automation,
    delete_automation,
    list_alerts,
    list_automations,
    run_automations,
    serialize_automation,
    update_automation,
)
from ..db import get_session
from ..schemas import AlertAck, AutomationCreate, AutomationDelete, AutomationRun, AutomationUpdate

router = APIRouter()

admin_automations = require_admin_feature("automations")


@router.get("/catalog")
def catalog():
    return {
        "metrics": [{"id": k, "label": v} for k, v in METRICS.items()],
        "date_fields": [{"id": k, "label": v} for k, v in DATE_FIELDS.items()],
        "roles": ["Admin", "Manager", "Guest"],
    }


@router.get("")
def list_rules(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(require_feature("automations")),
):
    return [serialize_automation(a) for a in list_automations(session, ctx)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_rule(
    body: AutomationCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(admin_automations),
):
    return serialize_automation(create_automation(session, ctx, body))


@router.put("")
def update_rule(
    body: AutomationUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(admin_automations),
):
    return serialize_automation(update_automation(session, ctx, body))


@router.delete("")
def delete_rule(
    body: AutomationDelete,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(admin_automations),
):
    delete_automation(session, ctx, body.id)
    return {"message": "Automation deleted"}


@router.post("/run")
def run(
    body: AutomationRun,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(admin_automations),
):
    return run_automations(session, ctx, automation_id=body.automation_id)


@router.get("/alerts")
def alerts(
    include_read: bool = False,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return list_alerts(session, ctx, include_read=include_read)


@router.post("/alerts/ack")
def acknowledge(
    body: AlertAck,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return {"acknowledged": acknowledge_alerts(session, ctx, alert_id=body.alert_id, mark_all=body.mark_all)}
