"""Tenant automation rules: metric snapshot, trigger evaluation and the
alert / task / email fan-out that follows a firing rule.

The engine runs only when an Admin asks for it; there is no scheduler.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import TypeAdapter
from sqlmodel import Session, select

from . import email as mailer
from .auth import RequestContext
from .errors import NotFound, ValidationFailed
from .models import Automation, AutomationAlert, User
from .schemas import (
    AutomationCreate,
    AutomationUpdate,
    DateTrigger,
    KpiTrigger,
    Trigger,
)
from .utils import new_id, utcnow

logger = logging.getLogger(__name__)

METRICS = {
    "overdue_tasks": "Overdue tasks",
    "completion_rate": "Task completion rate (%)",
    "headcount": "Team headcount",
    "upcoming_birthdays": "Upcoming birthdays (14d)",
}
DATE_FIELDS = {
    "start_date": "Employment start date",
    "birth_date": "Birth date",
}
BIRTHDAY_WINDOW_DAYS = 14
DEFAULT_VISIBILITY = ["Admin"]
UNREAD_ALERT_LIMIT = 20
ALERT_HISTORY_LIMIT = 100

trigger_adapter = TypeAdapter(Trigger)


# ---------- dates ----------

def parse_day(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _same_day_in_year(day: date, year: int) -> date:
    try:
        return day.replace(year=year)
    except ValueError:
        # Feb 29 outside a leap year
        return date(year, 3, 1)


def next_occurrence(day: date, today: date) -> date:
    """The anniversary of ``day`` on or after ``today``."""
    candidate = _same_day_in_year(day, today.year)
    if candidate < today:
        candidate = _same_day_in_year(day, today.year + 1)
    return candidate


def days_until(record: dict, field: str, today: date) -> Optional[int]:
    target = parse_day(record.get(field))
    if target is None:
        return None
    if field == "birth_date":
        target = next_occurrence(target, today)
    return (target - today).days


# ---------- metrics ----------

def is_task_completed(task: dict) -> bool:
    return task.get("status") == "Completed" or task.get("completed") is True


def compute_metrics(members: list[User], now: datetime) -> dict:
    today = now.date()
    tasks = [task for member in members for task in (member.tasks or [])]
    records = [record for member in members for record in (member.personal or [])]

    overdue = 0
    completed = 0
    for task in tasks:
        if is_task_completed(task):
            completed += 1
            continue
        deadline = parse_day(task.get("deadline"))
        if deadline is not None and deadline < today:
            overdue += 1

    birthdays = 0
    for record in records:
        diff = days_until(record, "birth_date", today)
        if diff is not None and 0 <= diff <= BIRTHDAY_WINDOW_DAYS:
            birthdays += 1

    return {
        "overdue_tasks": overdue,
        "completion_rate": round(completed / len(tasks) * 100) if tasks else 0,
        "headcount": len(records),
        "upcoming_birthdays": birthdays,
    }


def compare(value: float, comparator: str, threshold: float) -> bool:
    if comparator == "above":
        return value > threshold
    if comparator == "below":
        return value < threshold
    if comparator == "equals":
        return value == threshold
    return False


# ---------- evaluation ----------

def evaluate_trigger(trigger, metrics: dict, records: list[dict], today: date) -> Optional[str]:
    """Returns the default alert sentence when the trigger fires, else None."""
    if isinstance(trigger, KpiTrigger):
        if trigger.metric_id not in metrics:
            return None
        value = metrics[trigger.metric_id]
        if not compare(value, trigger.comparator, trigger.threshold):
            return None
        return f"{trigger.metric_id} is {trigger.comparator} threshold ({value})."

    if isinstance(trigger, DateTrigger):
        matches = 0
        for record in records:
            diff = days_until(record, trigger.date_field, today)
            if diff is not None and 0 <= diff <= trigger.offset_days:
                matches += 1
        if not matches:
            return None
        return f"{matches} team member(s) have {trigger.date_field} within {trigger.offset_days} day(s)."

    return None


def resolve_recipients(members: list[User], automation: Automation) -> list[str]:
    roles = automation.visibility_roles or DEFAULT_VISIBILITY
    recipients = []
    candidates = [m.email for m in members if m.role in roles] + [automation.owner_email]
    for address in candidates:
        if address and address not in recipients:
            recipients.append(address)
    return recipients


def build_task(automation: Automation, template: dict, now: datetime) -> dict:
    offset = template.get("deadline_offset_days")
    deadline = now + timedelta(days=offset) if offset is not None else now
    return {
        "id": new_id(),
        "title": template["title"],
        "description": template.get("description") or automation.description or "",
        "assignees": [automation.owner_email],
        "deadline": deadline.date().isoformat(),
        "completed": False,
        "subtasks": [],
        "status": "Todo",
        "priority": template.get("priority") or "Medium",
        "created_at": now.isoformat(),
    }


def _append_owner_task(session: Session, automation: Automation, now: datetime) -> Optional[dict]:
    template = automation.action.get("task")
    if not template:
        return None
    owner = session.exec(
        select(User).where(User.email == automation.owner_email, User.business == automation.business)
    ).first()
    if not owner:
        logger.warning("automation %s: owner %s is gone, no task created", automation.id, automation.owner_email)
        return None
    task = build_task(automation, template, now)
    owner.tasks = list(owner.tasks or []) + [task]
    session.add(owner)
    return task


def _send_email(automation: Automation, recipients: list[str], message: str) -> bool:
    action = automation.action
    template = action.get("email") or {}
    subject = template.get("subject") or action.get("message") or automation.name
    body = template.get("body") or message or automation.description or automation.name
    return mailer.send_email(recipients, subject, body)


def fire(session: Session, automation: Automation, members: list[User], metrics: dict, message: str, now: datetime) -> AutomationAlert:
    recipients = resolve_recipients(members, automation)
    alert = AutomationAlert(
        automation_id=automation.id,
        business=automation.business,
        message=message,
        roles=list(automation.visibility_roles or DEFAULT_VISIBILITY),
        action=dict(automation.action),
        read_by=[],
        meta={"metric_snapshot": metrics, "recipients": recipients},
        created_at=now,
    )
    session.add(alert)

    action_type = automation.action.get("type")
    if action_type == "task":
        _append_owner_task(session, automation, now)

    automation.last_run_at = now
    automation.last_run_status = "triggered"
    session.add(automation)
    session.commit()

    # sent after the commit; a failed send leaves the alert in place
    if action_type == "email" or automation.action.get("email"):
        if not _send_email(automation, recipients, message):
            logger.warning("automation %s: email to %d recipient(s) not delivered", automation.id, len(recipients))
    return alert


def run_automations(
    session: Session,
    ctx: RequestContext,
    automation_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    stmt = select(Automation).where(Automation.business == ctx.business)
    if automation_id is not None:
        stmt = stmt.where(Automation.id == automation_id)
    else:
        stmt = stmt.where(Automation.active == True)  # noqa: E712
    candidates = session.exec(stmt.order_by(Automation.id)).all()

    members = session.exec(select(User).where(User.business == ctx.business).order_by(User.id)).all()
    metrics = compute_metrics(members, now)
    records = [record for member in members for record in (member.personal or [])]

    details = []
    for automation in candidates:
        if not automation.trigger or not automation.action:
            continue
        try:
            trigger = trigger_adapter.validate_python(automation.trigger)
            fallback = evaluate_trigger(trigger, metrics, records, now.date())
            if fallback is None:
                continue
            message = automation.action.get("message") or fallback
            fire(session, automation, members, metrics, message, now)
        except Exception:
            logger.exception("automation %s failed, skipping", automation.id)
            session.rollback()
            continue
        details.append({"automation": serialize_automation(automation), "message": message})

    logger.info("business %s: %d of %d automation(s) triggered", ctx.business, len(details), len(candidates))
    return {"triggered": len(details), "details": details, "metrics": metrics}


# ---------- rule CRUD ----------

def serialize_automation(automation: Automation) -> dict:
    return automation.model_dump()


def list_automations(session: Session, ctx: RequestContext) -> list[Automation]:
    rows = session.exec(
        select(Automation)
        .where(Automation.business == ctx.business)
        .order_by(Automation.created_at.desc(), Automation.id.desc())
    ).all()
    if ctx.is_admin:
        return rows
    return [a for a in rows if a.active and ctx.role in (a.visibility_roles or DEFAULT_VISIBILITY)]


def _load(session: Session, ctx: RequestContext, automation_id: int) -> Automation:
    automation = session.get(Automation, automation_id)
    if not automation or automation.business != ctx.business:
        raise NotFound("Automation not found")
    return automation


def create_automation(session: Session, ctx: RequestContext, data: AutomationCreate) -> Automation:
    now = utcnow()
    automation = Automation(
        business=ctx.business,
        name=data.name.strip(),
        description=data.description,
        trigger=data.trigger.model_dump(),
        action=data.action.model_dump(exclude_none=True),
        visibility_roles=list(data.visibility_roles) or list(DEFAULT_VISIBILITY),
        owner_email=ctx.email,
        active=data.active,
        created_at=now,
        updated_at=now,
    )
    if not automation.name:
        raise ValidationFailed("Name is required")
    session.add(automation)
    session.commit()
    session.refresh(automation)
    logger.info("automation %s created in %s", automation.id, ctx.business)
    return automation


def update_automation(session: Session, ctx: RequestContext, data: AutomationUpdate) -> Automation:
    automation = _load(session, ctx, data.id)
    if data.name is not None:
        if not data.name.strip():
            raise ValidationFailed("Name is required")
        automation.name = data.name.strip()
    if data.description is not None:
        automation.description = data.description
    if data.trigger is not None:
        automation.trigger = data.trigger.model_dump()
    if data.action is not None:
        automation.action = data.action.model_dump(exclude_none=True)
    if data.visibility_roles is not None:
        automation.visibility_roles = list(data.visibility_roles) or list(DEFAULT_VISIBILITY)
    if data.active is not None:
        automation.active = data.active
    automation.updated_at = utcnow()
    session.add(automation)
    session.commit()
    session.refresh(automation)
    return automation


def delete_automation(session: Session, ctx: RequestContext, automation_id: int) -> None:
    automation = _load(session, ctx, automation_id)
    session.delete(automation)
    session.commit()


# ---------- alerts ----------

def list_alerts(session: Session, ctx: RequestContext, include_read: bool = False) -> list[dict]:
    rows = session.exec(
        select(AutomationAlert)
        .where(AutomationAlert.business == ctx.business)
        .order_by(AutomationAlert.created_at.desc(), AutomationAlert.id.desc())
    ).all()
    limit = ALERT_HISTORY_LIMIT if include_read else UNREAD_ALERT_LIMIT
    visible = []
    for alert in rows:
        if alert.roles and ctx.role not in alert.roles:
            continue
        read = ctx.email in (alert.read_by or [])
        if read and not include_read:
            continue
        visible.append(dict(alert.model_dump(), read=read))
        if len(visible) >= limit:
            break
    return visible


def acknowledge_alerts(session: Session, ctx: RequestContext, alert_id: Optional[int] = None, mark_all: bool = False) -> int:
    """Adds the caller to ``read_by``; never removes anyone. Returns alerts touched."""
    if not mark_all and alert_id is None:
        raise ValidationFailed("alert_id or mark_all is required")
    stmt = select(AutomationAlert).where(AutomationAlert.business == ctx.business)
    if not mark_all:
        stmt = stmt.where(AutomationAlert.id == alert_id)
    touched = 0
    for alert in session.exec(stmt).all():
        if alert.roles and ctx.role not in alert.roles:
            continue
        if ctx.email in (alert.read_by or []):
            continue
        alert.read_by = list(alert.read_by or []) + [ctx.email]
        session.add(alert)
        touched += 1
    session.commit()
    return touched
