from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Tuple

from .errors import PreconditionFailed, ValidationFailed
from .utils import utcnow

TRIAL_LENGTH_DAYS = 14
DEFAULT_PLAN = "basic"


@dataclass(frozen=True)
class PlanDefinition:
    id: str
    name: str
    price: float
    seat_limit: Optional[int]
    features: Tuple[str, ...] = field(default_factory=tuple)
    tag: str = ""
    description: str = ""
    billing_period: str = "/mo"


PLANS: Mapping[str, PlanDefinition] = {
    "basic": PlanDefinition(
        id="basic",
        name="Basic",
        price=4.99,
        seat_limit=5,
        features=(
            "1 workspace • up to 5 seats",
            "Tasks, inventory, and basic dashboards",
            "Community + email support",
        ),
        tag="Getting started",
        description="For solo operators digitizing their workflows.",
    ),
    "pro": PlanDefinition(
        id="pro",
        name="Pro",
        price=19.99,
        seat_limit=25,
        features=(
            "3 workspaces • up to 25 seats",
            "Automations, chat, shared notebook",
            "Role-aware reporting + priority support",
        ),
        tag="Best value",
        description="For growing teams that need automation and collaboration.",
    ),
    "enterprise": PlanDefinition(
        id="enterprise",
        name="Enterprise",
        price=49.99,
        seat_limit=None,
        features=(
            "Unlimited workspaces & seats",
            "AI forecasting, audit logs, custom branding",
            "SSO/SAML, API & webhook access, dedicated CSM",
        ),
        tag="Scale without limits",
        description="For multi-site organizations needing security + white-glove onboarding.",
    ),
}

# module -> plans that unlock it
ENTITLEMENTS: Mapping[str, frozenset] = {
    "chat": frozenset({"pro", "enterprise"}),
    "automations": frozenset({"pro", "enterprise"}),
    "notebook": frozenset({"enterprise"}),
}

UPGRADE_MESSAGES: Mapping[str, str] = {
    "chat": "Chat is available on Pro and Enterprise plans.",
    "automations": "Automations are available on Pro and Enterprise plans.",
    "notebook": "Enterprise plan required for workspace notes.",
}


def parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_subscription_active(subscription: Optional[dict], now: Optional[datetime] = None) -> bool:
    if not subscription:
        return False
    status = subscription.get("status")
    if status == "active":
        return True
    if status == "trial":
        ends_at = parse_timestamp(subscription.get("trial_ends_at"))
        return ends_at is not None and ends_at > (now or utcnow())
    return False


def effective_plan_id(subscription: Optional[dict], now: Optional[datetime] = None) -> str:
    """Plan that currently applies; lapsed or missing subscriptions fall back to basic."""
    if not is_subscription_active(subscription, now):
        return DEFAULT_PLAN
    plan_id = subscription.get("plan_id")
    return plan_id if plan_id in PLANS else DEFAULT_PLAN


def entitlements_for(plan_id: str) -> dict:
    return {module: plan_id in plans for module, plans in ENTITLEMENTS.items()}


def serialize_plan(plan: PlanDefinition) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "price": plan.price,
        "billing_period": plan.billing_period,
        "seat_limit": plan.seat_limit,
        "features": list(plan.features),
        "tag": plan.tag,
        "description": plan.description,
    }


def get_plan(plan_id: Optional[str]) -> PlanDefinition:
    plan = PLANS.get(plan_id or "")
    if plan is None:
        raise ValidationFailed("Invalid plan selected")
    return plan


def start_trial(subscription: Optional[dict], plan_id: str, now: Optional[datetime] = None) -> dict:
    """Opens the one-time trial window; ``trial_used`` is never cleared afterwards."""
    plan = get_plan(plan_id)
    now = now or utcnow()
    existing = subscription or {}
    if is_subscription_active(existing, now):
        raise PreconditionFailed("An active subscription already exists")
    if existing.get("trial_used"):
        raise PreconditionFailed("Trial already redeemed for this account")
    return {
        "plan_id": plan.id,
        "status": "trial",
        "trial_started_at": now.isoformat(),
        "trial_ends_at": (now + timedelta(days=TRIAL_LENGTH_DAYS)).isoformat(),
        "trial_used": True,
        "updated_at": now.isoformat(),
    }


def activate(subscription: Optional[dict], plan_id: str, paypal_order_id: str, now: Optional[datetime] = None) -> dict:
    plan = get_plan(plan_id)
    now = now or utcnow()
    existing = dict(subscription or {})
    existing.pop("pending_plan_id", None)
    existing.pop("pending_paypal_order_id", None)
    existing.update(
        plan_id=plan.id,
        status="active",
        paypal_order_id=paypal_order_id,
        last_paid_at=now.isoformat(),
        updated_at=now.isoformat(),
        active_since=existing.get("active_since") or now.isoformat(),
        trial_used=True,
    )
    return existing


def record_pending_order(subscription: Optional[dict], plan_id: str, paypal_order_id: str) -> dict:
    """Remembers which plan a PayPal checkout was opened for."""
    plan = get_plan(plan_id)
    return dict(subscription or {}, pending_plan_id=plan.id, pending_paypal_order_id=paypal_order_id)


def pending_plan(subscription: Optional[dict], paypal_order_id: str, plan_id: str) -> PlanDefinition:
    existing = subscription or {}
    if not paypal_order_id or existing.get("pending_paypal_order_id") != paypal_order_id:
        raise PreconditionFailed("Payment session expired. Start checkout again.")
    if existing.get("pending_plan_id") != plan_id:
        raise PreconditionFailed("This payment was opened for a different plan.")
    return get_plan(plan_id)
