"""Custom order intake and its proof / approval / payment lifecycle.

Every transition is a single conditional UPDATE keyed by order id, tenant and
the revision that was read, plus the transition's own precondition. When the
row moved underneath us the update matches nothing and the caller gets a 409
instead of a half-applied change.
"""
import logging
import math
import re
import secrets
import string
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from . import paypal
from .auth import RequestContext
from .errors import ConcurrentUpdate, NotFound, PermissionDenied, PreconditionFailed, ValidationFailed
from .models import Order
from .schemas import OrderAction, OrderCreate
from .utils import clip_text, decode_data_url, utcnow

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 6 * 1024 * 1024
MAX_ATTACHMENT_COUNT = 6
MAX_PROOF_COUNT = 10
MAX_NOTE_LENGTH = 2000
MAX_LIST_SIZE = 200

TERMINAL_STATUSES = ("cancelled", "paid")
COLOR_MODES = ("mono", "color")

HEX_COLOR = re.compile(r"^#([0-9A-F]{3}|[0-9A-F]{6})$")
DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)
ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


# ---------- input normalisation ----------

def normalize_colors(mode: str, raw) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, list):
        raw = []
    cleaned = []
    for color in raw:
        value = color.strip() if isinstance(color, str) else ""
        if not value:
            continue
        if not value.startswith("#"):
            value = f"#{value}"
        cleaned.append(value.upper())

    if not cleaned:
        return ["#000000"] if mode == "mono" else ["#000000", "#FFFFFF"]

    palette = cleaned[: 1 if mode == "mono" else 6]
    for color in palette:
        if not HEX_COLOR.match(color):
            raise ValidationFailed("Provide valid hex colors (e.g., #2F80ED).")
    return palette


def _is_allowed_mime(mime: str) -> bool:
    return mime.startswith("image/") or mime == "application/pdf"


def sanitize_file(entry, uploaded_by: str, now: datetime) -> dict:
    if not isinstance(entry, dict):
        raise ValidationFailed("One of the files is malformed.")
    file_id, name, mime, data_url = (entry.get(k) for k in ("id", "name", "type", "data_url"))
    if not file_id or not isinstance(file_id, str):
        raise ValidationFailed("Every file must include an id.")
    if not name or not isinstance(name, str):
        raise ValidationFailed("Every file must include a name.")
    if not mime or not isinstance(mime, str):
        raise ValidationFailed("Every file must include a MIME type.")
    if not data_url or not isinstance(data_url, str):
        raise ValidationFailed("Every file must include base64 data.")
    if not DATA_URL_PREFIX.match(data_url[:60]):
        raise ValidationFailed("One of the files is not a valid base64 payload.")
    try:
        size = len(decode_data_url(data_url))
    except ValueError:
        raise ValidationFailed("One of the files is not a valid base64 payload.")
    if not size:
        raise ValidationFailed("One of the files is empty.")
    if size > MAX_FILE_SIZE_BYTES:
        raise ValidationFailed("Each file must be 6MB or smaller.")
    if not _is_allowed_mime(mime):
        raise ValidationFailed("Only images or PDFs are supported right now.")
    return {
        "id": file_id,
        "name": clip_text(name, 120),
        "type": mime,
        "size": size,
        "data_url": data_url,
        "uploaded_at": now.isoformat(),
        "uploaded_by": uploaded_by,
    }


def sanitize_files(payload, uploaded_by: str, now: datetime, max_items: int = MAX_ATTACHMENT_COUNT) -> list[dict]:
    if not payload:
        return []
    if not isinstance(payload, list):
        raise ValidationFailed("Attachments must be provided as an array.")
    if len(payload) > max_items:
        raise ValidationFailed(f"Upload up to {max_items} files at once.")
    return [sanitize_file(entry, uploaded_by, now) for entry in payload]


def parse_quote(raw) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount) or amount <= 0:
        return None
    return round(amount, 2)


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(5))
    return f"ORD-{suffix}"


# ---------- queries ----------

def create_order(session: Session, ctx: RequestContext, data: OrderCreate) -> Order:
    title = clip_text(data.title, 120)
    if len(title) < 3:
        raise ValidationFailed("Give this order a descriptive title (3+ chars).")
    description = clip_text(data.description, 600) or clip_text(data.details, 600)
    if not description:
        raise ValidationFailed("Add a sentence describing what you need.")
    if data.color_mode not in COLOR_MODES:
        raise ValidationFailed("Color mode must be either mono or color.")
    usage = clip_text(data.usage, 60) or "Other"
    details = clip_text(data.details, 4000) or description
    palette = normalize_colors(data.color_mode, data.colors)

    now = utcnow()
    uploads = sanitize_files(data.attachments, ctx.email, now)
    if not uploads:
        raise ValidationFailed("Attach at least one reference file.")

    order = Order(
        order_number=generate_order_number(),
        business=ctx.business,
        created_by=ctx.email,
        created_by_name=ctx.user.profilename or ctx.email,
        title=title,
        usage=usage,
        description=description,
        details=details,
        color_mode=data.color_mode,
        colors=palette,
        attachments=uploads,
        proofs=[],
        status="submitted",
        client_decision="pending",
        payment_status="blocked",
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info("order %s created by %s", order.order_number, ctx.email)
    return order


def list_orders(session: Session, ctx: RequestContext) -> list[Order]:
    stmt = select(Order).where(Order.business == ctx.business)
    if not ctx.is_admin:
        stmt = stmt.where(Order.created_by == ctx.email)
    return session.exec(stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(MAX_LIST_SIZE)).all()


def load_order(session: Session, ctx: RequestContext, order_id: int) -> Order:
    order = session.get(Order, order_id)
    # other tenants' orders read as missing
    if not order or order.business != ctx.business:
        raise NotFound("Order not found")
    return order


def _commit_transition(session: Session, order: Order, values: dict, *conditions) -> Order:
    values = dict(values, revision=order.revision + 1, updated_at=values.get("updated_at") or utcnow())
    stmt = (
        update(Order)
        .where(
            Order.id == order.id,
            Order.business == order.business,
            Order.revision == order.revision,
            *conditions,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)
    if result.rowcount != 1:
        session.rollback()
        raise ConcurrentUpdate("The order changed while you were working on it. Reload and try again.")
    session.commit()
    session.refresh(order)
    return order


# ---------- transitions ----------

def _note(payload: OrderAction) -> Optional[str]:
    return clip_text(payload.note, MAX_NOTE_LENGTH) if isinstance(payload.note, str) else None


def _append_proofs(session, ctx, order, payload):
    if not ctx.is_admin:
        raise PermissionDenied("Admins only")
    if order.status == "cancelled":
        raise PreconditionFailed("Cancelled orders cannot receive proofs.")
    if order.status == "paid":
        raise PreconditionFailed("Paid orders cannot receive new proofs.")
    now = utcnow()
    files = sanitize_files(payload.files, ctx.email, now, max_items=MAX_PROOF_COUNT)
    if not files:
        raise ValidationFailed("Attach at least one proof.")
    if len(order.proofs or []) + len(files) > MAX_PROOF_COUNT:
        raise ValidationFailed(f"An order can hold up to {MAX_PROOF_COUNT} proofs.")
    values = {
        "proofs": list(order.proofs or []) + files,
        "status": "proofs_ready",
        "client_decision": "pending",
        "payment_status": "blocked",
        "pending_paypal_order_id": None,
        "admin_notes": _note(payload) or order.admin_notes,
        "updated_at": now,
    }
    return _commit_transition(session, order, values, Order.status.notin_(TERMINAL_STATUSES))


def _client_decision(session, ctx, order, payload):
    if order.created_by != ctx.email:
        raise PermissionDenied("Only the requester can decide.")
    if order.status != "proofs_ready":
        raise PreconditionFailed("Proofs are not ready for review yet.")
    if payload.decision not in ("approved", "rejected"):
        raise ValidationFailed("Decision must be approved or rejected.")
    now = utcnow()
    values = {"client_notes": _note(payload) or order.client_notes, "updated_at": now}
    if payload.decision == "approved":
        values.update(status="client_confirmed", client_decision="approved", client_confirmed_at=now)
    else:
        values.update(
            status="client_rejected",
            client_decision="rejected",
            client_confirmed_at=None,
            admin_confirmed_at=None,
            payment_status="blocked",
            quote_amount=None,
            payment_link=None,
            pending_paypal_order_id=None,
            paypal_order_id=None,
        )
    return _commit_transition(session, order, values, Order.status == "proofs_ready")


def _admin_confirm(session, ctx, order, payload):
    if not ctx.is_admin:
        raise PermissionDenied("Admins only")
    if order.client_decision != "approved":
        raise PreconditionFailed("Wait for the client to approve the proof.")
    if order.status in TERMINAL_STATUSES:
        raise PreconditionFailed("This order can no longer be confirmed.")
    quote = parse_quote(payload.quote_amount)
    link = clip_text(payload.payment_link, 400) or None
    now = utcnow()
    values = {
        "status": "admin_confirmed",
        "admin_notes": _note(payload) or order.admin_notes,
        "admin_confirmed_at": now,
        "payment_status": "ready" if quote else "blocked",
        "quote_amount": quote,
        "payment_link": link,
        "pending_paypal_order_id": None,
        "paypal_order_id": None,
        "updated_at": now,
    }
    return _commit_transition(
        session,
        order,
        values,
        Order.client_decision == "approved",
        Order.status.notin_(TERMINAL_STATUSES),
    )


def _mark_paid(session, ctx, order, payload):
    if not ctx.is_admin:
        raise PermissionDenied("Admins only")
    if order.status == "cancelled":
        raise PreconditionFailed("Cancelled orders cannot be marked as paid.")
    now = utcnow()
    values = {
        "status": "paid",
        "payment_status": "paid",
        # a repeat call keeps the original payment time
        "paid_at": order.paid_at or now,
        "pending_paypal_order_id": None,
        "admin_notes": _note(payload) or order.admin_notes,
        "updated_at": now,
    }
    return _commit_transition(session, order, values, Order.status != "cancelled")


def _cancel(session, ctx, order, payload):
    is_owner = order.created_by == ctx.email
    if not ctx.is_admin and not is_owner:
        raise PermissionDenied("Not allowed")
    if order.status == "cancelled":
        raise PreconditionFailed("This order is already cancelled.")
    if order.status == "paid":
        raise PreconditionFailed("Paid orders cannot be cancelled.")
    note_field = "admin_notes" if ctx.is_admin else "client_notes"
    values = {
        "status": "cancelled",
        "client_decision": "rejected",
        "payment_status": "blocked",
        "client_confirmed_at": None,
        "admin_confirmed_at": None,
        "quote_amount": None,
        "payment_link": None,
        "pending_paypal_order_id": None,
        "paypal_order_id": None,
        note_field: _note(payload) or getattr(order, note_field),
    }
    return _commit_transition(session, order, values, Order.status.notin_(TERMINAL_STATUSES))


ACTIONS = {
    "appendProofs": _append_proofs,
    "clientDecision": _client_decision,
    "adminConfirm": _admin_confirm,
    "markPaid": _mark_paid,
    "cancel": _cancel,
}


def apply_action(session: Session, ctx: RequestContext, order_id: int, payload: OrderAction) -> Order:
    if not payload.action:
        raise ValidationFailed("Missing action")
    handler = ACTIONS.get(payload.action)
    if handler is None:
        raise ValidationFailed("Unknown action")
    order = load_order(session, ctx, order_id)
    order = handler(session, ctx, order, payload)
    logger.info("order %s: %s by %s -> %s", order.order_number, payload.action, ctx.email, order.status)
    return order


# ---------- payment ----------

def _require_payer(ctx: RequestContext, order: Order):
    if order.created_by != ctx.email and not ctx.is_admin:
        raise PermissionDenied("Not allowed")


def start_payment(session: Session, ctx: RequestContext, order_id: int) -> str:
    order = load_order(session, ctx, order_id)
    _require_payer(ctx, order)
    if order.status != "admin_confirmed" or order.payment_status != "ready" or not order.quote_amount or order.quote_amount <= 0:
        raise PreconditionFailed("This order is not ready for payment.")
    paypal_order = paypal.create_order(
        order.quote_amount,
        description=f"Custom order {order.order_number}",
        custom_id=str(order.id),
    )
    paypal_order_id = paypal_order["id"]
    _commit_transition(
        session,
        order,
        {"pending_paypal_order_id": paypal_order_id},
        Order.status == "admin_confirmed",
        Order.payment_status == "ready",
    )
    return paypal_order_id


def capture_payment(session: Session, ctx: RequestContext, order_id: int, paypal_order_id: str) -> Order:
    order = load_order(session, ctx, order_id)
    _require_payer(ctx, order)
    if not order.pending_paypal_order_id or order.pending_paypal_order_id != paypal_order_id:
        raise PreconditionFailed("This payment session is no longer valid.")
    capture = paypal.capture_order(paypal_order_id)
    if capture.get("status") != paypal.COMPLETED:
        logger.warning("capture of %s for order %s returned %s", paypal_order_id, order.order_number, capture.get("status"))
        raise PreconditionFailed("PayPal could not complete the payment.")
    now = utcnow()
    values = {
        "status": "paid",
        "payment_status": "paid",
        "paypal_order_id": paypal_order_id,
        "pending_paypal_order_id": None,
        "paid_at": now,
        "updated_at": now,
    }
    return _commit_transition(session, order, values, Order.pending_paypal_order_id == paypal_order_id)
