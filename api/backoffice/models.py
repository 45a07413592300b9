
from typing import Optional, List
from datetime import datetime
from sqlalchemy import Column, DateTime, JSON
from sqlmodel import SQLModel, Field as ORMField

from .utils import utcnow


def _json_list():
    return ORMField(default_factory=list, sa_column=Column(JSON, nullable=False))


# naive UTC, with the column type pinned
def _timestamp():
    return ORMField(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


def _optional_timestamp():
    return ORMField(default=None, sa_column=Column(DateTime, nullable=True))


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str = ORMField(index=True, unique=True)
    password_hash: Optional[str] = None
    role: str = "Guest"  # Admin|Manager|Guest
    business: str = ORMField(index=True)
    profilename: str = ""
    phone: str = ""
    personal: List[dict] = _json_list()
    stocks: List[dict] = _json_list()
    tasks: List[dict] = _json_list()
    subscription: Optional[dict] = ORMField(default=None, sa_column=Column(JSON))
    created_at: datetime = _timestamp()


class Automation(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    business: str = ORMField(index=True)
    name: str
    description: Optional[str] = None
    trigger: dict = ORMField(sa_column=Column(JSON, nullable=False))
    action: dict = ORMField(sa_column=Column(JSON, nullable=False))
    visibility_roles: List[str] = _json_list()
    owner_email: str
    active: bool = True
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()
    last_run_at: Optional[datetime] = _optional_timestamp()
    last_run_status: Optional[str] = None


class AutomationAlert(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    automation_id: int = ORMField(index=True)
    business: str = ORMField(index=True)
    message: str
    roles: List[str] = _json_list()
    action: dict = ORMField(sa_column=Column(JSON, nullable=False))
    read_by: List[str] = _json_list()
    meta: dict = ORMField(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = _timestamp()


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = ORMField(default=None, primary_key=True)
    order_number: str = ORMField(index=True)
    business: str = ORMField(index=True)
    created_by: str
    created_by_name: Optional[str] = None
    title: str
    usage: str = "Other"
    description: str
    details: str = ""
    color_mode: str = "color"  # mono|color
    colors: List[str] = _json_list()
    attachments: List[dict] = _json_list()
    proofs: List[dict] = _json_list()
    status: str = "submitted"
    client_decision: str = "pending"  # pending|approved|rejected
    payment_status: str = "blocked"  # blocked|ready|paid
    quote_amount: Optional[float] = None
    payment_link: Optional[str] = None
    client_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    client_confirmed_at: Optional[datetime] = _optional_timestamp()
    admin_confirmed_at: Optional[datetime] = _optional_timestamp()
    paid_at: Optional[datetime] = _optional_timestamp()
    paypal_order_id: Optional[str] = None
    pending_paypal_order_id: Optional[str] = None
    revision: int = 0
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class ChatMessage(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    business: str = ORMField(index=True)
    conversation: str = ORMField(index=True)  # sorted "a|b" participant pair
    sender_email: str
    recipient_email: str
    body: str
    created_at: datetime = _timestamp()


class TaskComment(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    business: str = ORMField(index=True)
    task_id: str = ORMField(index=True)
    body: str
    mentions: List[str] = _json_list()
    author: dict = ORMField(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = _timestamp()


class WorkspaceNote(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    business: str = ORMField(unique=True)
    content: str = ""
    mentions: List[str] = _json_list()
    updated_at: Optional[datetime] = _optional_timestamp()
    updated_by: Optional[str] = None


class BusinessProfile(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    business: str = ORMField(unique=True)
    industry: str
    focus_areas: List[str] = _json_list()
    country: Optional[str] = None
    currency: Optional[str] = None
    locale: Optional[str] = None
    updated_at: Optional[datetime] = _optional_timestamp()
    updated_by: Optional[str] = None
