
from pydantic import BaseModel, Field
from typing import Annotated, Any, List, Literal, Optional, Union

Role = Literal["Admin", "Manager", "Guest"]
Priority = Literal["Low", "Medium", "High", "Urgent"]

# ---------- identity ----------

class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)
    business: str = Field(min_length=1)
    profilename: Optional[str] = None
    phone: Optional[str] = None

class LoginRequest(BaseModel):
    email: str
    password: str

class EmailCheck(BaseModel):
    email: str

class PasswordSetup(BaseModel):
    email: str
    password: str = Field(min_length=1)

class ProfileUpdate(BaseModel):
    profilename: Optional[str] = None
    phone: Optional[str] = None

# ---------- accounts / records ----------

class AccountCreate(BaseModel):
    email: str
    role: Role
    password: Optional[str] = None

class AccountUpdate(BaseModel):
    email: str
    role: Role

class PersonalRecord(BaseModel):
    legalname: str = Field(min_length=1)
    email: str
    role: str
    phone: str
    department: Optional[str] = None
    salary: Optional[float] = None
    start_date: Optional[str] = None
    birth_date: Optional[str] = None
    age: Optional[int] = None

class Vendor(BaseModel):
    name: str = ""
    contact: str = ""
    score: Optional[float] = None

class StockCreate(BaseModel):
    product_name: str = Field(min_length=1)
    price: float
    quantity: float
    location: str = ""
    date_of_purchase: str = ""

class StockUpdate(BaseModel):
    product_name: str = Field(min_length=1)
    price: Any
    quantity: Any
    location: Optional[str] = None
    date_of_purchase: Optional[str] = None
    barcode: str = ""
    reorder_point: Optional[Any] = None
    asset_life_years: Optional[Any] = None
    residual_value: Optional[Any] = None
    vendor: Vendor = Field(default_factory=Vendor)
    last_audit_date: str = ""
    notes: str = ""

class Subtask(BaseModel):
    id: Optional[str] = None
    title: str
    completed: bool = False

class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    assignees: List[str] = Field(min_length=1)
    deadline: str = Field(min_length=1)
    subtasks: List[Subtask] = Field(default_factory=list)
    status: Literal["Todo", "In Progress", "Completed"] = "Todo"
    priority: Priority = "Medium"

class TaskUpdate(BaseModel):
    task_id: str
    updated_task: Optional[dict] = None
    subtask_id: Optional[str] = None
    subtask_status: Optional[bool] = None

class TaskDelete(BaseModel):
    task_id: str

class CommentCreate(BaseModel):
    task_id: str
    body: str

class ChatSend(BaseModel):
    to: str
    message: str

class NoteUpdate(BaseModel):
    content: str

class BusinessProfileUpdate(BaseModel):
    industry: Optional[str] = None
    focus_areas: List[str] = Field(default_factory=list)
    country: Optional[str] = None
    currency: Optional[str] = None
    locale: Optional[str] = None

class ContactMessage(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    message: str = Field(min_length=1)

# ---------- subscription ----------

class PlanSelect(BaseModel):
    plan_id: str

class PlanCapture(BaseModel):
    order_id: str
    plan_id: str

# ---------- automations ----------

class KpiTrigger(BaseModel):
    type: Literal["kpi"] = "kpi"
    metric_id: str
    comparator: Literal["above", "below", "equals"]
    threshold: float

class DateTrigger(BaseModel):
    type: Literal["date"] = "date"
    date_field: Literal["start_date", "birth_date"]
    offset_days: int = Field(default=0, ge=0)

Trigger = Annotated[Union[KpiTrigger, DateTrigger], Field(discriminator="type")]

class TaskTemplate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    deadline_offset_days: Optional[int] = None
    priority: Optional[Priority] = None

class EmailTemplate(BaseModel):
    subject: str = ""
    body: str = ""

class _ActionBase(BaseModel):
    title: Optional[str] = None
    message: Optional[str] = None
    email: Optional[EmailTemplate] = None

class AlertAction(_ActionBase):
    type: Literal["alert"] = "alert"

class TaskAction(_ActionBase):
    type: Literal["task"] = "task"
    task: TaskTemplate

class EmailAction(_ActionBase):
    type: Literal["email"] = "email"
    email: EmailTemplate

Action = Annotated[Union[AlertAction, TaskAction, EmailAction], Field(discriminator="type")]

class AutomationCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    trigger: Trigger
    action: Action
    visibility_roles: List[Role] = Field(default_factory=list)
    active: bool = True

class AutomationUpdate(BaseModel):
    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    trigger: Optional[Trigger] = None
    action: Optional[Action] = None
    visibility_roles: Optional[List[Role]] = None
    active: Optional[bool] = None

class AutomationDelete(BaseModel):
    id: int

class AutomationRun(BaseModel):
    automation_id: Optional[int] = None

class AlertAck(BaseModel):
    alert_id: Optional[int] = None
    mark_all: bool = False

# ---------- orders ----------

class OrderCreate(BaseModel):
    title: Optional[str] = None
    usage: Optional[str] = None
    description: Optional[str] = None
    details: Optional[str] = None
    color_mode: Optional[str] = None
    colors: Union[List[Any], str, None] = None
    attachments: Any = None

class OrderAction(BaseModel):
    action: str = ""
    note: Optional[str] = None
    decision: Optional[str] = None
    files: Any = None
    quote_amount: Union[float, str, None] = None
    payment_link: Optional[str] = None

class PaymentCreate(BaseModel):
    order_id: int

class PaymentCapture(BaseModel):
    order_id: int
    paypal_order_id: str
