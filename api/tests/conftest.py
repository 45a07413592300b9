import os
from datetime import timedelta
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine, select

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from backoffice.main import app  # noqa: E402
from backoffice.db import get_session  # noqa: E402
from backoffice.models import User  # noqa: E402
from backoffice.utils import utcnow  # noqa: E402
from backoffice import email as email_module  # noqa: E402
from backoffice import paypal as paypal_module  # noqa: E402
from backoffice import webhooks as webhooks_module  # noqa: E402
from backoffice.routers import tasks as tasks_router  # noqa: E402

PASSWORD = "s3cret-pass"


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def db(test_engine, setup_db):
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def sent_emails(monkeypatch) -> List[dict]:
    messages = []

    def fake_send_email(to, subject, body, html_body=None, sender_name=None, reply_to=None):
        messages.append({"to": list(to) if not isinstance(to, str) else [to], "subject": subject, "body": body})
        return True

    monkeypatch.setattr(email_module, "send_email", fake_send_email)
    return messages


class FakePayPal:
    def __init__(self):
        self.created: List[dict] = []
        self.captured: List[str] = []
        self.capture_status = "COMPLETED"
        self.fail = False

    def create_order(self, amount, description, custom_id, currency="USD"):
        if self.fail:
            raise paypal_module.PaymentProviderError("Payment provider is unreachable")
        order_id = f"PAYPAL-{len(self.created) + 1}"
        self.created.append({"id": order_id, "amount": amount, "description": description, "custom_id": custom_id})
        return {"id": order_id, "status": "CREATED"}

    def capture_order(self, paypal_order_id):
        if self.fail:
            raise paypal_module.PaymentProviderError("Payment provider is unreachable")
        self.captured.append(paypal_order_id)
        return {"id": paypal_order_id, "status": self.capture_status}


@pytest.fixture
def fake_paypal(monkeypatch) -> FakePayPal:
    fake = FakePayPal()
    monkeypatch.setattr(paypal_module, "create_order", fake.create_order)
    monkeypatch.setattr(paypal_module, "capture_order", fake.capture_order)
    return fake


@pytest.fixture
def chatops(monkeypatch) -> List[str]:
    posted = []

    def fake_notify(message, urls=None):
        posted.append(message)
        return 1

    monkeypatch.setattr(tasks_router, "notify_chatops", fake_notify)
    return posted


@pytest.fixture
def discord(monkeypatch) -> Dict[str, list]:
    state = {"embeds": []}

    def fake_post(embed, url=None):
        state["embeds"].append(embed)
        return True

    monkeypatch.setattr(webhooks_module, "DISCORD_WEBHOOK_URL", "https://discord.test/webhook")
    monkeypatch.setattr(webhooks_module, "post_discord_embed", fake_post)
    return state


@pytest.fixture
def client(test_engine, setup_db, sent_emails, fake_paypal, chatops):
    app.state.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------- helpers ----------

def register(client, email="owner@acme.test", business="Acme", profilename="Olive Owner"):
    resp = client.post(
        "/api/auth/register",
        json={"email": email, "password": PASSWORD, "business": business, "profilename": profilename},
    )
    assert resp.status_code == 201, resp.text
    return login(client, email)


def login(client, email, password=PASSWORD):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    # the cookie jar would make every later request act as this user
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def add_member(client, admin_headers, email, role="Guest", password=PASSWORD):
    resp = client.post(
        "/api/accounts",
        json={"email": email, "role": role, "password": password},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return login(client, email)


def set_plan(engine, business, plan_id="pro", status="active", trial_days=None):
    """Gives the business Admin a subscription directly in the database."""
    with Session(engine) as session:
        owner = session.exec(select(User).where(User.business == business, User.role == "Admin")).first()
        subscription = {"plan_id": plan_id, "status": status, "trial_used": True}
        if trial_days is not None:
            subscription["trial_ends_at"] = (utcnow() + timedelta(days=trial_days)).isoformat()
        owner.subscription = subscription
        session.add(owner)
        session.commit()
