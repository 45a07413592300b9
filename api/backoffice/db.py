
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL

logger = logging.getLogger(__name__)


def build_engine(url: Optional[str] = None) -> Engine:
    url = url or DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)


def init_db(engine: Engine):
    from .models import (  # noqa: F401
        User,
        Automation,
        AutomationAlert,
        Order,
        ChatMessage,
        TaskComment,
        WorkspaceNote,
        BusinessProfile,
    )
    SQLModel.metadata.create_all(engine)
    logger.info("database ready at %s", engine.url.render_as_string(hide_password=True))


def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session
