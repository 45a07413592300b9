import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CORS_ORIGINS, LOG_LEVEL
from .db import build_engine, init_db
from .errors import BackofficeError
from .routers import accounts, auth, automations, business, chat, contact, notes, orders, personal, stocks, subscription, tasks

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Back Office API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine()
    init_db(app.state.engine)


@app.on_event("shutdown")
def on_shutdown():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        engine.dispose()


@app.exception_handler(BackofficeError)
def backoffice_error(request: Request, exc: BackofficeError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(accounts.router, prefix="/api/accounts", tags=["accounts"])
app.include_router(personal.router, prefix="/api/personal", tags=["personal"])
app.include_router(stocks.router, prefix="/api/stocks", tags=["stocks"])
app.include_router(tasks.router, prefix="/api", tags=["tasks"])  # /tasks, /tasks/comments, /calendar.ics
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(notes.router, prefix="/api/notes", tags=["notes"])
app.include_router(business.router, prefix="/api/business", tags=["business"])
app.include_router(contact.router, prefix="/api/contact", tags=["contact"])
app.include_router(subscription.router, prefix="/api/subscription", tags=["subscription"])
app.include_router(automations.router, prefix="/api/automations", tags=["automations"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])


@app.get("/")
def root():
    return {"ok": True, "service": "backoffice-api"}
