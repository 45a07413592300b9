from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class Industry:
    id: str
    name: str
    tagline: str
    recommended_modules: Tuple[str, ...]
    description: str


INDUSTRIES: Tuple[Industry, ...] = (
    Industry(
        id="retail",
        name="Retail / Storefront",
        tagline="Track inventory turns, staff tasks, and recurring vendors.",
        recommended_modules=("stocks", "tasks", "automations"),
        description="Restock alerts, vendor scorecards and daily task boards keep stores on track.",
    ),
    Industry(
        id="ecommerce",
        name="E-commerce",
        tagline="Stay on top of fulfillment and customer follow-ups.",
        recommended_modules=("automations", "tasks", "chat"),
        description="Automations raise alerts, chat carries escalations and shared tasks hold launch calendars.",
    ),
    Industry(
        id="it",
        name="IT / Software",
        tagline="Coordinate sprints, incidents and proactive ops.",
        recommended_modules=("tasks", "notes", "chat"),
        description="Plan sprints on the task board and keep runbooks in the shared notebook.",
    ),
    Industry(
        id="finance",
        name="Finance / Professional Services",
        tagline="Standardize client workflows and automate reminders.",
        recommended_modules=("automations", "notes", "tasks"),
        description="Document client playbooks and automate renewal nudges.",
    ),
    Industry(
        id="manufacturing",
        name="Manufacturing / Ops",
        tagline="Digitize floor checks, asset tracking and alerts.",
        recommended_modules=("stocks", "tasks", "automations"),
        description="Barcoded asset tracking next to compliance tasks and maintenance alerts.",
    ),
    Industry(
        id="healthcare",
        name="Healthcare / Wellness",
        tagline="Centralize procedures, assignments and compliance deadlines.",
        recommended_modules=("notes", "tasks", "chat"),
        description="SOP libraries, shared calendars and fast chat escalations.",
    ),
    Industry(
        id="general",
        name="General business",
        tagline="A flexible hub for automations, tasks and BI.",
        recommended_modules=("tasks", "automations", "notes"),
        description="Mix and match modules for HR, ops or leadership workflows.",
    ),
)

INDUSTRIES_BY_ID: Mapping[str, Industry] = {industry.id: industry for industry in INDUSTRIES}


def get_industry(industry_id: Optional[str]) -> Optional[Industry]:
    return INDUSTRIES_BY_ID.get(industry_id or "")


def serialize_industry(industry: Industry) -> dict:
    return {
        "id": industry.id,
        "name": industry.name,
        "tagline": industry.tagline,
        "recommended_modules": list(industry.recommended_modules),
        "description": industry.description,
    }
