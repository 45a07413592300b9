"""iCalendar feed of the tenant's task deadlines."""
from datetime import datetime
from typing import Iterable, Optional

from .utils import utcnow

PRODID = "-//Back Office//Tasks//EN"
CRLF = "\r\n"


def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _ics_date(value: str) -> Optional[str]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00")[:10])
    except (AttributeError, ValueError):
        return None
    return parsed.strftime("%Y%m%d")


def task_event(task: dict, stamp: str) -> Optional[str]:
    start = _ics_date(task.get("deadline") or "")
    if not start:
        return None
    return CRLF.join(
        [
            "BEGIN:VEVENT",
            f"UID:{task.get('id') or start}@backoffice",
            f"DTSTAMP:{stamp}",
            f"DTSTART;VALUE=DATE:{start}",
            f"SUMMARY:{_escape(task.get('title') or 'Task')}",
            f"DESCRIPTION:{_escape(task.get('description') or '')}",
            "END:VEVENT",
        ]
    )


def build_calendar(tasks: Iterable[dict], now: Optional[datetime] = None) -> str:
    stamp = (now or utcnow()).strftime("%Y%m%dT%H%M%SZ")
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", f"PRODID:{PRODID}"]
    for task in tasks:
        event = task_event(task, stamp)
        if event:
            lines.append(event)
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF
