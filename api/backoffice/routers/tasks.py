import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlmodel import Session, select

from ..auth import RequestContext, resolve_context
from ..calendar import build_calendar
from ..db import get_session
from ..models import TaskComment, User
from ..schemas import CommentCreate, TaskCreate, TaskDelete, TaskUpdate
from ..utils import clip_text, extract_mentions, new_id, utcnow
from ..webhooks import notify_chatops

logger = logging.getLogger(__name__)

router = APIRouter()

# fields a caller may not overwrite through updated_task
PROTECTED_TASK_FIELDS = {"id", "created_at"}


def _business_members(session: Session, ctx: RequestContext) -> list[User]:
    return session.exec(select(User).where(User.business == ctx.business).order_by(User.id)).all()


def _locate(session: Session, ctx: RequestContext, task_id: str):
    for member in _business_members(session, ctx):
        for index, task in enumerate(member.tasks or []):
            if task.get("id") == task_id:
                return member, index
    raise HTTPException(404, "Task not found")


def _can_edit(ctx: RequestContext, holder: User, task: dict) -> bool:
    return ctx.is_admin or holder.email == ctx.email or ctx.email in (task.get("assignees") or [])


@router.get("/tasks")
def list_tasks(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return [task for member in _business_members(session, ctx) for task in member.tasks or []]


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
def add_task(
    body: TaskCreate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    task = body.model_dump()
    task["subtasks"] = [dict(sub, id=sub.get("id") or new_id()) for sub in task["subtasks"]]
    task.update(
        id=new_id(),
        completed=body.status == "Completed",
        created_at=utcnow().isoformat(),
    )
    ctx.user.tasks = list(ctx.user.tasks or []) + [task]
    session.add(ctx.user)
    session.commit()
    return {"message": "Task added successfully", "task": task}


@router.put("/tasks")
def update_task(
    body: TaskUpdate,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    if body.updated_task is None and (not body.subtask_id or body.subtask_status is None):
        raise HTTPException(400, "Invalid data provided.")
    holder, index = _locate(session, ctx, body.task_id)
    tasks = [dict(t) for t in holder.tasks]
    task = tasks[index]
    if not _can_edit(ctx, holder, task):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not allowed")

    if body.subtask_id and body.subtask_status is not None:
        subtasks = [dict(s) for s in task.get("subtasks") or []]
        for sub in subtasks:
            if sub.get("id") == body.subtask_id:
                sub["completed"] = body.subtask_status
                break
        else:
            raise HTTPException(404, "Subtask not found")
        task["subtasks"] = subtasks
    else:
        changes = {k: v for k, v in body.updated_task.items() if k not in PROTECTED_TASK_FIELDS}
        task.update(changes)
        if "status" in changes:
            task["completed"] = changes["status"] == "Completed"

    holder.tasks = tasks
    session.add(holder)
    session.commit()
    return {"success": True, "task": task}


@router.delete("/tasks")
def delete_task(
    body: TaskDelete,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    holder, index = _locate(session, ctx, body.task_id)
    if not ctx.is_admin and holder.email != ctx.email:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not allowed")
    holder.tasks = [t for i, t in enumerate(holder.tasks) if i != index]
    session.add(holder)
    session.commit()
    return {"message": "Task deleted successfully"}


@router.get("/tasks/comments")
def list_comments(
    task_id: str,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    return session.exec(
        select(TaskComment)
        .where(TaskComment.business == ctx.business, TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at, TaskComment.id)
        .limit(200)
    ).all()


@router.post("/tasks/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    body: CommentCreate,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    text = clip_text(body.body, 4000)
    if not text:
        raise HTTPException(400, "Invalid payload")
    _locate(session, ctx, body.task_id)
    comment = TaskComment(
        business=ctx.business,
        task_id=body.task_id,
        body=text,
        mentions=extract_mentions(text),
        author={"email": ctx.email, "profilename": ctx.user.profilename, "role": ctx.role},
    )
    session.add(comment)
    session.commit()
    session.refresh(comment)
    if comment.mentions:
        mentioned = ", ".join(f"@{m}" for m in comment.mentions)
        who = ctx.user.profilename or ctx.email
        background.add_task(notify_chatops, f"{who} mentioned {mentioned} on task {body.task_id}: {text}")
    return comment


@router.get("/calendar.ics")
def calendar_feed(
    session: Session = Depends(get_session),
    ctx: RequestContext = Depends(resolve_context),
):
    tasks = [task for member in _business_members(session, ctx) for task in member.tasks or []]
    filename = f"{ctx.business or 'team'}-tasks.ics".replace('"', "")
    return Response(
        content=build_calendar(tasks),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
