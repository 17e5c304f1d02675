"""
Task service — task lifecycle, assignment and project rollups.

Rollup counters on ``projects`` (``total_tasks``, ``completed_tasks``) are
adjusted with in-database arithmetic in the same transaction as the task
write, so concurrent writers never lose an increment. ``recount_project_tasks``
is the full-scan reference they must always agree with.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone

import sqlalchemy as sa

from workhub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.project import Project
from workhub.models.task import TASK_PRIORITIES, TASK_STATUSES, Task, inclusive_duration_days
from workhub.models.user import User
from workhub.services import permission_service as perms
from workhub.services import project_service
from workhub.services.notification import NotificationService
from workhub.services.permission_service import Capability
from workhub.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────


def get_task_or_404(task_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if task is None or not task.is_active:
        raise NotFoundError("Task", task_id)
    if task.project is None or not task.project.is_active:
        raise NotFoundError("Task", task_id)
    return task


def _bump_counters(project_id: int, total: int = 0, completed: int = 0) -> None:
    values = {}
    if total:
        values[Project.total_tasks] = Project.total_tasks + total
    if completed:
        values[Project.completed_tasks] = Project.completed_tasks + completed
    if values:
        Project.query.filter(Project.id == project_id).update(values, synchronize_session=False)


def _validate_dates(start_date, due_date) -> None:
    if start_date is None:
        raise ValidationError("Start date is required", details={"start_date": "required"})
    if due_date is None:
        raise ValidationError("Due date is required", details={"due_date": "required"})
    if start_date > due_date:
        raise ValidationError("Start date cannot be after due date",
                              details={"start_date": "after due_date"})


def _validate_choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"Invalid {field}. Must be one of: {list(allowed)}", details={field: value})
    return value


def _category_role_of(project: Project, category: str, user_id: int) -> str | None:
    cat = project.get_category(category)
    return cat.member_role(user_id) if cat else None


def _check_assignee(project: Project, category: str, resolved, assignee_id: int) -> User:
    """Assignee must be a project member; leads may only assign within their category."""
    assignee = db.session.get(User, assignee_id)
    if assignee is None or not assignee.is_active:
        raise NotFoundError("Assignee", assignee_id)
    if assignee_id not in project_service.project_member_ids(project):
        raise ValidationError("Assignee is not a member of this project",
                              details={"assignee_id": assignee_id})
    if not perms.can_assign_task(resolved, _category_role_of(project, category, assignee_id)):
        raise ForbiddenError("You can only assign tasks to members of your category",
                             capability="assign_task")
    return assignee


def _authorize_modify(task: Task, user_id: int):
    project = task.project
    resolved = perms.resolve_for_project(user_id, project, task.category)
    perms.ensure(resolved, Capability.VIEW)
    if not perms.can_modify_task(resolved, task):
        raise ForbiddenError("You do not have permission to modify this task",
                             capability="modify_task")
    return resolved


def _notify_others(type_, task: Task, actor_id: int, title: str, message: str, recipients) -> None:
    NotificationService.emit_many(
        type_,
        [rid for rid in recipients if rid is not None and rid != actor_id],
        title=title,
        message=message,
        sender_id=actor_id,
        data={"task_id": task.id},
    )


# ── Create ───────────────────────────────────────────────────────────────


def create_task(project_id: int, user_id: int, data: dict) -> Task:
    """Create a task in ``data["category"]`` of the project.

    Validation happens before any write; on error nothing is persisted.
    """
    project = project_service.get_project_or_404(project_id)

    category = (data.get("category") or "").strip()
    if project.get_category(category) is None:
        raise ValidationError(f"Category {category!r} does not exist on this project",
                              details={"category": category})

    start_date = parse_date_input(data.get("start_date"), "start_date")
    due_date = parse_date_input(data.get("due_date"), "due_date")
    _validate_dates(start_date, due_date)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Task title is required", details={"title": "required"})
    status = _validate_choice(data.get("status") or "to-do", TASK_STATUSES, "status")
    priority = _validate_choice(data.get("priority") or "medium", TASK_PRIORITIES, "priority")

    resolved = perms.authorize(user_id, Capability.CREATE_TASK, project.workspace_id, project.id, category)
    project_service.ensure_project_writable(project)

    assignee_id = data.get("assignee_id")
    if assignee_id is None:
        raise ValidationError("Assignee is required", details={"assignee_id": "required"})
    _check_assignee(project, category, resolved, assignee_id)

    task = Task(
        project_id=project.id,
        category=category,
        title=title,
        description=(data.get("description") or "").strip(),
        status=status,
        priority=priority,
        assignee_id=assignee_id,
        created_by=user_id,
        start_date=start_date,
        due_date=due_date,
        duration_days=inclusive_duration_days(start_date, due_date),
        completed_at=datetime.now(timezone.utc) if status == "done" else None,
    )
    db.session.add(task)
    db.session.flush()
    _bump_counters(project.id, total=1, completed=1 if status == "done" else 0)

    if assignee_id != user_id:
        NotificationService.emit(
            "task_assigned", assignee_id,
            title="New Task Assigned",
            message=f'You\'ve been assigned a new task: "{title}"',
            sender_id=user_id,
            data={"task_id": task.id},
        )
    db.session.commit()
    logger.info("Task created id=%s project=%s category=%r", task.id, project.id, category)
    return task


# ── Read ─────────────────────────────────────────────────────────────────


def get_task(task_id: int, user_id: int) -> Task:
    task = get_task_or_404(task_id)
    perms.authorize(user_id, Capability.VIEW, task.project.workspace_id, task.project_id, task.category)
    return task


def list_project_tasks(project_id: int, user_id: int, filters: dict | None = None) -> list[dict]:
    """Workspace admins see every task; others see their categories' tasks and their own."""
    project = project_service.get_project_or_404(project_id)
    resolved = perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id)
    filters = filters or {}

    q = Task.query.filter_by(project_id=project.id, is_active=True)
    if not resolved.is_workspace_admin and project.created_by != user_id:
        own_categories = list(perms.category_roles_in_project(user_id, project.id))
        q = q.filter(sa.or_(
            Task.category.in_(own_categories),
            Task.assignee_id == user_id,
            Task.created_by == user_id,
        ))
    if filters.get("status"):
        q = q.filter(Task.status == filters["status"])
    if filters.get("category"):
        q = q.filter(Task.category == filters["category"])
    if filters.get("assignee_id"):
        q = q.filter(Task.assignee_id == filters["assignee_id"])
    return [t.to_dict() for t in q.order_by(Task.due_date, Task.id).all()]


def list_user_project_tasks(project_id: int, user_id: int) -> list[dict]:
    project = project_service.get_project_or_404(project_id)
    perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id)
    tasks = (
        Task.query
        .filter_by(project_id=project.id, assignee_id=user_id, is_active=True)
        .order_by(Task.due_date, Task.id)
        .all()
    )
    return [t.to_dict() for t in tasks]


def get_assignable_members(project_id: int, user_id: int, category: str | None = None) -> list[dict]:
    """Members the caller may assign tasks to, optionally narrowed to one category."""
    project = project_service.get_project_or_404(project_id)
    resolved = perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id, category)

    if resolved.is_workspace_admin:
        categories = [project.get_category(category)] if category else list(project.categories)
    else:
        own = perms.category_roles_in_project(user_id, project.id)
        lead_of = {name for name, role in own.items() if role == "lead"}
        if category:
            lead_of &= {category}
        if not lead_of:
            raise ForbiddenError("Only category leads can assign tasks", capability="assign_task")
        categories = [c for c in project.categories if c.name in lead_of]

    members = {}
    for cat in categories:
        if cat is None:
            continue
        for m in cat.members:
            if m.user_id not in members:
                members[m.user_id] = {
                    "id": m.user_id,
                    "name": m.user.name if m.user else None,
                    "email": m.user.email if m.user else None,
                    "category": cat.name,
                    "role": m.role,
                }
    return list(members.values())


# ── Update ───────────────────────────────────────────────────────────────


def update_task(task_id: int, user_id: int, data: dict) -> Task:
    task = get_task_or_404(task_id)
    resolved = _authorize_modify(task, user_id)
    project = task.project
    project_service.ensure_project_writable(project)

    if "status" in data:
        raise ValidationError("Use the status endpoint to change task status",
                              details={"status": "read-only here"})

    category_changed = False
    if "category" in data and data["category"] != task.category:
        new_category = (data.get("category") or "").strip()
        if project.get_category(new_category) is None:
            raise ValidationError(f"Category {new_category!r} does not exist on this project",
                                  details={"category": new_category})
        resolved = perms.authorize(user_id, Capability.CREATE_TASK,
                                   project.workspace_id, project.id, new_category)
        task.category = new_category
        category_changed = True

    start_date = task.start_date
    due_date = task.due_date
    if "start_date" in data:
        start_date = parse_date_input(data.get("start_date"), "start_date")
    if "due_date" in data:
        due_date = parse_date_input(data.get("due_date"), "due_date")
    _validate_dates(start_date, due_date)
    task.start_date = start_date
    task.due_date = due_date
    task.duration_days = inclusive_duration_days(start_date, due_date)

    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Task title is required", details={"title": "required"})
        task.title = title
    if "description" in data:
        task.description = (data.get("description") or "").strip()
    if "priority" in data:
        task.priority = _validate_choice(data["priority"], TASK_PRIORITIES, "priority")

    reassigned_to = None
    assignee_id = data.get("assignee_id", task.assignee_id)
    if category_changed or assignee_id != task.assignee_id:
        if assignee_id is None:
            raise ValidationError("Assignee is required", details={"assignee_id": "required"})
        _check_assignee(project, task.category, resolved, assignee_id)
        if assignee_id != task.assignee_id:
            reassigned_to = assignee_id
            task.assignee_id = assignee_id

    if reassigned_to is not None and reassigned_to != user_id:
        NotificationService.emit(
            "task_assigned", reassigned_to,
            title="Task Assigned",
            message=f'You\'ve been assigned the task: "{task.title}"',
            sender_id=user_id,
            data={"task_id": task.id},
        )
    else:
        _notify_others("task_updated", task, user_id, "Task Updated",
                       f'The task "{task.title}" was updated.', [task.assignee_id])
    db.session.commit()
    logger.info("Task updated id=%s by=%s", task_id, user_id)
    return task


def update_task_status(task_id: int, user_id: int, status: str) -> Task:
    """Change status; ``completed_at`` and ``completed_tasks`` follow ``done``."""
    task = get_task_or_404(task_id)
    _authorize_modify(task, user_id)
    project_service.ensure_project_writable(task.project)
    status = _validate_choice(status, TASK_STATUSES, "status")
    old_status = task.status
    if status == old_status:
        return task

    task.status = status
    if status == "done":
        task.completed_at = datetime.now(timezone.utc)
        _bump_counters(task.project_id, completed=1)
    elif old_status == "done":
        task.completed_at = None
        _bump_counters(task.project_id, completed=-1)

    _notify_others("task_updated", task, user_id, "Task Status Updated",
                   f'"{task.title}" moved from {old_status} to {status}.',
                   [task.assignee_id, task.created_by])
    db.session.commit()
    logger.info("Task %s status %s -> %s by=%s", task_id, old_status, status, user_id)
    return task


def update_handover_notes(task_id: int, user_id: int, notes: str) -> Task:
    task = get_task_or_404(task_id)
    _authorize_modify(task, user_id)
    project_service.ensure_project_writable(task.project)
    notes = notes or ""
    if len(notes) > 5000:
        raise ValidationError("Handover notes must be <= 5000 chars", details={"handover_notes": "too long"})
    task.handover_notes = notes
    db.session.commit()
    return task


def delete_task(task_id: int, user_id: int) -> None:
    """Soft delete; the task leaves the live set and the rollups."""
    task = get_task_or_404(task_id)
    _authorize_modify(task, user_id)
    project_service.ensure_project_writable(task.project)
    task.is_active = False
    _bump_counters(task.project_id, total=-1, completed=-1 if task.status == "done" else 0)
    _notify_others("task_deleted", task, user_id, "Task Deleted",
                   f'The task "{task.title}" was deleted.', [task.assignee_id])
    db.session.commit()
    logger.info("Task soft-deleted id=%s by=%s", task_id, user_id)


# ── Rollups ──────────────────────────────────────────────────────────────


def recount_project_tasks(project_id: int) -> tuple[int, int]:
    """Full scan of the live task set: (total, completed)."""
    total, completed = db.session.query(
        sa.func.count(Task.id),
        sa.func.coalesce(sa.func.sum(sa.case((Task.status == "done", 1), else_=0)), 0),
    ).filter(Task.project_id == project_id, Task.is_active.is_(True)).one()
    return int(total), int(completed)


def rebuild_task_counters(project_id: int | None = None) -> int:
    """Overwrite rollups from a recount; returns the number of projects fixed."""
    q = Project.query
    if project_id is not None:
        q = q.filter(Project.id == project_id)
    fixed = 0
    for project in q.all():
        total, completed = recount_project_tasks(project.id)
        if (project.total_tasks, project.completed_tasks) != (total, completed):
            logger.warning("Rollup drift project=%s stored=(%s,%s) actual=(%s,%s)",
                           project.id, project.total_tasks, project.completed_tasks, total, completed)
            project.total_tasks = total
            project.completed_tasks = completed
            fixed += 1
    db.session.commit()
    return fixed


def verify_task_counters(project_id: int) -> bool:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    db.session.refresh(project)
    return (project.total_tasks, project.completed_tasks) == recount_project_tasks(project_id)


def project_task_summary(project_id: int, user_id: int, today: date | None = None) -> dict:
    """Per-category and per-priority breakdown of the live task set."""
    project = project_service.get_project_or_404(project_id)
    perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id)
    today = today or date.today()

    tasks = Task.query.filter_by(project_id=project.id, is_active=True).all()
    by_category = {
        c.name: {"category": c.name, "status": c.status, "total": 0, "to-do": 0,
                 "in-progress": 0, "done": 0, "overdue": 0}
        for c in project.categories
    }
    by_priority = defaultdict(int)
    overdue = 0
    for t in tasks:
        row = by_category.setdefault(
            t.category,
            {"category": t.category, "status": None, "total": 0, "to-do": 0,
             "in-progress": 0, "done": 0, "overdue": 0},
        )
        row["total"] += 1
        row[t.status] += 1
        by_priority[t.priority] += 1
        if t.status != "done" and t.due_date < today:
            row["overdue"] += 1
            overdue += 1

    total = len(tasks)
    done = sum(1 for t in tasks if t.status == "done")
    return {
        "project_id": project.id,
        "status": project.status,
        "progress": project.progress,
        "total_tasks": total,
        "completed_tasks": done,
        "completion_rate": round(done * 100 / total, 1) if total else 0.0,
        "overdue_tasks": overdue,
        "by_category": list(by_category.values()),
        "by_priority": {p: by_priority.get(p, 0) for p in TASK_PRIORITIES},
    }

