# ABOUTME: Parameterized goal/task queries, focus selection and progress aggregation.
# ABOUTME: Every function takes an open Session; callers own connection handling and timeouts.

from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, distinct, func
from sqlmodel import Session, select

from core.config import DEFAULT_PRIORITY, DEFAULT_TASK_STATUS
from core.database import Goal, Task
from core.schemas import GoalCreateRequest, TaskCreateRequest

# Lower rank = more urgent. Anything else (including NULL) sorts last.
PRIORITY_RANKS = {"high": 1, "medium": 2, "low": 3}
UNRANKED = 4

NO_PENDING_TASKS = {"message": "No pending tasks found"}


def priority_rank(column):
    """SQL CASE expression mapping a priority label to its rank."""
    return case(PRIORITY_RANKS, value=column, else_=UNRANKED)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def goal_to_json(goal: Goal) -> dict:
    return {
        "id": goal.id,
        "title": goal.title,
        "description": goal.description,
        "category": goal.category,
        "target_date": _iso(goal.target_date),
        "priority": goal.priority,
        "progress": goal.progress,
        "created_at": _iso(goal.created_at),
        "updated_at": _iso(goal.updated_at),
    }


def task_to_json(task: Task) -> dict:
    return {
        "id": task.id,
        "goal_id": task.goal_id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "estimated_time": task.estimated_time,
        "actual_time": task.actual_time,
        "due_date": _iso(task.due_date),
        "completed_at": _iso(task.completed_at),
        "created_at": _iso(task.created_at),
    }


def list_goals(session: Session) -> list[dict]:
    """All goals, most urgent priority first, newest first within a priority."""
    stmt = select(Goal).order_by(
        priority_rank(Goal.priority), Goal.created_at.desc(), Goal.id.desc()
    )
    return [goal_to_json(g) for g in session.exec(stmt)]


def create_goal(session: Session, req: GoalCreateRequest) -> int:
    """Insert a goal, substituting defaults for omitted fields. Returns the new id."""
    goal = Goal(
        title=req.title,
        description=req.description,
        category=req.category,
        target_date=req.target_date,
        priority=req.priority or DEFAULT_PRIORITY,
    )
    session.add(goal)
    session.commit()
    session.refresh(goal)
    return goal.id


def list_tasks(
    session: Session, goal_id: Optional[int] = None, status: Optional[str] = None
) -> list[dict]:
    """Tasks filtered by goal and/or status, by priority then due date (undated last)."""
    stmt = select(Task)
    if goal_id is not None:
        stmt = stmt.where(Task.goal_id == goal_id)
    if status is not None:
        stmt = stmt.where(Task.status == status)
    stmt = stmt.order_by(
        priority_rank(Task.priority),
        Task.due_date.is_(None),
        Task.due_date.asc(),
        Task.id,
    )
    return [task_to_json(t) for t in session.exec(stmt)]


def create_task(session: Session, req: TaskCreateRequest) -> int:
    """Insert a task. An unknown goal_id fails on the foreign key constraint."""
    task = Task(
        goal_id=req.goal_id,
        title=req.title,
        description=req.description,
        status=req.status or DEFAULT_TASK_STATUS,
        priority=req.priority or DEFAULT_PRIORITY,
        estimated_time=req.estimated_time,
        due_date=req.due_date,
    )
    session.add(task)
    session.commit()
    session.refresh(task)
    return task.id


def next_task(session: Session) -> dict | None:
    """The single pending task to work on next, or None when nothing is pending.

    Ordered by the owning goal's priority rank, then the task's own rank,
    then due date (undated last). Tasks without a goal take the lowest goal
    rank through the outer join.
    """
    stmt = (
        select(Task, Goal.title, Goal.priority)
        .join(Goal, Task.goal_id == Goal.id, isouter=True)
        .where(Task.status == "pending")
        .order_by(
            priority_rank(Goal.priority),
            priority_rank(Task.priority),
            Task.due_date.is_(None),
            Task.due_date.asc(),
            Task.id,
        )
        .limit(1)
    )
    row = session.exec(stmt).first()
    if row is None:
        return None
    task, goal_title, goal_priority = row
    data = task_to_json(task)
    data["goal_title"] = goal_title
    data["goal_priority"] = goal_priority
    return data


def progress_summary(session: Session) -> dict:
    """Goal completion totals plus a task count per status.

    The two reads are independent; a task changing status between them is
    tolerated. average_progress is 0.0 when there are no goals.
    """
    summary_stmt = select(
        func.count(Goal.id),
        func.sum(case((Goal.progress == 100, 1), else_=0)),
        func.avg(Goal.progress),
        func.count(distinct(Goal.category)),
    )
    total, completed, average, categories = session.exec(summary_stmt).one()

    tasks_stmt = (
        select(Task.status, func.count(Task.id))
        .group_by(Task.status)
        .order_by(Task.status)
    )
    tasks = [{"status": s, "count": c} for s, c in session.exec(tasks_stmt)]

    return {
        "summary": {
            "total_goals": total,
            "completed_goals": completed or 0,
            "average_progress": round(average, 2) if average is not None else 0.0,
            "categories_count": categories,
        },
        "tasks": tasks,
    }
