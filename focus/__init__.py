# ABOUTME: Goal/task queries shared by the read-write API and the read-only gateway.
# ABOUTME: Use next_task() for focus selection and progress_summary() for the dashboard totals.

from focus.queries import (
    create_goal,
    create_task,
    list_goals,
    list_tasks,
    next_task,
    progress_summary,
)

__all__ = [
    "create_goal",
    "create_task",
    "list_goals",
    "list_tasks",
    "next_task",
    "progress_summary",
]
