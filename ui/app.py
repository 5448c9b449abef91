# ABOUTME: Streamlit dashboard: Focus tab (next task), Goals tab (list + new goal form) and Progress tab.
# ABOUTME: API URL configurable via API_URL env; works against the read-write API or the read-only gateway.

import os
from datetime import date, datetime

import requests
import streamlit as st

try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass

from core.config import PRIORITIES, TASK_STATUSES

API_URL = os.environ.get("API_URL", "http://localhost:3001")
GOAL_SUMMARY_MAX_CHARS = 80

_PRIORITY_BADGES = {"high": "🔴 High", "medium": "🟡 Medium", "low": "🟢 Low"}


def _priority_badge(priority: str | None) -> str:
    return _PRIORITY_BADGES.get(priority or "", "⚪ Unset")


def _format_date(value: str | None) -> str:
    """Render an ISO date or datetime as 'Feb 22, 2026'; empty string if missing or unparseable."""
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return value[:10] if len(value) >= 10 else ""
    return dt.strftime("%b %d, %Y")


def _goal_expander_label(goal: dict, max_chars: int = GOAL_SUMMARY_MAX_CHARS) -> str:
    """Build expander label: priority, truncated title, progress and target date."""
    text = (goal.get("title") or "").strip()
    summary = (text[:max_chars] + "…") if len(text) > max_chars else text
    parts = [_priority_badge(goal.get("priority")), summary, f"{goal.get('progress') or 0}%"]
    target = _format_date(goal.get("target_date"))
    if target:
        parts.append(f"Target {target}")
    return "  ·  ".join(parts)


def _status_counts(tasks: list[dict]) -> dict[str, int]:
    """Map every known task status to its count; statuses missing from the API are 0."""
    counts = {status: 0 for status in TASK_STATUSES}
    for row in tasks or []:
        status = row.get("status")
        if status:
            counts[status] = counts.get(status, 0) + int(row.get("count") or 0)
    return counts


def _is_focus_sentinel(data: dict) -> bool:
    """The next-task endpoint answers {message} instead of a task when nothing is pending."""
    return "id" not in data and "message" in data


def _safe_json(response: requests.Response):
    """Parse response body as JSON; return dict or empty dict on failure."""
    try:
        return response.json()
    except ValueError:
        return {}


def _error_message(response: requests.Response, default: str) -> str:
    body = _safe_json(response)
    if not isinstance(body, dict):
        return default
    return body.get("message") or body.get("error") or default


def _render_focus():
    try:
        r = requests.get(f"{API_URL}/api/focus/next-task", timeout=10)
    except requests.RequestException as e:
        st.error(f"Could not reach the API: {e}")
        return
    if r.status_code != 200:
        st.error(_error_message(r, "Could not load the next task."))
        return
    task = _safe_json(r)
    if _is_focus_sentinel(task):
        st.info("Nothing pending. Add a task to get a focus suggestion.")
        return
    with st.container(border=True):
        st.subheader(task.get("title", ""))
        if task.get("goal_title"):
            st.caption(f"Goal: {task['goal_title']} ({_priority_badge(task.get('goal_priority'))})")
        if task.get("description"):
            st.write(task["description"])
        cols = st.columns(3)
        cols[0].metric("Priority", _priority_badge(task.get("priority")))
        cols[1].metric("Estimate", f"{task['estimated_time']} min" if task.get("estimated_time") else "–")
        cols[2].metric("Due", _format_date(task.get("due_date")) or "–")


def _render_new_goal_form():
    with st.form("new_goal_form", clear_on_submit=True):
        title = st.text_input("Title")
        description = st.text_area("Description", height=80)
        category = st.text_input("Category")
        priority = st.selectbox("Priority", PRIORITIES, index=PRIORITIES.index("medium"))
        has_target = st.checkbox("Set a target date")
        target_date = st.date_input("Target date", value=date.today())
        if not st.form_submit_button("Create goal"):
            return
        if not (title and title.strip()):
            st.error("Please enter a title.")
            return
        payload = {
            "title": title.strip(),
            "description": description.strip() or None,
            "category": category.strip() or None,
            "priority": priority,
            "target_date": target_date.isoformat() if has_target else None,
        }
        try:
            r = requests.post(f"{API_URL}/api/goals", json=payload, timeout=10)
        except requests.RequestException as e:
            st.error(f"Could not reach the API: {e}")
            return
        if r.status_code == 200:
            st.success("Goal created.")
            st.rerun()
        elif r.status_code == 403:
            st.warning(_error_message(r, "This dashboard is read-only."))
        else:
            st.error(f"Save failed: {r.status_code} – {_error_message(r, 'Save failed.')}")


def _render_goals():
    try:
        r = requests.get(f"{API_URL}/api/goals", timeout=10)
    except requests.RequestException as e:
        st.error(f"Could not load goals. Try again. Error: {e}")
        return
    if r.status_code != 200:
        st.error(_error_message(r, "Could not load goals. Try again."))
        return
    goals = _safe_json(r) or []
    if not goals:
        st.info("No goals yet. Create one below.")
    for g in goals:
        with st.expander(_goal_expander_label(g), expanded=False):
            if g.get("description"):
                st.write(g["description"])
            if g.get("category"):
                st.caption(f"Category: {g['category']}")
            st.progress(min(max(int(g.get("progress") or 0), 0), 100) / 100)
            created = _format_date(g.get("created_at"))
            if created:
                st.caption(f"Created on {created}")
    st.divider()
    _render_new_goal_form()


def _render_progress():
    try:
        r = requests.get(f"{API_URL}/api/progress/summary", timeout=10)
    except requests.RequestException as e:
        st.error(f"Could not reach the API: {e}")
        return
    if r.status_code != 200:
        st.error(_error_message(r, "Could not load progress."))
        return
    data = _safe_json(r)
    summary = data.get("summary", {})
    cols = st.columns(4)
    cols[0].metric("Goals", summary.get("total_goals", 0))
    cols[1].metric("Completed", summary.get("completed_goals", 0))
    cols[2].metric("Average progress", f"{summary.get('average_progress') or 0:.0f}%")
    cols[3].metric("Categories", summary.get("categories_count", 0))
    st.subheader("Tasks by status")
    st.bar_chart({"count": _status_counts(data.get("tasks", []))})


def main():
    st.title("Nexus")
    st.write("Goals, the next task to focus on, and how far along you are.")

    try:
        health = _safe_json(requests.get(f"{API_URL}/api/health", timeout=5))
    except requests.RequestException:
        health = {}
    if health.get("status") == "degraded":
        st.warning(health.get("message", "Storage is degraded."))
    if health.get("mode") == "read-only":
        st.sidebar.info("Read-only viewer")

    tab_focus, tab_goals, tab_progress = st.tabs(["Focus", "Goals", "Progress"])
    with tab_focus:
        _render_focus()
    with tab_goals:
        _render_goals()
    with tab_progress:
        _render_progress()


if __name__ == "__main__":
    main()
