# ABOUTME: /api routes shared by the read-write server and the read-only gateway.
# ABOUTME: Storage calls run in a worker thread under a watchdog; failures become ApiError (500/503/504/409).

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, Request
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from core.config import APP_NAME, APP_VERSION
from core.database import ConnectionProvider, ping
from core.errors import ApiError, StorageUnavailableError
from core.schemas import GoalCreateRequest, TaskCreateRequest
from core.telemetry import count_rows, log_query
from focus import queries

ENDPOINTS = [
    "/api/health",
    "/api/goals",
    "/api/tasks",
    "/api/focus/next-task",
    "/api/progress/summary",
]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _is_lock_timeout(exc: OperationalError) -> bool:
    return "database is locked" in str(exc.orig or exc).lower()


def _underlying(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc)


async def run_query(request: Request, route: str, query, *args):
    """Run query(session, *args) against the app's provider under the request watchdog.

    The watchdog only stops waiting; a query already handed to SQLite runs to
    completion in its thread.
    """
    provider: ConnectionProvider = request.app.state.provider
    timeout_ms = request.app.state.request_timeout_ms

    def _call():
        with provider.session() as session:
            return query(session, *args)

    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(_call), timeout=timeout_ms / 1000
        )
    except asyncio.TimeoutError:
        elapsed = _elapsed_ms(start)
        logging.error("%s: database query timeout after %sms", route, timeout_ms)
        _log_failure(route, elapsed, provider, "timeout")
        raise ApiError(
            504,
            "Database query timeout",
            "The database query took too long to execute",
            elapsed,
        )
    except StorageUnavailableError as e:
        elapsed = _elapsed_ms(start)
        logging.error("%s: failed to get database connection: %s", route, e)
        _log_failure(route, elapsed, provider, "connection_failed")
        raise ApiError(503, "Database connection failed", str(e), elapsed)
    except IntegrityError as e:
        elapsed = _elapsed_ms(start)
        logging.warning("%s: constraint violation: %s", route, _underlying(e))
        _log_failure(route, elapsed, provider, "constraint")
        raise ApiError(409, "Constraint violation", _underlying(e), elapsed)
    except OperationalError as e:
        elapsed = _elapsed_ms(start)
        if _is_lock_timeout(e):
            logging.error("%s: database lock timeout (%dms)", route, elapsed)
            _log_failure(route, elapsed, provider, "locked")
            raise ApiError(504, "Database lock timeout", _underlying(e), elapsed)
        logging.exception("%s failed (database error)", route)
        _log_failure(route, elapsed, provider, "query_failed")
        raise ApiError(500, "Database query failed", _underlying(e), elapsed)
    except SQLAlchemyError as e:
        elapsed = _elapsed_ms(start)
        logging.exception("%s failed (database error)", route)
        _log_failure(route, elapsed, provider, "query_failed")
        raise ApiError(500, "Database query failed", _underlying(e), elapsed)
    except Exception:
        elapsed = _elapsed_ms(start)
        logging.exception("%s failed unexpectedly", route)
        _log_failure(route, elapsed, provider, "unexpected")
        raise ApiError(500, "An unexpected error occurred", None, elapsed)

    log_query(
        route=route,
        latency_ms=_elapsed_ms(start),
        rows=count_rows(result),
        storage=provider.storage_kind,
        success=True,
    )
    return result


def _log_failure(route: str, elapsed: float, provider: ConnectionProvider, error: str):
    log_query(
        route=route,
        latency_ms=elapsed,
        rows=None,
        storage=provider.storage_kind,
        success=False,
        error=error,
    )


def build_router(read_only: bool = False) -> APIRouter:
    """Build the /api router. read_only=True leaves out every write route."""
    router = APIRouter(prefix="/api")
    mode = "read-only" if read_only else "read-write"

    @router.get("/goals")
    async def get_goals(request: Request):
        """All goals, most urgent first, newest first within a priority."""
        return await run_query(request, "GET /api/goals", queries.list_goals)

    @router.get("/tasks")
    async def get_tasks(
        request: Request,
        goal_id: Optional[int] = Query(None),
        status: Optional[str] = Query(None),
    ):
        """Tasks, optionally filtered by goal_id and/or status."""
        return await run_query(
            request, "GET /api/tasks", queries.list_tasks, goal_id, status or None
        )

    @router.get("/focus/next-task")
    async def get_next_task(request: Request):
        """The next pending task to work on, or a message when none is pending."""
        task = await run_query(request, "GET /api/focus/next-task", queries.next_task)
        return task if task is not None else dict(queries.NO_PENDING_TASKS)

    @router.get("/progress/summary")
    async def get_progress_summary(request: Request):
        return await run_query(
            request, "GET /api/progress/summary", queries.progress_summary
        )

    @router.get("/health")
    async def get_health(request: Request):
        """Always 200; status says whether storage is healthy or degraded."""
        provider: ConnectionProvider = request.app.state.provider
        timeout_ms = request.app.state.request_timeout_ms
        body = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
            "mode": mode,
            "app": "running",
        }

        def _call():
            with provider.session() as session:
                return ping(session)

        start = time.perf_counter()
        try:
            test = await asyncio.wait_for(
                asyncio.to_thread(_call), timeout=timeout_ms / 1000
            )
        except StorageUnavailableError as e:
            logging.warning("Health check: cannot connect to database: %s", e)
            body.update(
                status="degraded",
                database="connection_failed",
                error=str(e),
                message="App is running but cannot connect to database",
            )
            return body
        except asyncio.TimeoutError:
            logging.warning("Health check: database ping timed out")
            body.update(
                status="degraded",
                database="timeout",
                message="App is running but the database did not answer in time",
            )
            return body
        except Exception as e:
            logging.exception("Health check: database query failed")
            body.update(
                status="degraded",
                database="error",
                error=str(e),
                message="App is running but database has issues",
            )
            return body

        body.update(
            database="connected",
            storage=provider.storage_kind,
            database_path=provider.describe(),
            test=test,
            queryTime=f"{round(_elapsed_ms(start))}ms",
        )
        if provider.is_transient:
            body.update(
                status="degraded",
                message="Using in-memory database; data will be lost on restart",
            )
        return body

    @router.get("/test")
    async def get_test():
        """Describe the API without touching storage."""
        return {
            "message": f"{APP_NAME} API is working",
            "mode": mode,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": ENDPOINTS,
        }

    if read_only:
        return router

    @router.post("/goals")
    async def post_goals(req: GoalCreateRequest, request: Request):
        """Create a goal. Only title is required."""
        goal_id = await run_query(request, "POST /api/goals", queries.create_goal, req)
        logging.info("Created goal %s (%r)", goal_id, req.title)
        return {"id": goal_id, "message": "Goal created successfully"}

    @router.post("/tasks")
    async def post_tasks(req: TaskCreateRequest, request: Request):
        """Create a task, optionally under an existing goal."""
        task_id = await run_query(request, "POST /api/tasks", queries.create_task, req)
        logging.info("Created task %s (%r)", task_id, req.title)
        return {"id": task_id, "message": "Task created successfully"}

    return router
