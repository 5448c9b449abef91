# ABOUTME: Read-only gateway: same GET surface as api.main over the same database, opened read-only.
# ABOUTME: Non-GET requests to goals/tasks/focus/progress get 403 before any storage access.

import logging

import uvicorn

from api.main import create_app
from core.config import API_HOST, READ_ONLY_PORT

app = create_app(read_only=True)


def run() -> None:
    """Console entry point: serve the read-only gateway on READ_ONLY_PORT."""
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=API_HOST, port=READ_ONLY_PORT)
