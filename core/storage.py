# ABOUTME: Storage locator: picks the SQLite file location once at startup.
# ABOUTME: First candidate with a writable parent wins; otherwise the transient in-memory sentinel.

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from core import config


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage location. path=None means the transient in-memory store."""

    path: Optional[Path]
    label: str

    @property
    def is_transient(self) -> bool:
        return self.path is None

    def describe(self) -> str:
        return ":memory:" if self.path is None else str(self.path)


TRANSIENT = StorageTarget(path=None, label="in-memory")

TRANSIENT_WARNING = (
    "All file-based locations failed, using in-memory database. "
    "Data will be lost on restart."
)
NO_READ_ONLY_FILE_WARNING = (
    "No database file found for the read-only gateway; "
    "data routes will answer 503 until one exists."
)


def parent_is_writable(path: Path) -> bool:
    """Create the parent directory if missing and report whether it is writable."""
    directory = path.parent
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logging.warning("Cannot create %s: %s", directory, e)
        return False
    return os.access(directory, os.W_OK)


def resolve_storage_target(
    candidates: Iterable[tuple[str, Path]],
    override: str | Path | None = None,
    probe: Callable[[Path], bool] = parent_is_writable,
    exhausted_message: str = TRANSIENT_WARNING,
) -> StorageTarget:
    """Return the first usable candidate, the override if given, or TRANSIENT.

    `probe` decides whether a candidate file path is usable. Any error it
    raises only eliminates that candidate.
    """
    if override:
        logging.info("Using DATABASE_PATH from environment: %s", override)
        return StorageTarget(path=Path(override), label="override")

    for label, path in candidates:
        path = Path(path)
        try:
            usable = probe(path)
        except OSError as e:
            logging.warning("Cannot use %s (%s): %s", label, path, e)
            continue
        if usable:
            logging.info("Using %s path: %s", label, path)
            return StorageTarget(path=path, label=label)
        logging.warning("Skipping %s (%s): not usable", label, path)

    logging.warning(exhausted_message)
    return TRANSIENT


def resolve_default_target() -> StorageTarget:
    """Resolve the read-write target from configuration."""
    return resolve_storage_target(config.STORAGE_CANDIDATES, config.DATABASE_PATH)


def resolve_read_only_target() -> StorageTarget:
    """Resolve the target the read-only gateway should open: an existing database file."""
    return resolve_storage_target(
        config.STORAGE_CANDIDATES,
        config.DATABASE_PATH,
        probe=Path.is_file,
        exhausted_message=NO_READ_ONLY_FILE_WARNING,
    )
