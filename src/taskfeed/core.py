"""Core database operations for the incident workflow engine.

Single source of truth for all SQLite operations. The CLI and any embedding
application import from this module. No daemon, no sync -- just direct SQLite
with WAL mode.

Convention-based discovery: each facility project has a `.taskfeed/` directory
containing `taskfeed.db` (SQLite), `config.json` (prefix, facility, limits) and
optionally `templates/*.json` (project-local incident templates).
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from taskfeed.db_detail import DetailMixin
from taskfeed.db_events import EventsMixin
from taskfeed.db_links import LinksMixin
from taskfeed.db_posts import PostsMixin
from taskfeed.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from taskfeed.db_tasks import TasksMixin
from taskfeed.errors import StoreUnavailableError
from taskfeed.types.core import ProjectConfig

if TYPE_CHECKING:
    from taskfeed.templates import TemplateRegistry
    from taskfeed.types.events import EventRecord

logger = logging.getLogger(__name__)

Notifier = Callable[[list["EventRecord"]], None]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TASKFEED_DIR_NAME = ".taskfeed"
DB_FILENAME = "taskfeed.db"
CONFIG_FILENAME = "config.json"

DEFAULT_CONFIG = ProjectConfig(
    prefix="tf",
    version=1,
    facility="",
    busy_timeout_ms=5000,
    search_window=50,
    escalation_policy="reject",
)
VALID_ESCALATION_POLICIES: frozenset[str] = frozenset({"reject", "allow"})


def find_taskfeed_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .taskfeed/ directory.

    Returns the .taskfeed/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TASKFEED_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TASKFEED_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(taskfeed_dir: Path) -> ProjectConfig:
    """Read .taskfeed/config.json over the defaults. Returns defaults if missing or corrupt."""
    config = ProjectConfig(**DEFAULT_CONFIG)
    config_path = taskfeed_dir / CONFIG_FILENAME
    if not config_path.exists():
        return config
    try:
        loaded = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return config
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: expected a JSON object, got %s", config_path, type(loaded).__name__)
        return config
    config.update(loaded)  # type: ignore[typeddict-item]
    if config.get("escalation_policy") not in VALID_ESCALATION_POLICIES:
        logger.warning("Unknown escalation_policy '%s' in config, falling back to 'reject'", config.get("escalation_policy"))
        config["escalation_policy"] = "reject"
    return config


def write_config(taskfeed_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .taskfeed/config.json."""
    config_path = taskfeed_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Domain entities
# ---------------------------------------------------------------------------


@dataclass
class IncidentPost:
    id: str
    post_number: str
    template_id: str
    template_name: str
    created_by: str
    template_snapshot: dict[str, Any] = field(default_factory=dict)
    facility: str = ""
    location: str = ""
    production_line: str = ""
    form_data: dict[str, Any] = field(default_factory=dict)
    photo_url: str | None = None
    notes: str = ""
    status: str = "pending"
    total_departments: int = 0
    completed_departments: int = 0
    completion_rate: float = 0.0
    completed_at: str | None = None
    hold_status: str = "none"
    hold_cleared_at: str | None = None
    hold_reinstated_at: str | None = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "post_number": self.post_number,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "created_by": self.created_by,
            "facility": self.facility,
            "location": self.location,
            "production_line": self.production_line,
            "form_data": self.form_data,
            "photo_url": self.photo_url,
            "notes": self.notes,
            "status": self.status,
            "total_departments": self.total_departments,
            "completed_departments": self.completed_departments,
            "completion_rate": self.completion_rate,
            "completed_at": self.completed_at,
            "hold_status": self.hold_status,
            "hold_cleared_at": self.hold_cleared_at,
            "hold_reinstated_at": self.hold_reinstated_at,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class DepartmentTask:
    id: str
    post_id: str
    post_number: str
    department_code: str
    department_name: str
    status: str = "pending"
    requires_signoff: bool = False
    is_original: bool = True
    initiated_by: str | None = None
    escalated_from_department: str | None = None
    escalated_from_task_id: str | None = None
    escalation_reason: str | None = None
    escalated_at: str | None = None
    priority: str = "medium"
    started_by: str | None = None
    started_at: str | None = None
    completed_by: str | None = None
    completed_at: str | None = None
    completion_notes: str = ""
    signoff_by: str | None = None
    signoff_at: str | None = None
    signoff_notes: str = ""
    form_type: str | None = None
    form_response: dict[str, Any] = field(default_factory=dict)
    module_reference_type: str | None = None
    module_reference_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "post_number": self.post_number,
            "department_code": self.department_code,
            "department_name": self.department_name,
            "status": self.status,
            "requires_signoff": self.requires_signoff,
            "is_original": self.is_original,
            "initiated_by": self.initiated_by,
            "escalated_from_department": self.escalated_from_department,
            "escalated_from_task_id": self.escalated_from_task_id,
            "escalation_reason": self.escalation_reason,
            "escalated_at": self.escalated_at,
            "priority": self.priority,
            "started_by": self.started_by,
            "started_at": self.started_at,
            "completed_by": self.completed_by,
            "completed_at": self.completed_at,
            "completion_notes": self.completion_notes,
            "signoff_by": self.signoff_by,
            "signoff_at": self.signoff_at,
            "signoff_notes": self.signoff_notes,
            "form_type": self.form_type,
            "form_response": self.form_response,
            "module_reference_type": self.module_reference_type,
            "module_reference_id": self.module_reference_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class WorkOrder:
    id: str
    work_order_number: str
    title: str
    description: str = ""
    status: str = "open"
    priority: str = "medium"
    department: str = ""
    source_type: str | None = None
    source_id: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "work_order_number": self.work_order_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "department": self.department,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "created_at": self.created_at,
        }


@dataclass
class FormLink:
    form_type: str
    form_id: str
    post_id: str
    post_number: str
    linked_by: str = ""
    linked_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "form_type": self.form_type,
            "form_id": self.form_id,
            "post_id": self.post_id,
            "post_number": self.post_number,
            "linked_by": self.linked_by,
            "linked_at": self.linked_at,
        }


# ---------------------------------------------------------------------------
# TaskFeedDB
# ---------------------------------------------------------------------------


class TaskFeedDB(PostsMixin, TasksMixin, EventsMixin, DetailMixin, LinksMixin):
    """Direct SQLite operations for incident posts and their department tasks."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str | None = None,
        config: ProjectConfig | None = None,
        template_registry: TemplateRegistry | None = None,
        notifier: Notifier | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.config = ProjectConfig(**DEFAULT_CONFIG)
        if config:
            self.config.update(config)
        self.prefix = prefix or self.config.get("prefix", "tf")
        self.notifier = notifier
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._template_registry: TemplateRegistry | None = template_registry
        self._pending_events: list[EventRecord] = []

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, notifier: Notifier | None = None) -> TaskFeedDB:
        """Create a TaskFeedDB by discovering .taskfeed/ from project_path (or cwd)."""
        taskfeed_dir = find_taskfeed_root(project_path)
        config = read_config(taskfeed_dir)
        db = cls(taskfeed_dir / DB_FILENAME, config=config, notifier=notifier)
        db.initialize()
        return db

    def __enter__(self) -> TaskFeedDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute(f"PRAGMA busy_timeout={int(self.config.get('busy_timeout_ms', 5000))}")
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    @property
    def templates(self) -> TemplateRegistry:
        """Lazy-loaded TemplateRegistry -- created on first access.

        Loads built-ins plus ``templates/*.json`` next to the database file.
        Can be overridden via constructor injection for testing.
        """
        if self._template_registry is None:
            from taskfeed.templates import TemplateRegistry

            self._template_registry = TemplateRegistry()
            self._template_registry.load(self.db_path.parent)
        return self._template_registry

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            logger.warning(
                "Database %s has schema version %d, newer than this release (%d)",
                self.db_path,
                current_version,
                CURRENT_SCHEMA_VERSION,
            )
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self, table: str, infix: str = "") -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index.

        *table* is always a hardcoded literal at the call site (never user input).
        """
        sep = f"-{infix}-" if infix else "-"
        for _ in range(10):
            candidate = f"{self.prefix}{sep}{uuid.uuid4().hex[:10]}"
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}{sep}{uuid.uuid4().hex[:16]}"

    # -- Transactions --------------------------------------------------------

    @contextlib.contextmanager
    def _write_transaction(self, op: str, *, post_id: str | None = None) -> Iterator[None]:
        """Run the body in one ``BEGIN IMMEDIATE`` transaction.

        Takes SQLite's writer lock up front so the read-recompute-write cycle
        of a post is serialized against other writers. Events recorded inside
        the body are handed to the notifier only after a successful commit.
        """
        conn = self.conn
        self._pending_events = []
        started = time.monotonic()
        try:
            if not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            yield
            conn.commit()
        except sqlite3.OperationalError as exc:
            conn.rollback()
            self._pending_events = []
            if "locked" in str(exc) or "busy" in str(exc):
                logger.warning("Store busy during %s", op, extra={"op": op, "post_id": post_id, "error": str(exc)})
                raise StoreUnavailableError(f"Store unavailable during {op}: {exc}", post_id=post_id) from exc
            raise
        except Exception:
            conn.rollback()
            self._pending_events = []
            raise

        events, self._pending_events = self._pending_events, []
        logger.info(
            "%s committed",
            op,
            extra={"op": op, "post_id": post_id, "duration_ms": round((time.monotonic() - started) * 1000, 2)},
        )
        self._dispatch_events(events)
