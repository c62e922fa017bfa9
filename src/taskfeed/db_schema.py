"""Database schema definitions for the taskfeed incident engine.

Contains the canonical SQL schema and the current schema version constant.
``task_verifications`` and ``work_orders`` belong to neighbouring modules of
the facility app; they are declared here so a standalone database has them,
but the engine only reads from them.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS posts (
    id                     TEXT PRIMARY KEY,
    post_number            TEXT NOT NULL UNIQUE,
    template_id            TEXT NOT NULL,
    template_name          TEXT NOT NULL,
    template_snapshot      TEXT NOT NULL DEFAULT '{}',
    created_by             TEXT NOT NULL,
    facility               TEXT DEFAULT '',
    location               TEXT DEFAULT '',
    production_line        TEXT DEFAULT '',
    form_data              TEXT DEFAULT '{}',
    photo_url              TEXT,
    notes                  TEXT DEFAULT '',
    status                 TEXT NOT NULL DEFAULT 'pending',
    total_departments      INTEGER NOT NULL DEFAULT 0,
    completed_departments  INTEGER NOT NULL DEFAULT 0,
    completion_rate        REAL NOT NULL DEFAULT 0,
    completed_at           TEXT,
    hold_status            TEXT NOT NULL DEFAULT 'none',
    hold_cleared_at        TEXT,
    hold_reinstated_at     TEXT,
    version                INTEGER NOT NULL DEFAULT 1,
    created_at             TEXT NOT NULL,
    updated_at             TEXT NOT NULL,

    CHECK (status IN ('pending', 'in_progress', 'completed')),
    CHECK (hold_status IN ('none', 'active', 'reinstated', 'cleared')),
    CHECK (completed_departments BETWEEN 0 AND total_departments)
);

CREATE INDEX IF NOT EXISTS idx_posts_created ON posts(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_posts_hold ON posts(hold_status, production_line);

CREATE TABLE IF NOT EXISTS department_tasks (
    id                         TEXT PRIMARY KEY,
    post_id                    TEXT NOT NULL REFERENCES posts(id),
    post_number                TEXT NOT NULL,
    department_code            TEXT NOT NULL,
    department_name            TEXT NOT NULL,
    status                     TEXT NOT NULL DEFAULT 'pending',
    requires_signoff           BOOLEAN NOT NULL DEFAULT 0,
    is_original                BOOLEAN NOT NULL DEFAULT 1,
    initiated_by               TEXT,
    escalated_from_department  TEXT,
    escalated_from_task_id     TEXT,
    escalation_reason          TEXT,
    escalated_at               TEXT,
    priority                   TEXT NOT NULL DEFAULT 'medium',
    started_by                 TEXT,
    started_at                 TEXT,
    completed_by               TEXT,
    completed_at               TEXT,
    completion_notes           TEXT DEFAULT '',
    signoff_by                 TEXT,
    signoff_at                 TEXT,
    signoff_notes              TEXT DEFAULT '',
    form_type                  TEXT,
    form_response              TEXT DEFAULT '{}',
    module_reference_type      TEXT,
    module_reference_id        TEXT,
    created_at                 TEXT NOT NULL,
    updated_at                 TEXT NOT NULL,

    CHECK (status IN ('pending', 'in_progress', 'completed', 'signed_off')),
    CHECK (priority IN ('low', 'medium', 'high', 'critical', 'emergency'))
);

CREATE INDEX IF NOT EXISTS idx_tasks_post ON department_tasks(post_id, created_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_original_department
  ON department_tasks(post_id, department_code) WHERE is_original = 1;

CREATE TABLE IF NOT EXISTS events (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id    TEXT NOT NULL REFERENCES posts(id),
    task_id    TEXT,
    event_type TEXT NOT NULL,
    actor      TEXT DEFAULT '',
    old_value  TEXT,
    new_value  TEXT,
    comment    TEXT DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_post ON events(post_id, id);

CREATE TABLE IF NOT EXISTS form_links (
    form_type    TEXT NOT NULL,
    form_id      TEXT NOT NULL,
    post_id      TEXT NOT NULL,
    post_number  TEXT NOT NULL,
    linked_by    TEXT DEFAULT '',
    linked_at    TEXT NOT NULL,
    PRIMARY KEY (form_type, form_id)
);

CREATE INDEX IF NOT EXISTS idx_form_links_post ON form_links(post_id);

-- ---- Neighbouring modules (read only for the engine) ----------------------

CREATE TABLE IF NOT EXISTS task_verifications (
    id               TEXT PRIMARY KEY,
    department_code  TEXT NOT NULL,
    department_name  TEXT DEFAULT '',
    location_name    TEXT DEFAULT '',
    category_name    TEXT DEFAULT '',
    action           TEXT DEFAULT '',
    notes            TEXT DEFAULT '',
    photo_uri        TEXT,
    employee_id      TEXT DEFAULT '',
    employee_name    TEXT DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'pending_review',
    source_type      TEXT,
    source_id        TEXT,
    source_number    TEXT,
    work_order_id    TEXT,
    reviewed_by      TEXT,
    reviewed_at      TEXT,
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_verifications_source ON task_verifications(source_id, created_at DESC);

CREATE TABLE IF NOT EXISTS work_orders (
    id                 TEXT PRIMARY KEY,
    work_order_number  TEXT NOT NULL,
    title              TEXT NOT NULL,
    description        TEXT DEFAULT '',
    status             TEXT NOT NULL DEFAULT 'open',
    priority           TEXT NOT NULL DEFAULT 'medium',
    department         TEXT DEFAULT '',
    source_type        TEXT,
    source_id          TEXT,
    created_at         TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_work_orders_source ON work_orders(source_id);
"""

CURRENT_SCHEMA_VERSION = 1
