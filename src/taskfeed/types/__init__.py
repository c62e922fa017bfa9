# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; it would create circular imports.
"""Typed return-value contracts for taskfeed core and CLI layers."""

from __future__ import annotations

from taskfeed.types.api import ErrorResponse, HoldStateDict, IncidentDetailDict, PostSummary
from taskfeed.types.core import (
    DepartmentTaskDict,
    FormLinkDict,
    ISOTimestamp,
    PostDict,
    ProjectConfig,
    WorkOrderDict,
)
from taskfeed.types.events import EventRecord

__all__ = [
    "DepartmentTaskDict",
    "ErrorResponse",
    "EventRecord",
    "FormLinkDict",
    "HoldStateDict",
    "ISOTimestamp",
    "IncidentDetailDict",
    "PostDict",
    "PostSummary",
    "ProjectConfig",
    "WorkOrderDict",
]
