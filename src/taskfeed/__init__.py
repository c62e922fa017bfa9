"""Taskfeed — multi-department incident workflow engine for facility operations."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("taskfeed")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from taskfeed.core import DepartmentTask, IncidentPost, TaskFeedDB

__all__ = ["DepartmentTask", "IncidentPost", "TaskFeedDB", "__version__"]
