"""DetailMixin — the uniform incident read model.

All methods access ``self.conn``, ``self.get_post()``, etc. via Python's MRO
when composed into ``TaskFeedDB``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskfeed.db_base import DBMixinProtocol
from taskfeed.reconcile import CanonicalDetailSource, DetailReader, IncidentDetail, LegacyDetailSource

if TYPE_CHECKING:
    from taskfeed.core import DepartmentTask, IncidentPost, WorkOrder


class DetailMixin(DBMixinProtocol):
    """Detail reads across canonical posts and legacy verifications."""

    if TYPE_CHECKING:

        def _collect_work_orders(self, post: IncidentPost, tasks: list[DepartmentTask]) -> list[WorkOrder]: ...

    def _detail_reader(self) -> DetailReader:
        return DetailReader([CanonicalDetailSource(self), LegacyDetailSource(self.conn)])

    def get_detail(self, post_id: str) -> IncidentDetail:
        """Post, its department tasks, and linked work orders.

        Canonical posts win; otherwise a legacy task verification matching the
        id is synthesized into the same shape.

        Raises:
            NotFoundError: Neither store knows the id.
        """
        source, post, tasks = self._detail_reader().read(post_id)
        return IncidentDetail(
            post=post,
            tasks=tasks,
            work_orders=self._collect_work_orders(post, tasks),
            source=source,
        )
