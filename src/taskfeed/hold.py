"""Production hold gate.

A production-hold incident blocks its line until every department task is
resolved. Escalating a department into a cleared incident reinstates the hold.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskfeed.types.api import HoldStateDict

if TYPE_CHECKING:
    from taskfeed.db_base import HoldStatus

BLOCKING_STATUSES: frozenset[str] = frozenset({"active", "reinstated"})


def initial_hold_status(is_production_hold: bool) -> HoldStatus:
    return "active" if is_production_hold else "none"


def next_hold_status(
    previous: HoldStatus,
    *,
    is_production_hold: bool,
    all_resolved: bool,
    escalated: bool = False,
) -> HoldStatus:
    """Compute the hold status after a mutation.

    ``escalated`` is true only for the recompute that follows an escalation.
    The status never returns to ``active`` once it has left it.
    """
    if not is_production_hold:
        return "none"
    if previous == "none":
        previous = "active"
    if previous == "cleared" and escalated and not all_resolved:
        return "reinstated"
    if previous in BLOCKING_STATUSES and all_resolved:
        return "cleared"
    return previous


@dataclass(frozen=True)
class ProductionHoldState:
    post_id: str
    post_number: str
    status: HoldStatus
    production_line: str = ""
    location: str = ""
    cleared_at: str | None = None
    reinstated_at: str | None = None

    @property
    def blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES

    def to_dict(self) -> HoldStateDict:
        return HoldStateDict(
            post_id=self.post_id,
            post_number=self.post_number,
            status=self.status,
            blocking=self.blocking,
            production_line=self.production_line,
            location=self.location,
            cleared_at=self.cleared_at,
            reinstated_at=self.reinstated_at,
        )
