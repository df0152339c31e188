"""
Production calendar gateway.

All writes to calendar entries go through this class; services never touch
CalendarItem rows directly. Entries are staged on the caller's session
(``flush`` only) so an episode-scheduling failure that rolls back also
removes the entry it created.

Testability: pass a custom ``session`` to CalendarGateway() in tests.

Usage:
    from app.integrations.calendar_gateway import calendar_gateway
    entry = calendar_gateway.create_entry(project_id=1, title="Ep 4", tx_date=d)
"""

from __future__ import annotations

import logging
from datetime import date

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.production import CalendarItem

logger = logging.getLogger(__name__)


class CalendarGateway:
    """Calendar collaborator used by the episode scheduler."""

    def __init__(self, session=None) -> None:
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _require(self, calendar_item_id: int) -> CalendarItem:
        item = self.session.get(CalendarItem, calendar_item_id)
        if item is None:
            raise NotFoundError(resource="CalendarItem", resource_id=calendar_item_id)
        return item

    def create_entry(
        self,
        *,
        project_id: int,
        title: str,
        tx_date: date,
        tx_time: str | None = None,
        created_by: str | None = None,
        notes: str | None = None,
    ) -> CalendarItem:
        item = CalendarItem(
            project_id=project_id,
            title=title,
            scheduled_date=tx_date,
            scheduled_time=tx_time,
            status="scheduled",
            notes=notes,
            created_by=created_by,
        )
        self.session.add(item)
        self.session.flush()
        logger.debug("Calendar entry staged id=%s date=%s", item.id, tx_date,
                     extra={"project_id": project_id})
        return item

    def attach_episode(self, calendar_item_id: int, episode_id: int) -> None:
        self._require(calendar_item_id).episode_id = episode_id

    def move_entry(self, calendar_item_id: int, new_date: date, new_time: str | None = None) -> CalendarItem:
        item = self._require(calendar_item_id)
        item.scheduled_date = new_date
        if new_time is not None:
            item.scheduled_time = new_time
        self.session.flush()
        return item

    def cancel_entry(self, calendar_item_id: int) -> None:
        self._require(calendar_item_id).status = "cancelled"
        self.session.flush()

    def remove_entry(self, calendar_item_id: int) -> None:
        item = self.session.get(CalendarItem, calendar_item_id)
        if item is not None:
            self.session.delete(item)
            self.session.flush()


# Module-level singleton
calendar_gateway = CalendarGateway()
