"""Weekly list provisioning and list reads."""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from src.core.errors import NotFound
from src.core.logging import span
from src.core.ranking import middle_rank
from src.core.store import ABORT, TreeStore, join_path
from src.core.weeks import (
    format_instant,
    next_week_start,
    parse_instant,
    resolve_timezone,
    same_calendar_day,
    start_of_week,
)
from src.domain.grocery_list import GroceryList, Item, ListSummary, items_to_store


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def seed_item() -> Item:
    """The single blank item every new list starts with."""
    return Item(id=str(uuid.uuid4()), text="", checked=False, list_order=middle_rank())


def new_list_record(week_start: datetime, item: Item) -> dict[str, Any]:
    return {"weekStart": format_instant(week_start), "items": items_to_store([item])}


def lists_path(group_id: str, list_id: str | None = None) -> str:
    return join_path("lists", group_id, list_id or "")


def _covers(raw_list: Any, week_start: datetime) -> bool:  # noqa: ANN401
    stored = raw_list.get("weekStart") if isinstance(raw_list, dict) else None
    if not stored:
        return False
    return same_calendar_day(stored, week_start)


class ListService:
    """Creates and reads the lists stored under ``lists/{groupId}``."""

    def __init__(
        self,
        store: TreeStore,
        *,
        week_starts_on: str = "sunday",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._week_starts_on = week_starts_on
        self._clock = clock

    async def ensure_weekly_lists(self, group_id: str, tz_name: str) -> list[ListSummary]:
        """Guarantee a list for this week and next week, then summarize every list of the group.

        The missing lists are created in a single transaction on the group's lists node, so
        concurrent callers commit at most one list per calendar week. A stored list counts as
        covering a week when its ``weekStart`` lands on the same UTC calendar day.

        Returns:
            Summaries of all of the group's lists sorted by ``weekStart`` ascending
        """
        with span("list_service.ensure_weekly_lists", group_id=group_id, tz=tz_name):
            tz = resolve_timezone(tz_name)
            now = self._clock()
            targets = [
                start_of_week(now, tz, self._week_starts_on),
                next_week_start(now, tz, self._week_starts_on),
            ]
            # Ids are fixed before the transaction so every retry proposes the same records.
            candidates = {str(uuid.uuid4()): (target, seed_item()) for target in targets}

            def _provision(current: Any) -> Any:  # noqa: ANN401
                existing = dict(current) if isinstance(current, dict) else {}
                missing = {
                    list_id: new_list_record(target, item)
                    for list_id, (target, item) in candidates.items()
                    if not any(_covers(raw, target) for raw in existing.values())
                }
                if not missing:
                    return ABORT
                existing.update(missing)
                return existing

            result = await self._store.transact(lists_path(group_id), _provision)
            if result.committed:
                logger.info("Weekly lists provisioned", extra={"group_id": group_id, "tz": tz_name})

            stored = await self._store.read_path(lists_path(group_id)) or {}
            return self._summaries(group_id, stored)

    def _summaries(self, group_id: str, stored: dict[str, Any]) -> list[ListSummary]:
        summaries = []
        for list_id, raw in stored.items():
            if not isinstance(raw, dict) or not raw.get("weekStart"):
                logger.warning("list_without_week_start", extra={"group_id": group_id, "list_id": list_id})
                continue
            grocery_list = GroceryList.from_store(list_id, raw)
            summaries.append(
                ListSummary(id=list_id, week_start=grocery_list.week_start, has_content=grocery_list.has_content)
            )
        return sorted(summaries, key=lambda summary: parse_instant(summary.week_start))

    async def create_list(self, group_id: str, week_start: str) -> dict[str, Any]:
        """Create one list unconditionally, seeded with a blank item.

        Returns:
            ``{id, weekStart, items: [{id, text, checked, order}]}``
        """
        with span("list_service.create_list", group_id=group_id):
            list_id = str(uuid.uuid4())
            item = seed_item()
            record = new_list_record(parse_instant(week_start), item)
            await self._store.write_path(lists_path(group_id, list_id), record)
            logger.info("List created", extra={"group_id": group_id, "list_id": list_id})

            return {
                "id": list_id,
                "weekStart": record["weekStart"],
                "items": [{"id": item.id, "text": item.text, "checked": item.checked, "order": item.list_order}],
            }

    async def get_list(self, group_id: str, list_id: str) -> GroceryList:
        raw = await self._store.read_path(lists_path(group_id, list_id))
        if not isinstance(raw, dict):
            raise NotFound(f"List not found: {list_id}")
        return GroceryList.from_store(list_id, raw)
