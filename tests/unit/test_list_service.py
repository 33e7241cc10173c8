"""Unit tests for weekly list provisioning."""

import asyncio
from datetime import UTC, datetime

import pytest

from src.core.errors import NotFound, ValidationFailed
from src.core.ranking import middle_rank
from src.core.store import join_path
from src.core.weeks import same_calendar_day
from src.services.list_service import ListService


# Wednesday 2025-01-08 12:00 UTC
FIXED_NOW = datetime(2025, 1, 8, 12, 0, tzinfo=UTC)


def fixed_clock(now: datetime = FIXED_NOW):
    return lambda: now


@pytest.fixture
def provisioner(store):
    return ListService(store, clock=fixed_clock())


async def _stored_lists(store, group_id="g1"):
    return await store.read_path(join_path("lists", group_id)) or {}


@pytest.mark.unit
class TestEnsureWeeklyLists:
    """Creation of this week's and next week's lists."""

    @pytest.mark.asyncio
    async def test_creates_this_and_next_week(self, store, provisioner):
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert [summary.week_start for summary in summaries] == [
            "2025-01-05T00:00:00.000Z",
            "2025-01-12T00:00:00.000Z",
        ]
        assert all(not summary.has_content for summary in summaries)
        assert len(await _stored_lists(store)) == 2

    @pytest.mark.asyncio
    async def test_new_lists_are_seeded_with_one_blank_item(self, store, provisioner):
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        items = await store.read_path(join_path("lists", "g1", summaries[0].id, "items"))
        assert len(items) == 1
        (item,) = items.values()
        assert item["text"] == ""
        assert item["checked"] is False
        assert item["listOrder"] == middle_rank()

    @pytest.mark.asyncio
    async def test_second_call_creates_nothing(self, store, provisioner):
        first = await provisioner.ensure_weekly_lists("g1", "UTC")
        second = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert [summary.id for summary in first] == [summary.id for summary in second]
        assert len(await _stored_lists(store)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_create_exactly_one_per_week(self, store, provisioner):
        results = await asyncio.gather(*(provisioner.ensure_weekly_lists("g1", "UTC") for _ in range(8)))

        stored = await _stored_lists(store)
        assert len(stored) == 2
        for summaries in results:
            assert {summary.id for summary in summaries} == set(stored)

    @pytest.mark.asyncio
    async def test_timezones_landing_on_same_day_do_not_duplicate(self, store):
        # Both callers are on Wednesday; their week starts land on the same UTC day hours apart.
        utc_caller = ListService(store, clock=fixed_clock())
        new_york_caller = ListService(store, clock=fixed_clock())

        await utc_caller.ensure_weekly_lists("g1", "UTC")
        await new_york_caller.ensure_weekly_lists("g1", "America/New_York")

        stored = await _stored_lists(store)
        assert len(stored) == 2

    @pytest.mark.asyncio
    async def test_concurrent_timezones_same_day(self, store):
        callers = [
            ListService(store, clock=fixed_clock()).ensure_weekly_lists("g1", tz)
            for tz in ("UTC", "America/New_York", "America/Chicago", "America/Los_Angeles")
        ]
        await asyncio.gather(*callers)

        assert len(await _stored_lists(store)) == 2

    @pytest.mark.asyncio
    async def test_existing_list_at_other_time_of_day_counts(self, store, provisioner):
        await store.write_path(
            join_path("lists", "g1", "existing"),
            {"weekStart": "2025-01-05T05:00:00.000Z", "items": {"a": {"id": "a", "text": "milk", "listOrder": "0|hzzzzz:"}}},
        )

        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert len(summaries) == 2
        assert summaries[0].id == "existing"
        assert summaries[0].has_content

    @pytest.mark.asyncio
    async def test_only_missing_week_created(self, store, provisioner):
        await store.write_path(join_path("lists", "g1", "next"), {"weekStart": "2025-01-12T00:00:00.000Z"})

        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert len(summaries) == 2
        assert summaries[1].id == "next"
        assert same_calendar_day(summaries[0].week_start, "2025-01-05T00:00:00Z")

    @pytest.mark.asyncio
    async def test_summaries_sorted_by_week_start(self, store, provisioner):
        await store.write_path(join_path("lists", "g1", "old"), {"weekStart": "2024-12-01T00:00:00.000Z"})

        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert [summary.id for summary in summaries][0] == "old"
        assert [s.week_start for s in summaries] == sorted(s.week_start for s in summaries)

    @pytest.mark.asyncio
    async def test_west_of_utc_week_start(self, store):
        # Sunday 2025-01-05 03:00 UTC is still Saturday evening in New York.
        provisioner = ListService(store, clock=fixed_clock(datetime(2025, 1, 5, 3, 0, tzinfo=UTC)))

        summaries = await provisioner.ensure_weekly_lists("g1", "America/New_York")

        assert [summary.week_start for summary in summaries] == [
            "2024-12-29T05:00:00.000Z",
            "2025-01-05T05:00:00.000Z",
        ]

    @pytest.mark.asyncio
    async def test_monday_weeks(self, store):
        provisioner = ListService(store, week_starts_on="monday", clock=fixed_clock())

        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")

        assert summaries[0].week_start == "2025-01-06T00:00:00.000Z"

    @pytest.mark.asyncio
    async def test_groups_are_independent(self, store, provisioner):
        await provisioner.ensure_weekly_lists("g1", "UTC")
        await provisioner.ensure_weekly_lists("g2", "UTC")

        assert len(await _stored_lists(store, "g1")) == 2
        assert len(await _stored_lists(store, "g2")) == 2

    @pytest.mark.asyncio
    async def test_unknown_timezone_rejected(self, provisioner):
        with pytest.raises(ValidationFailed):
            await provisioner.ensure_weekly_lists("g1", "Nowhere/Special")


@pytest.mark.unit
class TestHasContent:
    """The hasContent projection."""

    @pytest.mark.asyncio
    async def test_single_blank_item_is_empty(self, store, provisioner):
        await store.write_path(
            join_path("lists", "g1", "l1"),
            {"weekStart": "2025-01-05T00:00:00.000Z", "items": {"a": {"id": "a", "text": "", "listOrder": "0|hzzzzz:"}}},
        )
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")
        assert summaries[0].has_content is False

    @pytest.mark.asyncio
    async def test_two_blank_items_have_content(self, store, provisioner):
        await store.write_path(
            join_path("lists", "g1", "l1"),
            {
                "weekStart": "2025-01-05T00:00:00.000Z",
                "items": {
                    "a": {"id": "a", "text": "", "listOrder": "0|hzzzzz:"},
                    "b": {"id": "b", "text": "", "listOrder": "0|i00007:"},
                },
            },
        )
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")
        assert summaries[0].has_content is True

    @pytest.mark.asyncio
    async def test_list_without_items_is_empty(self, store, provisioner):
        await store.write_path(join_path("lists", "g1", "l1"), {"weekStart": "2025-01-05T00:00:00.000Z"})
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")
        assert summaries[0].has_content is False

    @pytest.mark.asyncio
    async def test_legacy_array_items(self, store, provisioner):
        await store.write_path(
            join_path("lists", "g1", "l1"),
            {"weekStart": "2025-01-05T00:00:00.000Z", "items": [{"id": "a", "text": "eggs", "order": "0|hzzzzz:"}]},
        )
        summaries = await provisioner.ensure_weekly_lists("g1", "UTC")
        assert summaries[0].has_content is True


@pytest.mark.unit
class TestCreateAndGetList:
    @pytest.mark.asyncio
    async def test_create_list_shape(self, provisioner):
        created = await provisioner.create_list("g1", "2025-01-06T00:00:00Z")

        assert created["weekStart"] == "2025-01-06T00:00:00.000Z"
        assert len(created["items"]) == 1
        item = created["items"][0]
        assert item == {"id": item["id"], "text": "", "checked": False, "order": middle_rank()}

    @pytest.mark.asyncio
    async def test_create_list_is_unconditional(self, store, provisioner):
        await provisioner.create_list("g1", "2025-01-06T00:00:00Z")
        await provisioner.create_list("g1", "2025-01-06T00:00:00Z")
        assert len(await _stored_lists(store)) == 2

    @pytest.mark.asyncio
    async def test_get_list_round_trip(self, provisioner):
        created = await provisioner.create_list("g1", "2025-01-06T00:00:00Z")

        grocery_list = await provisioner.get_list("g1", created["id"])

        assert grocery_list.week_start == "2025-01-06T00:00:00.000Z"
        assert [item.id for item in grocery_list.items] == [created["items"][0]["id"]]

    @pytest.mark.asyncio
    async def test_get_missing_list(self, provisioner):
        with pytest.raises(NotFound):
            await provisioner.get_list("g1", "missing")
