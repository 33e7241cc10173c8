"""Structural changes to a list's items and meals."""

import logging
import uuid
from typing import Any

from src.core.config import Constants
from src.core.errors import NotFound, ValidationFailed
from src.core.logging import span
from src.core.ranking import generate_ranks, next_rank, rank_between
from src.core.store import ABORT, TreeStore, join_path
from src.domain.create_models import ItemCreate
from src.domain.grocery_list import GroceryList, Item, Meal, Recipe, items_from_store, items_to_store, sort_items
from src.domain.update_models import ItemMove, ItemUpdate, MealUpdate
from src.services.categorization_service import CategorizationService
from src.services.list_service import lists_path


logger = logging.getLogger(__name__)


def _child_key(collection: Any, child_id: str) -> str | None:  # noqa: ANN401
    """Key under which the child with ``child_id`` is stored, for mapping and legacy array layouts."""
    if isinstance(collection, dict):
        if isinstance(collection.get(child_id), dict):
            return child_id
        entries = collection.items()
    elif isinstance(collection, list):
        entries = ((str(index), child) for index, child in enumerate(collection))
    else:
        return None
    for key, child in entries:
        if isinstance(child, dict) and child.get("id") == child_id:
            return key
    return None


def _as_mapping(collection: Any) -> dict[str, Any]:  # noqa: ANN401
    """Stored children keyed as the store keys them; legacy arrays keep their index keys."""
    if isinstance(collection, dict):
        return dict(collection)
    if isinstance(collection, list):
        return {str(index): child for index, child in enumerate(collection) if child is not None}
    return {}


def _find(items: list[Item], item_id: str) -> Item:
    for item in items:
        if item.id == item_id:
            return item
    raise NotFound(f"Item not found: {item_id}")


class ItemService:
    """Applies inserts, edits, reorders, meal imports and categorization to one list."""

    def __init__(self, store: TreeStore, categorization: CategorizationService) -> None:
        self._store = store
        self._categorization = categorization

    async def _load(self, group_id: str, list_id: str) -> GroceryList:
        raw = await self._store.read_path(lists_path(group_id, list_id))
        if not isinstance(raw, dict):
            raise NotFound(f"List not found: {list_id}")
        return GroceryList.from_store(list_id, raw)

    async def _item_path(self, group_id: str, list_id: str, item_id: str) -> str:
        items_path = join_path(lists_path(group_id, list_id), "items")
        key = _child_key(await self._store.read_path(items_path), item_id)
        if key is None:
            raise NotFound(f"Item not found: {item_id}")
        return join_path(items_path, key)

    async def add_meal_from_recipe(self, *, group_id: str, list_id: str, recipe: Recipe) -> Meal:
        """Append a meal and one item per ingredient, in ingredient order.

        The ingredients' ranks continue after the list's current last item, so one meal's
        items always stay contiguous and in recipe order even when another meal is added
        concurrently.
        """
        with span("item_service.add_meal_from_recipe", group_id=group_id, list_id=list_id):
            meal = Meal(id=str(uuid.uuid4()), list_id=list_id, name=recipe.name, recipe_id=recipe.id)
            item_ids = [str(uuid.uuid4()) for _ in recipe.ingredients]

            def _append(current: Any) -> Any:  # noqa: ANN401
                if not isinstance(current, dict):
                    return ABORT
                grocery_list = GroceryList.from_store(list_id, current)
                list_orders = generate_ranks(len(item_ids), grocery_list.last_list_order())
                meal_orders = generate_ranks(len(item_ids))
                new_items = [
                    Item(
                        id=item_id,
                        text=ingredient.name,
                        list_order=list_order,
                        meal_order=meal_order,
                        meal_id=meal.id,
                        quantity=ingredient.quantity,
                    )
                    for item_id, ingredient, list_order, meal_order in zip(
                        item_ids, recipe.ingredients, list_orders, meal_orders, strict=True
                    )
                ]
                updated = dict(current)
                updated["items"] = items_to_store([*grocery_list.items, *new_items])
                updated["meals"] = {m.id: m.to_store() for m in [*grocery_list.meals, meal]}
                return updated

            result = await self._store.transact(lists_path(group_id, list_id), _append)
            if not result.committed:
                raise NotFound(f"List not found: {list_id}")

            logger.info(
                "Meal added",
                extra={"group_id": group_id, "list_id": list_id, "meal_id": meal.id, "items": len(item_ids)},
            )
            return meal

    async def categorize(self, *, group_id: str, list_id: str, items: list[Item] | None = None) -> list[Item]:
        """Regroup the list's content items under freshly generated section headers.

        ``items`` overrides the stored items as the source for categorization. The rebuild is
        committed in a transaction: section names are sorted, each header is followed by its
        members, and every row gets a new ascending rank. Items are matched by id against the
        stored list so concurrent edits to their fields are kept; stored items not placed by
        the categorizer go to the fallback section and blank items go last. Items removed from
        the store during categorization are dropped unless they came from ``items``.

        Returns:
            The rebuilt item sequence
        """
        with span("item_service.categorize", group_id=group_id, list_id=list_id):
            source = items if items is not None else (await self._load(group_id, list_id)).items
            placed = await self._categorization.assign_sections([item for item in source if item.text.strip()])
            header_ids = {name: str(uuid.uuid4()) for name in [*placed, Constants.FALLBACK_SECTION_NAME]}

            def _rebuild(current: Any) -> Any:  # noqa: ANN401
                if not isinstance(current, dict):
                    return ABORT
                stored = {item.id: item for item in GroceryList.from_store(list_id, current).items}
                live = {item_id: item for item_id, item in stored.items() if not item.is_section}

                sections: dict[str, list[Item]] = {}
                seen: set[str] = set()
                for name, members in placed.items():
                    for member in members:
                        # Items deleted while the categorizer ran stay deleted unless the caller supplied them.
                        current_member = live.get(member.id, member if items is not None else None)
                        if member.id in seen or current_member is None:
                            continue
                        seen.add(member.id)
                        sections.setdefault(name, []).append(current_member)

                unplaced = [item for item in sort_items(list(live.values())) if item.id not in seen]
                blanks = [item for item in unplaced if not item.text.strip()]
                leftovers = [item for item in unplaced if item.text.strip()]
                if leftovers:
                    sections.setdefault(Constants.FALLBACK_SECTION_NAME, []).extend(leftovers)

                rebuilt: list[Item] = []
                previous: str | None = None
                for name in sorted(sections):
                    previous = next_rank(previous)
                    rebuilt.append(Item(id=header_ids[name], text=name, is_section=True, list_order=previous))
                    for member in sections[name]:
                        previous = next_rank(previous)
                        rebuilt.append(member.model_copy(update={"list_order": previous}))
                for blank in blanks:
                    previous = next_rank(previous)
                    rebuilt.append(blank.model_copy(update={"list_order": previous}))

                updated = dict(current)
                updated["items"] = items_to_store(rebuilt)
                return updated

            result = await self._store.transact(lists_path(group_id, list_id), _rebuild)
            if not result.committed:
                raise NotFound(f"List not found: {list_id}")

            rebuilt = GroceryList.from_store(list_id, result.value).items
            logger.info(
                "List categorized",
                extra={"group_id": group_id, "list_id": list_id, "sections": sum(item.is_section for item in rebuilt)},
            )
            return rebuilt

    async def insert_item(self, *, group_id: str, list_id: str, create: ItemCreate) -> Item:
        """Insert one item directly after ``afterItemId``, or append it.

        The rank is derived from the items as they stand when the write commits, so concurrent
        inserts never share a rank.
        """
        with span("item_service.insert_item", group_id=group_id, list_id=list_id):
            item_id = str(uuid.uuid4())

            def _insert(current: Any) -> Any:  # noqa: ANN401
                if not isinstance(current, dict):
                    return ABORT
                items = items_from_store(current.get("items"))
                if create.after_item_id:
                    after = _find(items, create.after_item_id)
                    index = items.index(after)
                    following = items[index + 1] if index + 1 < len(items) else None
                    rank = rank_between(after.list_order, following.list_order if following else None)
                else:
                    rank = next_rank(items[-1].list_order if items else None)

                item = Item(id=item_id, text=create.text, quantity=create.quantity, list_order=rank)
                updated = dict(current)
                updated["items"] = {**_as_mapping(current.get("items")), item_id: item.to_store()}
                return updated

            result = await self._store.transact(lists_path(group_id, list_id), _insert)
            if not result.committed:
                raise NotFound(f"List not found: {list_id}")

            item = Item.model_validate(result.value["items"][item_id])
            logger.info("Item inserted", extra={"group_id": group_id, "list_id": list_id, "item_id": item_id})
            return item

    async def update_item(self, *, group_id: str, list_id: str, item_id: str, update: ItemUpdate) -> Item:
        """Merge the given fields into one item without touching its siblings."""
        with span("item_service.update_item", group_id=group_id, list_id=list_id):
            path = await self._item_path(group_id, list_id, item_id)
            fields = update.model_dump(mode="json", by_alias=True, exclude_unset=True)
            await self._store.patch_path(path, fields)
            logger.info("Item updated", extra={"item_id": item_id, "fields": sorted(fields)})

            raw = await self._store.read_path(path)
            if not isinstance(raw, dict):
                raise NotFound(f"Item not found: {item_id}")
            return Item.model_validate(raw)

    async def move_item(self, *, group_id: str, list_id: str, item_id: str, move: ItemMove) -> Item:
        """Give an item a rank strictly between its new neighbours.

        Only the moved item's ``listOrder`` changes. Neighbours are resolved against the items
        as they stand when the write commits: with ``afterItemId`` the item lands directly after
        that item, otherwise directly before ``beforeItemId``.
        """
        if not move.after_item_id and not move.before_item_id:
            raise ValidationFailed("afterItemId or beforeItemId is required")
        if item_id in (move.after_item_id, move.before_item_id):
            raise ValidationFailed("An item cannot be moved next to itself")

        with span("item_service.move_item", group_id=group_id, list_id=list_id):
            items_path = join_path(lists_path(group_id, list_id), "items")

            def _move(current: Any) -> Any:  # noqa: ANN401
                key = _child_key(current, item_id)
                if key is None:
                    return ABORT
                others = [other for other in items_from_store(current) if other.id != item_id]
                after, before = self._neighbours(others, move)
                rank = rank_between(after.list_order if after else None, before.list_order if before else None)

                if isinstance(current, list):
                    updated = list(current)
                    updated[int(key)] = {**current[int(key)], "listOrder": rank}
                    return updated
                return {**current, key: {**current[key], "listOrder": rank}}

            result = await self._store.transact(items_path, _move)
            key = _child_key(result.value, item_id) if result.committed else None
            if key is None:
                raise NotFound(f"Item not found: {item_id}")

            child = result.value[int(key)] if isinstance(result.value, list) else result.value[key]
            moved = Item.model_validate(child)
            logger.info("Item moved", extra={"item_id": item_id, "list_order": moved.list_order})
            return moved

    @staticmethod
    def _neighbours(others: list[Item], move: ItemMove) -> tuple[Item | None, Item | None]:
        after = _find(others, move.after_item_id) if move.after_item_id else None
        before = _find(others, move.before_item_id) if move.before_item_id else None
        if after is not None:
            index = others.index(after)
            if before is not None and others.index(before) <= index:
                raise ValidationFailed("beforeItemId must come after afterItemId")
            # Whatever sits directly after the anchor is the real upper neighbour.
            before = others[index + 1] if index + 1 < len(others) else None
        elif before is not None:
            index = others.index(before)
            after = others[index - 1] if index > 0 else None
        return after, before

    async def delete_item(self, *, group_id: str, list_id: str, item_id: str) -> None:
        with span("item_service.delete_item", group_id=group_id, list_id=list_id):
            path = await self._item_path(group_id, list_id, item_id)
            await self._store.write_path(path, None)
            logger.info("Item deleted", extra={"group_id": group_id, "list_id": list_id, "item_id": item_id})

    async def update_meal(self, *, group_id: str, list_id: str, meal_id: str, update: MealUpdate) -> Meal:
        """Merge ``dayOfWeek`` and ``name`` into a meal."""
        with span("item_service.update_meal", group_id=group_id, list_id=list_id):
            meals_path = join_path(lists_path(group_id, list_id), "meals")
            key = _child_key(await self._store.read_path(meals_path), meal_id)
            if key is None:
                raise NotFound(f"Meal not found: {meal_id}")

            fields: dict[str, Any] = update.model_dump(mode="json", by_alias=True, exclude_unset=True)
            await self._store.patch_path(join_path(meals_path, key), fields)
            logger.info("Meal updated", extra={"meal_id": meal_id, "fields": sorted(fields)})

            raw = await self._store.read_path(join_path(meals_path, key))
            return Meal.model_validate(raw)
