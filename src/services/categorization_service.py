"""Grouping of list items into store sections with an LLM and a process-local cache."""

import json
import logging
import re
from collections import deque
from typing import Protocol

from pydantic_ai import Agent
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openrouter import OpenRouterProvider

from src.core.cache_client import InMemoryCache
from src.core.config import Constants, Settings
from src.core.errors import UpstreamError
from src.core.logging import span
from src.domain.grocery_list import CategorizedSections, Item


logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_item_text(text: str) -> str:
    """Cache key for an item text: lowercase, trimmed, inner whitespace collapsed."""
    return _WHITESPACE.sub(" ", text.strip().lower())


def build_prompt(texts: list[str]) -> str:
    """Build the categorization prompt for a batch of item texts."""
    return " ".join(
        [
            f"Group items:{json.dumps(texts)} into sections;",
            "return every item exactly once per occurrence, spelled as given.",
            f"Use sections:{','.join(Constants.SECTION_CATALOGUE)}",
        ]
    )


class Categorizer(Protocol):
    """External collaborator that partitions item texts into named sections."""

    async def categorize(self, texts: list[str]) -> CategorizedSections:
        """Return sections for ``texts``.

        Raises:
            UpstreamError: If the collaborator is unavailable or answers nonsense
        """
        ...


class LLMCategorizer:
    """Categorizer backed by a Pydantic AI agent on OpenRouter with structured output."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._agent: Agent[None, CategorizedSections] | None = None

    def _get_agent(self) -> Agent[None, CategorizedSections]:
        if self._agent is None:
            api_key = self._settings.require_credential("openrouter_api_key", "OpenRouter API key")
            provider = OpenRouterProvider(api_key=api_key)

            model_settings: OpenRouterModelSettings | None = None
            if self._settings.model_provider:
                model_settings = OpenRouterModelSettings(
                    openrouter_provider={"only": [self._settings.model_provider]}
                )

            model = OpenRouterModel(model_name=self._settings.model_id, provider=provider, settings=model_settings)
            # No retries: a failed categorization surfaces to the caller.
            self._agent = Agent(
                model=model,
                output_type=CategorizedSections,
                instructions="You sort grocery list items into supermarket sections.",
                retries=0,
            )
        return self._agent

    async def categorize(self, texts: list[str]) -> CategorizedSections:
        agent = self._get_agent()
        try:
            result = await agent.run(build_prompt(texts))
        except Exception as e:
            logger.error("categorizer_failed", extra={"item_count": len(texts), "error": str(e)})
            raise UpstreamError("Categorization failed") from e
        logger.info("categorizer_succeeded", extra={"item_count": len(texts), "sections": len(result.output.sections)})
        return result.output


class CategoryCache:
    """Normalized item text to section name, shared by every categorize call."""

    _PREFIX = "category:"

    def __init__(self, cache: InMemoryCache, *, ttl_seconds: int = 0) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def lookup(self, keys: list[str]) -> dict[str, str]:
        found = await self._cache.get_many([self._PREFIX + key for key in keys])
        return {key.removeprefix(self._PREFIX): section for key, section in found.items()}

    async def remember(self, key: str, section: str) -> None:
        await self._cache.set(self._PREFIX + key, section, self._ttl_seconds)


class CategorizationService:
    """Assigns each content item of a list to a section name."""

    def __init__(self, categorizer: Categorizer, cache: CategoryCache) -> None:
        self._categorizer = categorizer
        self._cache = cache

    async def assign_sections(self, items: list[Item]) -> dict[str, list[Item]]:
        """Partition content items into sections.

        Items whose normalized text is cached are placed without an external call. The rest
        are sent to the categorizer; each returned text consumes the first still-unassigned
        original item with the same normalized text, so duplicates are neither merged nor
        dropped. Returned texts matching nothing are skipped with a warning, and items the
        categorizer never mentions land in the fallback section.

        Returns:
            Mapping of section name to member items, members in categorizer order
        """
        with span("categorization_service.assign_sections", item_count=len(items)):
            content = [item for item in items if not item.is_section]
            if not content:
                return {}

            cached = await self._cache.lookup(list({normalize_item_text(item.text) for item in content}))
            sections: dict[str, list[Item]] = {}
            uncached = [item for item in content if normalize_item_text(item.text) not in cached]

            if uncached:
                await self._assign_uncached(uncached, sections)

            for item in content:
                section = cached.get(normalize_item_text(item.text))
                if section is not None:
                    sections.setdefault(section, []).append(item)

            logger.info(
                "Items assigned to sections",
                extra={"items": len(content), "cached": len(content) - len(uncached), "sections": len(sections)},
            )
            return sections

    async def _assign_uncached(self, uncached: list[Item], sections: dict[str, list[Item]]) -> None:
        pending: dict[str, deque[Item]] = {}
        for item in uncached:
            pending.setdefault(normalize_item_text(item.text), deque()).append(item)

        result = await self._categorizer.categorize([item.text for item in uncached])

        assigned: set[str] = set()
        remembered: set[str] = set()
        for section in result.sections:
            name = section.name.strip() or Constants.FALLBACK_SECTION_NAME
            for text in section.items:
                key = normalize_item_text(text)
                queue = pending.get(key)
                if not queue:
                    logger.warning("categorizer_unmatched_item", extra={"text": text, "section": name})
                    continue
                item = queue.popleft()
                assigned.add(item.id)
                sections.setdefault(name, []).append(item)
                if key not in remembered:
                    remembered.add(key)
                    await self._cache.remember(key, name)

        leftovers = [item for item in uncached if item.id not in assigned]
        if leftovers:
            logger.warning("categorizer_missed_items", extra={"count": len(leftovers)})
            sections.setdefault(Constants.FALLBACK_SECTION_NAME, []).extend(leftovers)
