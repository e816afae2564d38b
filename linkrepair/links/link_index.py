"""
Link Index.

Reverse-reference store: target item -> ItemLinks that point at it.

The index never validates entries against field content; the repair engine
keeps the two in step. An entry without a live reference is a transient
inconsistency, not an index error.
"""

from abc import ABC, abstractmethod
from collections import defaultdict

import structlog

from linkrepair.config.settings import get_settings
from linkrepair.content.ids import normalize_id
from linkrepair.content.store import Item
from linkrepair.links.codecs import FieldCodecRegistry, get_codec_registry
from linkrepair.links.schema import INVARIANT_LANGUAGE, LATEST_VERSION, ItemLink

logger = structlog.get_logger(__name__)


class LinkIndex(ABC):
    """Contract shared by the link index backends."""

    @abstractmethod
    async def references_to(self, target_item_id: str, database: str | None = None) -> list[ItemLink]:
        """All links pointing at the target, in a deterministic order."""

    @abstractmethod
    async def references_from(self, source_database: str, source_item_id: str) -> list[ItemLink]:
        """All links held by the source item's versions."""

    @abstractmethod
    async def insert(self, link: ItemLink) -> None:
        """Add a link. Inserting an equal link again is a no-op."""

    @abstractmethod
    async def remove(self, link: ItemLink) -> bool:
        """Remove a link. Returns False when it was not present."""

    async def remove_many(self, links: list[ItemLink]) -> int:
        removed = 0
        for link in links:
            if await self.remove(link):
                removed += 1
        return removed


class InMemoryLinkIndex(LinkIndex):
    """
    Process-local link index.

    Usage:
        ```python
        index = InMemoryLinkIndex()
        await index.insert(link)
        referrers = await index.references_to(link.target_item_id)
        ```
    """

    def __init__(self) -> None:
        self._by_target: dict[str, set[ItemLink]] = defaultdict(set)

    async def references_to(self, target_item_id: str, database: str | None = None) -> list[ItemLink]:
        links = self._by_target.get(normalize_id(target_item_id), set())
        if database is not None:
            links = {link for link in links if link.target_database == database.lower()}
        return sorted(links, key=lambda link: link.sort_key)

    async def references_from(self, source_database: str, source_item_id: str) -> list[ItemLink]:
        source_item_id = normalize_id(source_item_id)
        source_database = source_database.lower()
        found = [
            link
            for links in self._by_target.values()
            for link in links
            if link.source_item_id == source_item_id and link.source_database == source_database
        ]
        return sorted(found, key=lambda link: link.sort_key)

    async def insert(self, link: ItemLink) -> None:
        links = self._by_target[link.target_item_id]
        # Replace so the descriptive target fields follow the latest insert
        links.discard(link)
        links.add(link)

    async def remove(self, link: ItemLink) -> bool:
        links = self._by_target.get(link.target_item_id)
        if not links or link not in links:
            return False
        links.discard(link)
        if not links:
            del self._by_target[link.target_item_id]
        return True

    def __len__(self) -> int:
        return sum(len(links) for links in self._by_target.values())


def collect_item_links(item: Item, registry: FieldCodecRegistry | None = None) -> list[ItemLink]:
    """
    Decode every reference held by the item's versions.

    Fields without a codec or without a template definition are ignored.
    """
    registry = registry or get_codec_registry()
    database = item.database
    links: list[ItemLink] = []

    for version in item.get_versions(all_languages=True):
        for field_id in version.values:
            field = version.field(field_id)
            if field is None or field.template_field is None:
                continue
            codec = registry.resolve(field.type_name)
            if codec is None:
                continue
            for reference in codec.decode(field.value):
                target = database.get_item(reference.target_id)
                links.append(
                    ItemLink(
                        source_database=database.name,
                        source_item_id=item.id,
                        source_language=version.language,
                        source_version=version.number,
                        source_field_id=field.id,
                        target_database=database.name,
                        target_item_id=reference.target_id,
                        target_language=INVARIANT_LANGUAGE,
                        target_version=LATEST_VERSION,
                        target_path=target.path if target is not None else "",
                    )
                )
    return links


async def update_item_references(
    index: LinkIndex,
    item: Item,
    registry: FieldCodecRegistry | None = None,
) -> list[ItemLink]:
    """
    Re-index one item: drop its recorded outgoing links and insert the ones
    its field values currently encode.

    Returns:
        The links now indexed for the item
    """
    current = collect_item_links(item, registry)
    current_set = set(current)

    stale = [link for link in await index.references_from(item.database.name, item.id) if link not in current_set]
    removed = await index.remove_many(stale)

    for link in current:
        await index.insert(link)

    logger.debug(
        "Item references updated",
        item_id=item.id,
        database=item.database.name,
        links=len(current_set),
        removed=removed,
    )
    return current


def create_link_index(backend: str | None = None) -> LinkIndex:
    """Create the configured link index backend."""
    backend = backend or get_settings().link_index.backend
    if backend == "neo4j":
        from linkrepair.links.neo4j_index import Neo4jLinkIndex

        return Neo4jLinkIndex()
    if backend == "memory":
        return InMemoryLinkIndex()
    raise ValueError(f"Unknown link index backend: {backend}")
