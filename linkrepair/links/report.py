"""
Reference Report Builder.

Walks the selected subtrees depth-first (node before descendants) and lists,
for every node, the items that reference it and the field holding each
reference. Stale index entries (referrer database or item gone) are skipped.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from linkrepair.config.settings import ReportSettings, get_settings
from linkrepair.content.ids import same_id
from linkrepair.content.store import ContentStore, Item
from linkrepair.exceptions import ItemNotFound, NotFoundError
from linkrepair.links.link_index import LinkIndex
from linkrepair.links.schema import ItemLink, ReferenceDescriptor, ReportRecord, new_correlation_token

logger = structlog.get_logger(__name__)


@dataclass
class ReferenceReport:
    """Ordered reference records for one pass over the selection."""

    roots: list[str]
    ignore_clones: bool = False
    built_at: datetime = field(default_factory=datetime.utcnow)
    records: list[ReportRecord] = field(default_factory=list)

    items_walked: int = 0
    links_seen: int = 0
    clones_ignored: int = 0
    stale_skipped: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ReportRecord]:
        return iter(self.records)

    def find(self, token: str) -> ReportRecord | None:
        for record in self.records:
            if record.descriptor.token == token:
                return record
        return None

    def discard(self, token: str) -> bool:
        """Drop a row once its reference has been repaired."""
        record = self.find(token)
        if record is None:
            return False
        self.records.remove(record)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "roots": self.roots,
            "ignore_clones": self.ignore_clones,
            "built_at": self.built_at.isoformat(),
            "summary": {
                "items_walked": self.items_walked,
                "links_seen": self.links_seen,
                "clones_ignored": self.clones_ignored,
                "stale_skipped": self.stale_skipped,
                "records": len(self.records),
            },
            "records": [record.model_dump() for record in self.records],
        }


class ReferenceReportBuilder:
    """
    Builds reference reports from the link index.

    Usage:
        ```python
        builder = ReferenceReportBuilder(store, index)
        report = await builder.build(["{...}"], ignore_clones=True)
        for record in report:
            print(record.referrer_path, record.field_label)
        ```
    """

    def __init__(
        self,
        store: ContentStore,
        index: LinkIndex,
        settings: ReportSettings | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._settings = settings or get_settings().report

    async def build(
        self,
        item_ids: Sequence[str],
        ignore_clones: bool | None = None,
        database: str | None = None,
    ) -> ReferenceReport:
        """
        Report incoming references for the selected items and their descendants.

        Args:
            item_ids: Selected items (IDs or paths)
            ignore_clones: Hide clone-source references; defaults to settings
            database: Database holding the selection; defaults to the content database

        Raises:
            ItemNotFound: if a selected item does not exist
        """
        if ignore_clones is None:
            ignore_clones = self._settings.ignore_clones
        database_name = database or self._settings.content_database

        content_database = self._store.get_database(database_name)
        if content_database is None:
            raise NotFoundError(f"Database '{database_name}' not found")

        roots: list[Item] = []
        for item_id in item_ids:
            item = content_database.get_item(item_id)
            if item is None:
                raise ItemNotFound(database_name, item_id)
            roots.append(item)

        report = ReferenceReport(roots=[root.id for root in roots], ignore_clones=ignore_clones)

        for root in roots:
            stack = [root]
            while stack:
                node = stack.pop()
                await self._report_node(node, report)
                stack.extend(reversed(node.children))

        logger.info(
            "Reference report built",
            roots=len(roots),
            items=report.items_walked,
            records=len(report.records),
            stale_skipped=report.stale_skipped,
            clones_ignored=report.clones_ignored,
        )
        return report

    def _is_clone_link(self, link: ItemLink) -> bool:
        return any(same_id(link.source_field_id, field_id) for field_id in self._settings.clone_field_ids)

    async def _report_node(self, node: Item, report: ReferenceReport) -> None:
        report.items_walked += 1
        links = await self._index.references_to(node.id, node.database.name)

        for link in links:
            report.links_seen += 1

            if report.ignore_clones and self._is_clone_link(link):
                report.clones_ignored += 1
                continue

            source_database = self._store.get_database(link.source_database)
            if source_database is None:
                report.stale_skipped += 1
                logger.debug("Referrer database not found", database=link.source_database)
                continue

            referrer = source_database.get_item(link.source_item_id)
            if referrer is None:
                report.stale_skipped += 1
                logger.debug("Referrer not found", item_id=link.source_item_id)
                continue

            report.records.append(self._make_record(node, referrer, link))

    def _field_label(self, referrer: Item, link: ItemLink) -> str:
        if link.is_item_level:
            return self._settings.item_level_label
        template_field = referrer.template.get_field(link.source_field_id) if referrer.template else None
        if template_field is None:
            return self._settings.unknown_field_label
        return template_field.display_name

    def _make_record(self, node: Item, referrer: Item, link: ItemLink) -> ReportRecord:
        descriptor = ReferenceDescriptor(
            target_database=link.target_database,
            target_item_id=link.target_item_id,
            target_path=link.target_path or node.path,
            source_database=link.source_database,
            source_item_id=link.source_item_id,
            source_field_id=link.source_field_id or "",
            token=new_correlation_token(),
            source_language=link.source_language,
            source_version=link.source_version,
        )
        return ReportRecord(
            referrer_id=referrer.id,
            referrer_name=referrer.display_name,
            referrer_path=referrer.path,
            field_label=self._field_label(referrer, link),
            item_level=link.is_item_level,
            target_path=node.path,
            descriptor=descriptor,
        )
