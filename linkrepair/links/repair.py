"""
Link Repair Engine.

Repoints (relink) or strips (remove) one reported reference across every
language/version of the referring item, then brings the link index in line
with the rewritten values.

Best effort across versions: a version with no such field, an unsupported
field type, a value that no longer holds the reference, or a rejected edit
is skipped and the remaining versions are still processed. Only a missing
target aborts the operation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from linkrepair.config.settings import Settings, get_settings
from linkrepair.content.store import ContentStore, Item, ItemVersion
from linkrepair.exceptions import AccessDenied, EditConflict, ReferenceNotFound, TargetNotFound
from linkrepair.links.codecs import FieldCodec, FieldCodecRegistry, get_codec_registry
from linkrepair.links.link_index import LinkIndex
from linkrepair.links.schema import ItemLink, LinkTarget, ReferenceDescriptor
from linkrepair.observability.logging import LogContext
from linkrepair.observability.metrics import MetricsRegistry, get_metrics_registry

logger = structlog.get_logger(__name__)

LINK_CHANGED_MESSAGE = "The link has been changed."
LINK_REMOVED_MESSAGE = "The link has been removed."


class RepairAction(str, Enum):
    """Types of repair actions."""

    RELINK = "relink"
    REMOVE = "remove"


class VersionOutcome(str, Enum):
    """What happened to one source version."""

    REPAIRED = "repaired"
    MISSING_FIELD = "missing_field"
    UNSUPPORTED_FIELD = "unsupported_field"
    REFERENCE_NOT_FOUND = "reference_not_found"
    EDIT_FAILED = "edit_failed"


@dataclass
class RepairResult:
    """Result of a relink/remove operation."""

    success: bool
    action: RepairAction
    token: str
    message: str = ""
    source_found: bool = True
    dry_run: bool = False
    versions_repaired: int = 0
    versions_skipped: int = 0
    links_removed: int = 0
    links_inserted: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def record(self, version: ItemVersion, outcome: VersionOutcome, **extra: Any) -> None:
        if outcome == VersionOutcome.REPAIRED:
            self.versions_repaired += 1
        else:
            self.versions_skipped += 1
        self.details.append(
            {"language": version.language, "version": version.number, "outcome": outcome.value, **extra}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action.value,
            "token": self.token,
            "message": self.message,
            "source_found": self.source_found,
            "dry_run": self.dry_run,
            "versions_repaired": self.versions_repaired,
            "versions_skipped": self.versions_skipped,
            "links_removed": self.links_removed,
            "links_inserted": self.links_inserted,
            "details": self.details,
            "errors": self.errors,
        }


class LinkRepairEngine:
    """
    Relinks or removes a reported reference.

    Usage:
        ```python
        engine = LinkRepairEngine(store, index)

        # Point the reference somewhere else
        result = await engine.relink(record.descriptor, new_target_id="{...}")

        # Drop the reference
        result = await engine.remove(record.descriptor)

        # Preview without editing
        preview = await engine.remove(record.descriptor, dry_run=True)
        ```
    """

    def __init__(
        self,
        store: ContentStore,
        index: LinkIndex,
        registry: FieldCodecRegistry | None = None,
        settings: Settings | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._registry = registry or get_codec_registry()
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics_registry()

    async def relink(
        self,
        descriptor: ReferenceDescriptor,
        new_target_id: str,
        dry_run: bool = False,
    ) -> RepairResult:
        """
        Point the reference at another item in every source version.

        Args:
            descriptor: Reference picked from the report
            new_target_id: Replacement target, looked up in the content database
            dry_run: Report what would change without editing

        Raises:
            TargetNotFound: if the current or the replacement target is missing
        """
        self._resolve_target(descriptor.target_database, descriptor.target_item_id)
        content_database = self._settings.report.content_database
        new_item = self._resolve_target(content_database, new_target_id)
        new_target = LinkTarget(item_id=new_item.id, path=new_item.path, database=new_item.database.name)

        return await self._repair(RepairAction.RELINK, descriptor, new_target, dry_run)

    async def remove(
        self,
        descriptor: ReferenceDescriptor,
        dry_run: bool = False,
    ) -> RepairResult:
        """
        Strip the reference from every source version.

        Raises:
            TargetNotFound: if the target is missing
        """
        self._resolve_target(descriptor.target_database, descriptor.target_item_id)

        return await self._repair(RepairAction.REMOVE, descriptor, None, dry_run)

    def _resolve_target(self, database_name: str, item_id: str) -> Item:
        database = self._store.get_database(database_name)
        item = database.get_item(item_id) if database is not None else None
        if item is None:
            logger.warning("Link target not found", database=database_name, item_id=item_id)
            raise TargetNotFound(database_name, item_id)
        return item

    async def _repair(
        self,
        action: RepairAction,
        descriptor: ReferenceDescriptor,
        new_target: LinkTarget | None,
        dry_run: bool,
    ) -> RepairResult:
        result = RepairResult(success=False, action=action, token=descriptor.token, dry_run=dry_run)

        source_database = self._store.get_database(descriptor.source_database)
        source_item = source_database.get_item(descriptor.source_item_id) if source_database is not None else None
        if source_item is None:
            # Stale report entry: nothing left to repair
            logger.info(
                "Source item not found, skipping",
                database=descriptor.source_database,
                item_id=descriptor.source_item_id,
            )
            result.success = True
            result.source_found = False
            return result

        with LogContext(
            action=action.value,
            source_item_id=descriptor.source_item_id,
            source_field_id=descriptor.source_field_id,
            target_item_id=descriptor.target_item_id,
        ):
            retained: set[ItemLink] = set()
            for version in source_item.get_versions(all_languages=True):
                kept = await self._repair_version(version, action, descriptor, new_target, result)
                if kept is not None:
                    retained.add(kept)

            reported = descriptor.reported_link()
            if (
                reported is not None
                and reported not in retained
                and not dry_run
                and await self._index.remove(reported)
            ):
                result.links_removed += 1

            result.success = True
            result.message = LINK_CHANGED_MESSAGE if action == RepairAction.RELINK else LINK_REMOVED_MESSAGE

            logger.info(
                "Link repair completed",
                dry_run=dry_run,
                repaired=result.versions_repaired,
                skipped=result.versions_skipped,
                links_removed=result.links_removed,
                links_inserted=result.links_inserted,
            )

        if not dry_run and self._settings.observability.metrics_enabled:
            self._metrics.increment_counter("link_repairs_total", labels={"action": action.value})
            self._metrics.increment_counter(
                "link_repair_versions_total", result.versions_repaired, labels={"outcome": "repaired"}
            )
            self._metrics.increment_counter(
                "link_repair_versions_total", result.versions_skipped, labels={"outcome": "skipped"}
            )

        return result

    async def _repair_version(
        self,
        version: ItemVersion,
        action: RepairAction,
        descriptor: ReferenceDescriptor,
        new_target: LinkTarget | None,
        result: RepairResult,
    ) -> ItemLink | None:
        """
        Repair one version.

        Returns:
            The version's old link when its field still encodes the target
        """
        source_field = version.field(descriptor.source_field_id)
        if source_field is None:
            result.record(version, VersionOutcome.MISSING_FIELD)
            return None

        codec = self._registry.resolve(source_field.type_name)
        if codec is None:
            result.record(version, VersionOutcome.UNSUPPORTED_FIELD, field_type=source_field.type_name)
            return None

        target_id = descriptor.target_item_id
        old_link = descriptor.link_for(version.language, version.number)

        if result.dry_run:
            outcome = (
                VersionOutcome.REPAIRED
                if codec.references(source_field.value, target_id)
                else VersionOutcome.REFERENCE_NOT_FOUND
            )
            result.record(version, outcome)
            return None

        try:
            with version.editing(maintenance_mode=self._settings.repair.maintenance_mode):
                source_field.value = self._rewrite(codec, source_field.value, action, target_id, new_target)
        except ReferenceNotFound as e:
            logger.info(
                "Reference not found in version, skipping",
                language=version.language,
                version=version.number,
                error=str(e),
            )
            result.record(version, VersionOutcome.REFERENCE_NOT_FOUND)
            # The version no longer holds the reference its index entry describes
            if await self._index.remove(old_link):
                result.links_removed += 1
            return None
        except (EditConflict, AccessDenied) as e:
            logger.warning(
                "Version edit failed, skipping",
                language=version.language,
                version=version.number,
                error=str(e),
            )
            result.errors.append(f"{version.language}#{version.number}: {e}")
            result.record(version, VersionOutcome.EDIT_FAILED, error=str(e))
            # The edit was cancelled, so the value and its index entry stand
            return old_link if codec.references(source_field.value, target_id) else None

        result.record(version, VersionOutcome.REPAIRED)

        # A field may encode the same target more than once; only the first was rewritten
        retained = codec.references(source_field.value, target_id)
        if not retained and await self._index.remove(old_link):
            result.links_removed += 1

        if new_target is not None and self._settings.repair.reinsert_relinked:
            await self._index.insert(
                old_link.retarget(new_target.database, new_target.item_id, new_target.path)
            )
            result.links_inserted += 1

        return old_link if retained else None

    @staticmethod
    def _rewrite(
        codec: FieldCodec,
        raw: str,
        action: RepairAction,
        target_id: str,
        new_target: LinkTarget | None,
    ) -> str:
        if action == RepairAction.RELINK:
            if new_target is None:
                raise ValueError("Relink requires a replacement target")
            return codec.rewrite(raw, target_id, new_target)
        return codec.remove(raw, target_id)

