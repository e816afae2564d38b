"""
Link Integrity Management.

Reference reporting and repair for content items:
- Field codecs decoding references from raw field values
- Reverse link index (in-memory and Neo4j)
- Relink/remove across all versions of a referring item
- Reference reports over content subtrees
"""

from linkrepair.links.codecs import (
    FieldCodec,
    FieldCodecRegistry,
    create_default_registry,
    get_codec_registry,
)
from linkrepair.links.link_index import (
    InMemoryLinkIndex,
    LinkIndex,
    create_link_index,
    update_item_references,
)
from linkrepair.links.repair import (
    LinkRepairEngine,
    RepairAction,
    RepairResult,
    VersionOutcome,
)
from linkrepair.links.report import (
    ReferenceReport,
    ReferenceReportBuilder,
)
from linkrepair.links.schema import (
    DecodedReference,
    ItemLink,
    LinkTarget,
    ReferenceDescriptor,
    ReportRecord,
)

__all__ = [
    # Schema
    "ItemLink",
    "LinkTarget",
    "DecodedReference",
    "ReferenceDescriptor",
    "ReportRecord",
    # Codecs
    "FieldCodec",
    "FieldCodecRegistry",
    "create_default_registry",
    "get_codec_registry",
    # Index
    "LinkIndex",
    "InMemoryLinkIndex",
    "create_link_index",
    "update_item_references",
    # Repair
    "LinkRepairEngine",
    "RepairAction",
    "RepairResult",
    "VersionOutcome",
    # Report
    "ReferenceReport",
    "ReferenceReportBuilder",
]
