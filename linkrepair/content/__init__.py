"""
Content Store Module.

Databases, items, templates and versions the link engine reads and edits.
"""

from linkrepair.content.ids import (
    is_id,
    new_id,
    normalize_id,
    parse_id,
    same_id,
    short_id,
)
from linkrepair.content.store import (
    ContentStore,
    Database,
    Field,
    Item,
    ItemVersion,
    Template,
    TemplateField,
)

__all__ = [
    # IDs
    "is_id",
    "new_id",
    "normalize_id",
    "parse_id",
    "same_id",
    "short_id",
    # Store
    "ContentStore",
    "Database",
    "Field",
    "Item",
    "ItemVersion",
    "Template",
    "TemplateField",
]
