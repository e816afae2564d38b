"""
Link Repair Errors.

Only TargetNotFound aborts a relink/remove. The engine absorbs the rest
per version and records them on the RepairResult.
"""


class LinkRepairError(Exception):
    """Base error for link reporting and repair."""


class NotFoundError(LinkRepairError):
    """A database, item or field could not be resolved."""


class TargetNotFound(NotFoundError):
    """The link target (or the replacement target) does not exist."""

    def __init__(self, database: str, item_id: str):
        self.database = database
        self.item_id = item_id
        super().__init__(f"Target item {item_id} not found in database '{database}'")


class ItemNotFound(NotFoundError):
    """An item selected for a report does not exist."""

    def __init__(self, database: str, item_id: str):
        self.database = database
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in database '{database}'")


class UnsupportedFieldType(LinkRepairError):
    """No codec is registered for the field type."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"No link codec registered for field type '{type_name}'")


class ReferenceNotFound(LinkRepairError):
    """The field value does not encode the expected reference."""

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"Reference to {target_id} not found in field value")


class EditConflict(LinkRepairError):
    """The content store rejected a version edit."""


class AccessDenied(LinkRepairError):
    """The item is protected and maintenance mode was not requested."""
