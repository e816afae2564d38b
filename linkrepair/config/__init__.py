"""Configuration module."""

from linkrepair.config.settings import (
    SOURCE_FIELD_ID,
    SOURCE_ITEM_FIELD_ID,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "SOURCE_FIELD_ID",
    "SOURCE_ITEM_FIELD_ID",
]
