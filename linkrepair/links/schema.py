"""
Link Schema Models.

Defines the reference record stored in the link index, the decoded form of
an encoded reference, and the descriptor/record types the operator surface
round-trips.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, Field, field_validator

from linkrepair.content.ids import normalize_id

INVARIANT_LANGUAGE = ""
LATEST_VERSION = 0


def _normalize_optional(value: str | None) -> str | None:
    return normalize_id(value) if value else None


@dataclass(frozen=True)
class ItemLink:
    """
    One encoded reference from a field of a source version to a target item.

    Equality covers the source tuple and the target database/ID; target
    language, version and path describe the target only.
    """

    source_database: str
    source_item_id: str
    source_language: str
    source_version: int
    source_field_id: str | None
    target_database: str
    target_item_id: str
    target_language: str = field(default=INVARIANT_LANGUAGE, compare=False)
    target_version: int = field(default=LATEST_VERSION, compare=False)
    target_path: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_database", self.source_database.lower())
        object.__setattr__(self, "target_database", self.target_database.lower())
        object.__setattr__(self, "source_item_id", normalize_id(self.source_item_id))
        object.__setattr__(self, "target_item_id", normalize_id(self.target_item_id))
        object.__setattr__(self, "source_field_id", _normalize_optional(self.source_field_id))

    @property
    def is_item_level(self) -> bool:
        """Reference held by the item itself (e.g. its template) rather than a field."""
        return self.source_field_id is None

    @property
    def sort_key(self) -> tuple[str, str, str, int, str, str, str]:
        return (
            self.source_database,
            self.source_item_id,
            self.source_language,
            self.source_version,
            self.source_field_id or "",
            self.target_database,
            self.target_item_id,
        )

    def retarget(self, target_database: str, target_item_id: str, target_path: str = "") -> "ItemLink":
        """Same source, different target."""
        return replace(
            self,
            target_database=target_database,
            target_item_id=target_item_id,
            target_path=target_path,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_database": self.source_database,
            "source_item_id": self.source_item_id,
            "source_language": self.source_language,
            "source_version": self.source_version,
            "source_field_id": self.source_field_id,
            "target_database": self.target_database,
            "target_item_id": self.target_item_id,
            "target_language": self.target_language,
            "target_version": self.target_version,
            "target_path": self.target_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemLink":
        return cls(
            source_database=data["source_database"],
            source_item_id=data["source_item_id"],
            source_language=data.get("source_language") or INVARIANT_LANGUAGE,
            source_version=int(data.get("source_version") or LATEST_VERSION),
            source_field_id=data.get("source_field_id"),
            target_database=data["target_database"],
            target_item_id=data["target_item_id"],
            target_language=data.get("target_language") or INVARIANT_LANGUAGE,
            target_version=int(data.get("target_version") or LATEST_VERSION),
            target_path=data.get("target_path") or "",
        )


@dataclass(frozen=True)
class LinkTarget:
    """Item a codec writes into a field value."""

    item_id: str
    path: str = ""
    database: str = ""


@dataclass(frozen=True)
class DecodedReference:
    """A reference found in a raw field value, at its encoding position."""

    target_id: str
    position: int


def new_correlation_token() -> str:
    """Short per-record token used by the operator surface to address a report row."""
    return "L" + uuid.uuid4().hex.upper()


class ReferenceDescriptor(BaseModel):
    """Fully qualified reference the operator hands back to relink or remove."""

    target_database: str = Field(..., description="Database of the referenced item")
    target_item_id: str = Field(..., description="Referenced item ID")
    target_path: str = Field(default="", description="Path of the referenced item")
    source_database: str = Field(..., description="Database of the referring item")
    source_item_id: str = Field(..., description="Referring item ID")
    source_field_id: str = Field(..., description="Field holding the reference")
    token: str = Field(default_factory=new_correlation_token, description="Report row token")
    source_language: str | None = Field(default=None, description="Language of the reported version")
    source_version: int | None = Field(default=None, description="Number of the reported version")

    @field_validator("target_item_id", "source_item_id")
    @classmethod
    def _normalize_item_id(cls, value: str) -> str:
        return normalize_id(value)

    @field_validator("source_field_id")
    @classmethod
    def _normalize_field_id(cls, value: str) -> str:
        # Empty for item-level references
        return normalize_id(value) if value else ""

    @classmethod
    def from_link(cls, link: ItemLink, token: str | None = None) -> "ReferenceDescriptor":
        return cls(
            target_database=link.target_database,
            target_item_id=link.target_item_id,
            target_path=link.target_path,
            source_database=link.source_database,
            source_item_id=link.source_item_id,
            source_field_id=link.source_field_id or "",
            token=token or new_correlation_token(),
            source_language=link.source_language,
            source_version=link.source_version,
        )

    def reported_link(self) -> ItemLink | None:
        """The exact index entry the report row came from, when known."""
        if self.source_language is None or self.source_version is None:
            return None
        return self.link_for(self.source_language, self.source_version)

    def link_for(self, language: str, version: int) -> ItemLink:
        """The index entry this reference has in one source version."""
        return ItemLink(
            source_database=self.source_database,
            source_item_id=self.source_item_id,
            source_language=language,
            source_version=version,
            source_field_id=self.source_field_id or None,
            target_database=self.target_database,
            target_item_id=self.target_item_id,
            target_path=self.target_path,
        )


class ReportRecord(BaseModel):
    """One row of a reference report."""

    referrer_id: str
    referrer_name: str
    referrer_path: str
    field_label: str
    item_level: bool = False
    target_path: str
    descriptor: ReferenceDescriptor
