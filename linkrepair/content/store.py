"""
In-Memory Content Store.

Hierarchical item repository used by the report builder and the repair
engine:
- Databases holding items by ID and path
- Templates declaring typed fields
- Per-language ordered versions with raw field values
- Scoped editing (begin/end/cancel) with item protection
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

from linkrepair.content.ids import new_id, normalize_id, parse_id
from linkrepair.exceptions import AccessDenied, EditConflict

logger = structlog.get_logger(__name__)


@dataclass
class TemplateField:
    """Template-defined field: the source of a field's type."""

    id: str
    name: str
    type_name: str
    title: str | None = None

    @property
    def display_name(self) -> str:
        return self.title or self.name


@dataclass
class Template:
    """Item template declaring the fields its items carry."""

    id: str
    name: str
    fields: dict[str, TemplateField] = field(default_factory=dict)

    def add_field(self, name: str, type_name: str, field_id: str | None = None) -> TemplateField:
        template_field = TemplateField(id=normalize_id(field_id or new_id()), name=name, type_name=type_name)
        self.fields[template_field.id] = template_field
        return template_field

    def get_field(self, field_id: str) -> TemplateField | None:
        try:
            return self.fields.get(normalize_id(field_id))
        except ValueError:
            return None


class Field:
    """A field of one item version."""

    def __init__(self, version: "ItemVersion", field_id: str, template_field: TemplateField | None):
        self._version = version
        self.id = field_id
        self.template_field = template_field

    @property
    def type_name(self) -> str:
        return self.template_field.type_name if self.template_field else ""

    @property
    def display_name(self) -> str:
        return self.template_field.display_name if self.template_field else self.id

    @property
    def value(self) -> str:
        return self._version.get_value(self.id)

    @value.setter
    def value(self, raw: str) -> None:
        self._version.set_value(self.id, raw)

    def __repr__(self) -> str:
        return f"Field(id={self.id!r}, type={self.type_name!r})"


class ItemVersion:
    """
    One language/version variant of an item.

    Values are changed only inside an edit session; ``end_edit`` commits the
    staged values, ``cancel_edit`` discards them.
    """

    def __init__(self, item: "Item", language: str, number: int, values: dict[str, str] | None = None):
        self.item = item
        self.language = language
        self.number = number
        self._values: dict[str, str] = {normalize_id(k): v for k, v in (values or {}).items()}
        self._staged: dict[str, str] | None = None
        self.revision = 0

    @property
    def is_editing(self) -> bool:
        return self._staged is not None

    def field(self, field_id: str) -> Field | None:
        """Return the field if the template defines it or the version stores a value for it."""
        try:
            key = normalize_id(field_id)
        except ValueError:
            return None
        template_field = self.item.template.get_field(key) if self.item.template else None
        if template_field is None and key not in self._values:
            return None
        return Field(self, key, template_field)

    def get_value(self, field_id: str) -> str:
        key = normalize_id(field_id)
        if self._staged is not None:
            return self._staged.get(key, "")
        return self._values.get(key, "")

    def set_value(self, field_id: str, raw: str) -> None:
        if self._staged is None:
            raise EditConflict(f"{self} is not in editing mode")
        self._staged[normalize_id(field_id)] = raw

    @property
    def values(self) -> dict[str, str]:
        return dict(self._values)

    def begin_edit(self, maintenance_mode: bool = False) -> None:
        if self.item.protected and not maintenance_mode:
            raise AccessDenied(f"{self.item.path} is protected")
        if self._staged is not None:
            raise EditConflict(f"{self} is already being edited")
        self._staged = dict(self._values)

    def end_edit(self) -> bool:
        """Commit staged values. Returns True when anything changed."""
        if self._staged is None:
            raise EditConflict(f"{self} is not in editing mode")
        changed = self._staged != self._values
        self._values = self._staged
        self._staged = None
        if changed:
            self.revision += 1
        return changed

    def cancel_edit(self) -> None:
        self._staged = None

    @contextmanager
    def editing(self, maintenance_mode: bool = False) -> Iterator["ItemVersion"]:
        """
        Scoped edit session.

        Commits on normal exit. Any exception, including a failed commit,
        cancels the session before it propagates.
        """
        self.begin_edit(maintenance_mode=maintenance_mode)
        try:
            yield self
            self.end_edit()
        except BaseException:
            self.cancel_edit()
            raise

    def __repr__(self) -> str:
        return f"ItemVersion({self.item.id}, {self.language}, {self.number})"


class Item:
    """Content item: a node in the database tree with versions per language."""

    def __init__(
        self,
        database: "Database",
        item_id: str,
        name: str,
        template: Template | None = None,
        parent: "Item | None" = None,
        display_name: str | None = None,
        protected: bool = False,
    ):
        self.database = database
        self.id = normalize_id(item_id)
        self.name = name
        self.template = template
        self.parent = parent
        self._display_name = display_name
        self.protected = protected
        self.children: list[Item] = []
        self._versions: dict[str, list[ItemVersion]] = {}

    @property
    def display_name(self) -> str:
        return self._display_name or self.name

    @property
    def path(self) -> str:
        parts = []
        node: Item | None = self
        while node is not None:
            parts.append(node.name)
            node = node.parent
        return "/" + "/".join(reversed(parts))

    @property
    def languages(self) -> list[str]:
        return list(self._versions)

    def add_version(self, language: str = "en", values: dict[str, str] | None = None) -> ItemVersion:
        versions = self._versions.setdefault(language, [])
        version = ItemVersion(self, language, len(versions) + 1, values)
        versions.append(version)
        return version

    def get_version(self, language: str, number: int | None = None) -> ItemVersion | None:
        versions = self._versions.get(language, [])
        if not versions:
            return None
        if number is None:
            return versions[-1]
        for version in versions:
            if version.number == number:
                return version
        return None

    def get_versions(self, all_languages: bool = True, language: str = "en") -> list[ItemVersion]:
        """Versions in language order then version number."""
        if not all_languages:
            return list(self._versions.get(language, []))
        return [version for versions in self._versions.values() for version in versions]

    def __repr__(self) -> str:
        return f"Item({self.database.name}:{self.path})"


class Database:
    """Named item tree."""

    def __init__(self, name: str):
        self.name = name
        self._items: dict[str, Item] = {}
        self.roots: list[Item] = []

    def add_item(
        self,
        name: str,
        parent: Item | str | None = None,
        template: Template | None = None,
        item_id: str | None = None,
        **kwargs: Any,
    ) -> Item:
        if isinstance(parent, str):
            resolved = self.get_item(parent)
            if resolved is None:
                raise KeyError(f"Parent {parent} not found in '{self.name}'")
            parent = resolved

        item = Item(self, item_id or new_id(), name, template=template, parent=parent, **kwargs)
        if item.id in self._items:
            raise ValueError(f"Duplicate item ID {item.id} in '{self.name}'")

        self._items[item.id] = item
        if parent is None:
            self.roots.append(item)
        else:
            parent.children.append(item)
        return item

    def get_item(self, item_id_or_path: str) -> Item | None:
        """Resolve an item by ID (any spelling) or by path."""
        if not item_id_or_path:
            return None
        if parse_id(item_id_or_path) is not None:
            return self._items.get(normalize_id(item_id_or_path))
        if item_id_or_path.startswith("/"):
            wanted = item_id_or_path.rstrip("/").lower()
            for item in self._items.values():
                if item.path.lower() == wanted:
                    return item
        return None

    def __contains__(self, item_id: str) -> bool:
        return self.get_item(item_id) is not None

    def __len__(self) -> int:
        return len(self._items)


class ContentStore:
    """Registry of databases."""

    def __init__(self, databases: list[Database] | None = None):
        self._databases: dict[str, Database] = {}
        for database in databases or []:
            self.add_database(database)

    def add_database(self, database: Database | str) -> Database:
        if isinstance(database, str):
            database = Database(database)
        self._databases[database.name.lower()] = database
        return database

    def get_database(self, name: str | None) -> Database | None:
        if not name:
            return None
        return self._databases.get(name.lower())

    def remove_database(self, name: str) -> None:
        self._databases.pop(name.lower(), None)
        logger.info("Database removed", database=name)

    @property
    def database_names(self) -> list[str]:
        return [database.name for database in self._databases.values()]
