"""
Unit Tests for the in-memory Content Store and ID helpers.
"""

import pytest

from linkrepair.content.ids import is_id, is_short_id, normalize_id, parse_id, same_id, short_id
from linkrepair.content.store import ContentStore, Database
from linkrepair.exceptions import AccessDenied, EditConflict

from tests.conftest import ARTICLE_ID, PRODUCTS_ID, RELATED_FIELD, TITLE_FIELD, WIDGET_ID


class TestIds:
    """Test cases for item ID parsing."""

    def test_normalize_any_spelling(self) -> None:
        raw = PRODUCTS_ID.strip("{}").lower()

        assert normalize_id(raw) == PRODUCTS_ID
        assert normalize_id(short_id(PRODUCTS_ID)) == PRODUCTS_ID

    def test_normalize_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            normalize_id("products")

    def test_parse_and_compare(self) -> None:
        assert parse_id("nope") is None
        assert is_id(PRODUCTS_ID.lower())
        assert not is_id("")
        assert same_id(PRODUCTS_ID, PRODUCTS_ID.lower())
        assert not same_id(PRODUCTS_ID, None)

    def test_short_id(self) -> None:
        value = short_id(PRODUCTS_ID)

        assert len(value) == 32
        assert value == value.upper()
        assert is_short_id(value)
        assert not is_short_id(PRODUCTS_ID)


class TestTree:
    """Test cases for databases and item paths."""

    def test_paths(self, sample_content) -> None:
        assert sample_content.widget.path == "/sitecore/content/Home/Products/Widget"
        assert sample_content.products.children == [sample_content.widget]

    def test_get_item_by_id_or_path(self, sample_content) -> None:
        master = sample_content.master

        assert master.get_item(WIDGET_ID.lower()) is sample_content.widget
        assert master.get_item("/sitecore/content/home/products/widget/") is sample_content.widget
        assert master.get_item("/sitecore/content/Missing") is None
        assert master.get_item("") is None

    def test_duplicate_id_rejected(self, sample_content) -> None:
        with pytest.raises(ValueError):
            sample_content.master.add_item("Copy", item_id=WIDGET_ID)

    def test_add_item_under_path(self) -> None:
        database = Database("web")
        database.add_item("sitecore")
        child = database.add_item("content", parent="/sitecore")

        assert child.path == "/sitecore/content"
        assert len(database) == 2

    def test_unknown_parent_path(self) -> None:
        with pytest.raises(KeyError):
            Database("web").add_item("orphan", parent="/missing")

    def test_store_lookup_is_case_insensitive(self, sample_content) -> None:
        store = sample_content.store

        assert store.get_database("MASTER") is sample_content.master
        assert store.get_database(None) is None

        store.remove_database("Master")
        assert store.get_database("master") is None
        assert store.database_names == []

    def test_empty_store(self) -> None:
        assert ContentStore().database_names == []


class TestVersions:
    """Test cases for versions and editing."""

    def test_versions_are_numbered_per_language(self, sample_content) -> None:
        versions = sample_content.article.get_versions()

        assert [(v.language, v.number) for v in versions] == [("en", 1), ("en", 2), ("de", 1)]
        assert sample_content.article.get_version("en").number == 2
        assert sample_content.article.get_version("fr") is None
        assert len(sample_content.article.get_versions(all_languages=False, language="de")) == 1

    def test_field_resolution(self, sample_content) -> None:
        version = sample_content.article.get_version("en", 1)

        related = version.field(RELATED_FIELD.lower())
        assert related is not None
        assert related.type_name == "Droplink"
        assert related.display_name == "Related"
        assert related.value == PRODUCTS_ID
        assert version.field("{00000000-0000-0000-0000-00000000FFFF}") is None
        assert version.field("not-an-id") is None

    def test_edit_commits(self, sample_content) -> None:
        version = sample_content.article.get_version("en", 1)

        with version.editing():
            version.field(RELATED_FIELD).value = WIDGET_ID

        assert version.get_value(RELATED_FIELD) == WIDGET_ID
        assert version.revision == 1
        assert not version.is_editing

    def test_edit_cancelled_on_error(self, sample_content) -> None:
        version = sample_content.article.get_version("en", 1)

        with pytest.raises(RuntimeError):
            with version.editing():
                version.set_value(RELATED_FIELD, WIDGET_ID)
                raise RuntimeError("boom")

        assert version.get_value(RELATED_FIELD) == PRODUCTS_ID
        assert version.revision == 0
        assert not version.is_editing

    def test_set_value_outside_edit(self, sample_content) -> None:
        version = sample_content.products.get_version("en")

        with pytest.raises(EditConflict):
            version.set_value(TITLE_FIELD, "Changed")

    def test_concurrent_edit_rejected(self, sample_content) -> None:
        version = sample_content.products.get_version("en")
        version.begin_edit()

        with pytest.raises(EditConflict):
            version.begin_edit()

        version.cancel_edit()
        assert version.get_value(TITLE_FIELD) == "Products"

    def test_protected_item(self, sample_content) -> None:
        sample_content.article.protected = True
        version = sample_content.article.get_version("de")

        with pytest.raises(AccessDenied):
            version.begin_edit()

        with version.editing(maintenance_mode=True):
            version.set_value(RELATED_FIELD, "")
        assert version.get_value(RELATED_FIELD) == ""

    def test_unchanged_commit_keeps_revision(self, sample_content) -> None:
        version = sample_content.article.get_version("de")

        with version.editing():
            version.set_value(RELATED_FIELD, PRODUCTS_ID)

        assert version.revision == 0

    def test_referrer_display_name(self, sample_content) -> None:
        assert sample_content.article.display_name == "Launch Article"
        assert sample_content.master.get_item(ARTICLE_ID).name == "Article"
