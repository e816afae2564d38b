"""
Pytest Configuration and Shared Fixtures.

Builds a small content tree whose items reference each other through every
built-in field type, plus a link index populated from it.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from linkrepair.config.settings import SOURCE_ITEM_FIELD_ID, Settings, get_settings
from linkrepair.content.ids import short_id
from linkrepair.content.store import ContentStore, Database, Item, Template
from linkrepair.links.codecs import FieldCodecRegistry, create_default_registry
from linkrepair.links.link_index import InMemoryLinkIndex, update_item_references
from linkrepair.links.neo4j_index import Neo4jLinkIndex
from linkrepair.links.repair import LinkRepairEngine
from linkrepair.links.report import ReferenceReportBuilder
from linkrepair.observability.metrics import MetricsRegistry

# =============================================================================
# Identifiers
# =============================================================================

RELATED_FIELD = "{A1000000-0000-0000-0000-000000000001}"
TAGS_FIELD = "{A1000000-0000-0000-0000-000000000002}"
LINK_FIELD = "{A1000000-0000-0000-0000-000000000003}"
BODY_FIELD = "{A1000000-0000-0000-0000-000000000004}"
IMAGE_FIELD = "{A1000000-0000-0000-0000-000000000005}"
TITLE_FIELD = "{A1000000-0000-0000-0000-000000000006}"
LEGACY_FIELD = "{A1000000-0000-0000-0000-000000000007}"

HOME_ID = "{B2000000-0000-0000-0000-000000000001}"
PRODUCTS_ID = "{B2000000-0000-0000-0000-000000000002}"
WIDGET_ID = "{B2000000-0000-0000-0000-000000000003}"
ARTICLE_ID = "{B2000000-0000-0000-0000-000000000004}"
LISTING_ID = "{B2000000-0000-0000-0000-000000000005}"
CLONE_ID = "{B2000000-0000-0000-0000-000000000006}"
REPLACEMENT_ID = "{B2000000-0000-0000-0000-000000000007}"


@dataclass
class SampleContent:
    """Handles on the sample tree."""

    store: ContentStore
    master: Database
    template: Template
    home: Item
    products: Item
    widget: Item
    article: Item
    listing: Item
    clone: Item
    replacement: Item


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with mock values."""
    with patch.dict(
        "os.environ",
        {
            "NEO4J_URI": "bolt://localhost:7687",
            "NEO4J_USERNAME": "neo4j",
            "NEO4J_PASSWORD": "password123",
            "LINK_INDEX_BACKEND": "memory",
            "REPORT_CONTENT_DATABASE": "master",
        },
    ):
        get_settings.cache_clear()
        return get_settings()


# =============================================================================
# Content Fixtures
# =============================================================================


def build_template() -> Template:
    template = Template(id="{C3000000-0000-0000-0000-000000000001}", name="Page")
    template.add_field("Related", "Droplink", RELATED_FIELD)
    template.add_field("Tags", "Multilist", TAGS_FIELD)
    template.add_field("Link", "General Link", LINK_FIELD)
    template.add_field("Body", "Rich Text", BODY_FIELD)
    template.add_field("Image", "Image", IMAGE_FIELD)
    template.add_field("Title", "Single-Line Text", TITLE_FIELD)
    template.add_field("__Source Item", "Droptree", SOURCE_ITEM_FIELD_ID)
    return template


@pytest.fixture
def sample_content() -> SampleContent:
    """
    /sitecore/content/Home
        Products            <- referenced by Article, Listing, Clone
            Widget          <- referenced by Listing
        Article             en#1, en#2, de#1
        Listing
        Clone
        Replacement
    """
    store = ContentStore()
    master = store.add_database("master")
    template = build_template()

    sitecore = master.add_item("sitecore")
    content = master.add_item("content", parent=sitecore)
    home = master.add_item("Home", parent=content, template=template, item_id=HOME_ID)
    products = master.add_item("Products", parent=home, template=template, item_id=PRODUCTS_ID)
    widget = master.add_item("Widget", parent=products, template=template, item_id=WIDGET_ID)
    article = master.add_item(
        "Article", parent=home, template=template, item_id=ARTICLE_ID, display_name="Launch Article"
    )
    listing = master.add_item("Listing", parent=home, template=template, item_id=LISTING_ID)
    clone = master.add_item("Clone", parent=home, template=template, item_id=CLONE_ID)
    replacement = master.add_item("Replacement", parent=home, template=template, item_id=REPLACEMENT_ID)

    for item in (home, products, widget, replacement):
        item.add_version("en", {TITLE_FIELD: item.name})

    article.add_version(
        "en",
        {
            RELATED_FIELD: PRODUCTS_ID,
            BODY_FIELD: f'<p>See <a href="~/link.aspx?_id={short_id(PRODUCTS_ID)}&amp;_z=z">products</a>.</p>',
        },
    )
    article.add_version("en", {RELATED_FIELD: PRODUCTS_ID})
    article.add_version("de", {RELATED_FIELD: PRODUCTS_ID})

    listing.add_version("en", {TAGS_FIELD: f"{PRODUCTS_ID}|{WIDGET_ID}"})
    clone.add_version("en", {SOURCE_ITEM_FIELD_ID: PRODUCTS_ID})

    return SampleContent(
        store=store,
        master=master,
        template=template,
        home=home,
        products=products,
        widget=widget,
        article=article,
        listing=listing,
        clone=clone,
        replacement=replacement,
    )


@pytest.fixture
def codec_registry() -> FieldCodecRegistry:
    return create_default_registry()


@pytest.fixture
async def link_index(
    sample_content: SampleContent,
    codec_registry: FieldCodecRegistry,
) -> AsyncGenerator[InMemoryLinkIndex, None]:
    """Link index populated from every item of the sample tree."""
    index = InMemoryLinkIndex()
    for item in (
        sample_content.home,
        sample_content.products,
        sample_content.widget,
        sample_content.article,
        sample_content.listing,
        sample_content.clone,
        sample_content.replacement,
    ):
        await update_item_references(index, item, codec_registry)
    yield index


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def repair_engine(
    sample_content: SampleContent,
    link_index: InMemoryLinkIndex,
    codec_registry: FieldCodecRegistry,
    test_settings: Settings,
    metrics: MetricsRegistry,
) -> LinkRepairEngine:
    return LinkRepairEngine(
        sample_content.store,
        link_index,
        registry=codec_registry,
        settings=test_settings,
        metrics=metrics,
    )


@pytest.fixture
def report_builder(
    sample_content: SampleContent,
    link_index: InMemoryLinkIndex,
    test_settings: Settings,
) -> ReferenceReportBuilder:
    return ReferenceReportBuilder(sample_content.store, link_index, test_settings.report)


# =============================================================================
# Neo4j Fixtures
# =============================================================================


@pytest.fixture
def mock_neo4j_session() -> MagicMock:
    """Mock async Neo4j session returning no records."""
    session = MagicMock()
    result = MagicMock()
    result.data = AsyncMock(return_value=[])
    session.run = AsyncMock(return_value=result)
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


@pytest.fixture
def mock_neo4j_index(mock_neo4j_session: MagicMock, test_settings: Settings) -> Neo4jLinkIndex:
    """Neo4jLinkIndex wired to a mock driver."""
    index = Neo4jLinkIndex(settings=test_settings.neo4j)
    driver = MagicMock()
    driver.session.return_value = mock_neo4j_session
    driver.close = AsyncMock()
    index._driver = driver
    return index
