"""
Neo4j Link Index.

Durable link index backend. Items are ``ContentItem`` nodes keyed by
(database, id); every ItemLink is a ``LINKS_TO`` relationship carrying the
source version coordinates.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import ClientError

from linkrepair.config.settings import Neo4jSettings, get_settings
from linkrepair.content.ids import normalize_id
from linkrepair.links.link_index import LinkIndex
from linkrepair.links.schema import ItemLink

logger = structlog.get_logger(__name__)

_LINK_RETURN = """
RETURN s.database AS source_database, s.id AS source_item_id,
       r.source_language AS source_language, r.source_version AS source_version,
       r.source_field_id AS source_field_id,
       t.database AS target_database, t.id AS target_item_id,
       r.target_language AS target_language, r.target_version AS target_version,
       r.target_path AS target_path
ORDER BY source_database, source_item_id, source_language, source_version, source_field_id
"""


class Neo4jLinkIndex(LinkIndex):
    """
    Link index stored in Neo4j.

    Usage:
        ```python
        index = Neo4jLinkIndex()
        await index.connect()
        await index.setup_schema()
        links = await index.references_to("{...}")
        await index.close()
        ```
    """

    SCHEMA_CONSTRAINTS = [
        "CREATE CONSTRAINT content_item_key IF NOT EXISTS "
        "FOR (n:ContentItem) REQUIRE (n.database, n.id) IS UNIQUE",
    ]

    SCHEMA_INDEXES = [
        "CREATE INDEX content_item_id IF NOT EXISTS FOR (n:ContentItem) ON (n.id)",
        "CREATE INDEX links_to_field IF NOT EXISTS FOR ()-[r:LINKS_TO]-() ON (r.source_field_id)",
    ]

    def __init__(self, settings: Neo4jSettings | None = None) -> None:
        self._driver: AsyncDriver | None = None
        self._settings = settings or get_settings().neo4j

    async def connect(self) -> None:
        """Establish connection to Neo4j."""
        if self._driver is not None:
            return

        self._driver = AsyncGraphDatabase.driver(
            self._settings.uri,
            auth=(self._settings.username, self._settings.password.get_secret_value()),
            max_connection_pool_size=self._settings.max_connection_pool_size,
        )
        await self._driver.verify_connectivity()
        logger.info("Connected to Neo4j", uri=self._settings.uri)

    async def close(self) -> None:
        """Close the database connection."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Disconnected from Neo4j")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        if self._driver is None:
            await self.connect()

        assert self._driver is not None  # Type guard for mypy
        async with self._driver.session(database=self._settings.database) as session:
            yield session

    async def setup_schema(self) -> dict[str, Any]:
        """
        Create constraints and indexes.

        Returns:
            Dictionary with creation results
        """
        results: dict[str, list[Any]] = {"constraints": [], "indexes": [], "errors": []}

        async with self.session() as session:
            for kind, queries in (("constraints", self.SCHEMA_CONSTRAINTS), ("indexes", self.SCHEMA_INDEXES)):
                for query in queries:
                    try:
                        await session.run(query)
                        results[kind].append({"query": query[:50], "status": "created"})
                    except ClientError as e:
                        if "already exists" in str(e).lower():
                            results[kind].append({"query": query[:50], "status": "exists"})
                        else:
                            results["errors"].append({"query": query[:50], "error": str(e)})
                            logger.warning("Schema statement failed", error=str(e))

        logger.info(
            "Link index schema ready",
            constraints=len(results["constraints"]),
            indexes=len(results["indexes"]),
            errors=len(results["errors"]),
        )
        return results

    async def execute_cypher(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a Cypher query and return records as dictionaries."""
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            records: list[dict[str, Any]] = await result.data()

        logger.debug(
            "Cypher executed",
            query=query[:100],
            param_count=len(parameters) if parameters else 0,
            result_count=len(records),
        )
        return records

    @staticmethod
    def _link_params(link: ItemLink) -> dict[str, Any]:
        params = link.to_dict()
        # Item-level links are stored with an empty field ID so MERGE can match them
        params["source_field_id"] = link.source_field_id or ""
        return params

    async def references_to(self, target_item_id: str, database: str | None = None) -> list[ItemLink]:
        query = (
            "MATCH (s:ContentItem)-[r:LINKS_TO]->(t:ContentItem {id: $target_item_id}) "
            "WHERE $database IS NULL OR t.database = $database "
            + _LINK_RETURN
        )
        records = await self.execute_cypher(
            query,
            {
                "target_item_id": normalize_id(target_item_id),
                "database": database.lower() if database else None,
            },
        )
        return [ItemLink.from_dict(record) for record in records]

    async def references_from(self, source_database: str, source_item_id: str) -> list[ItemLink]:
        query = (
            "MATCH (s:ContentItem {database: $database, id: $source_item_id})-[r:LINKS_TO]->(t:ContentItem) "
            + _LINK_RETURN
        )
        records = await self.execute_cypher(
            query,
            {"database": source_database.lower(), "source_item_id": normalize_id(source_item_id)},
        )
        return [ItemLink.from_dict(record) for record in records]

    async def insert(self, link: ItemLink) -> None:
        query = """
        MERGE (s:ContentItem {database: $source_database, id: $source_item_id})
        MERGE (t:ContentItem {database: $target_database, id: $target_item_id})
        MERGE (s)-[r:LINKS_TO {
            source_language: $source_language,
            source_version: $source_version,
            source_field_id: $source_field_id
        }]->(t)
        SET r.target_language = $target_language,
            r.target_version = $target_version,
            r.target_path = $target_path
        """
        await self.execute_cypher(query, self._link_params(link))

    async def remove(self, link: ItemLink) -> bool:
        query = """
        MATCH (s:ContentItem {database: $source_database, id: $source_item_id})
              -[r:LINKS_TO {
                  source_language: $source_language,
                  source_version: $source_version,
                  source_field_id: $source_field_id
              }]->(t:ContentItem {database: $target_database, id: $target_item_id})
        DELETE r
        RETURN count(*) AS removed
        """
        records = await self.execute_cypher(query, self._link_params(link))
        return bool(records and records[0].get("removed", 0))
