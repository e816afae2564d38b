"""
FastAPI Application for Content Link Repair.

REST surface for the operator: build a reference report, then relink or
remove a reported reference using the descriptor carried by the report row.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from linkrepair.config.settings import get_settings
from linkrepair.content.store import ContentStore
from linkrepair.exceptions import NotFoundError, TargetNotFound
from linkrepair.links.link_index import InMemoryLinkIndex, LinkIndex, create_link_index
from linkrepair.links.neo4j_index import Neo4jLinkIndex
from linkrepair.links.repair import LinkRepairEngine
from linkrepair.links.report import ReferenceReportBuilder
from linkrepair.links.schema import ReferenceDescriptor, ReportRecord
from linkrepair.observability.correlation import CorrelationMiddleware
from linkrepair.observability.logging import configure_logging
from linkrepair.observability.metrics import get_metrics_registry

settings = get_settings()

configure_logging(
    level=settings.log_level,
    format=settings.observability.log_format,
    service_name=settings.app_name,
)

logger = structlog.get_logger(__name__)

# =============================================================================
# Global State
# =============================================================================

_content_store: ContentStore | None = None
_link_index: LinkIndex | None = None


def configure_services(store: ContentStore, index: LinkIndex) -> None:
    """Install the content store and link index the endpoints operate on."""
    global _content_store, _link_index
    _content_store = store
    _link_index = index


def get_content_store() -> ContentStore:
    """Get the configured content store."""
    if _content_store is None:
        raise HTTPException(status_code=503, detail="Content store not configured")
    return _content_store


def get_link_index() -> LinkIndex:
    """Get the configured link index, creating the default backend on first use."""
    global _link_index
    if _link_index is None:
        _link_index = create_link_index()
    return _link_index


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Content Link Repair API", version=settings.app_version)

    index = get_link_index()
    if isinstance(index, Neo4jLinkIndex):
        try:
            await index.connect()
            await index.setup_schema()
        except Exception as e:
            logger.warning("Neo4j link index unavailable", error=str(e))

    yield

    if isinstance(index, Neo4jLinkIndex):
        await index.close()
    logger.info("Content Link Repair API stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)
app.add_middleware(CorrelationMiddleware)


# =============================================================================
# Request/Response Models
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    link_index: str
    content_store: bool


class ReportRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1, description="Selected item IDs or paths")
    ignore_clones: bool | None = Field(default=None, description="Hide clone-source references")
    database: str | None = Field(default=None, description="Database of the selection")


class ReportResponse(BaseModel):
    records: list[ReportRecord]
    summary: dict[str, Any]


class RelinkRequest(BaseModel):
    descriptor: ReferenceDescriptor
    new_target_id: str = Field(..., description="Item the reference should point to")
    dry_run: bool = False


class RemoveRequest(BaseModel):
    descriptor: ReferenceDescriptor
    dry_run: bool = False


class RepairResponse(BaseModel):
    success: bool
    action: str
    token: str
    message: str
    source_found: bool
    dry_run: bool
    versions_repaired: int
    versions_skipped: int
    links_removed: int
    links_inserted: int
    details: list[dict[str, Any]]
    errors: list[str]


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/api/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if _content_store is not None else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        link_index=type(get_link_index()).__name__,
        content_store=_content_store is not None,
    )


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> PlainTextResponse:
    """Prometheus-format metrics."""
    registry = get_metrics_registry()
    index = get_link_index()
    if isinstance(index, InMemoryLinkIndex):
        registry.set_gauge("link_index_size", len(index))
    return PlainTextResponse(registry.get_prometheus_output())


@app.post("/api/links/report", response_model=ReportResponse, tags=["Links"])
async def build_report(request: ReportRequest) -> ReportResponse:
    """
    Report the references to the selected items and their descendants.

    Each record carries the descriptor to pass back to relink/remove.
    """
    builder = ReferenceReportBuilder(get_content_store(), get_link_index(), settings.report)
    try:
        report = await builder.build(
            request.item_ids,
            ignore_clones=request.ignore_clones,
            database=request.database,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    summary = report.to_dict()["summary"]
    return ReportResponse(records=report.records, summary=summary)


@app.post("/api/links/relink", response_model=RepairResponse, tags=["Links"])
async def relink(request: RelinkRequest) -> RepairResponse:
    """Point the reported reference at another item in every source version."""
    engine = LinkRepairEngine(get_content_store(), get_link_index(), settings=settings)
    try:
        result = await engine.relink(request.descriptor, request.new_target_id, dry_run=request.dry_run)
    except TargetNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return RepairResponse(**result.to_dict())


@app.post("/api/links/remove", response_model=RepairResponse, tags=["Links"])
async def remove(request: RemoveRequest) -> RepairResponse:
    """Remove the reported reference from every source version."""
    engine = LinkRepairEngine(get_content_store(), get_link_index(), settings=settings)
    try:
        result = await engine.remove(request.descriptor, dry_run=request.dry_run)
    except TargetNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return RepairResponse(**result.to_dict())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "linkrepair.api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
