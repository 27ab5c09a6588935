"""MCP server documenting HTTP exchanges with OpenAPI specifications."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from mcp.server.fastmcp import Context, FastMCP

from .annotations import AnnotationCache
from .config import Settings, configure_logging, load_sources
from .errors import InvalidSpecificationError, SpecParseError
from .models import ApiExchange, Exchange, ExchangeRequest, ExchangeResponse
from .parsers.documents import parse_document
from .registry import SpecRegistry
from .validator import validate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Start loading the configured specifications at startup."""
    settings = Settings()
    registry = SpecRegistry(fetch_timeout=settings.fetch_timeout)

    try:
        sources = load_sources(settings.specs_file)
    except FileNotFoundError as e:
        logger.warning("%s; starting without configured specifications", e)
        sources = []

    logger.info("Loading %d specification(s)...", len(sources))
    registry.load_sources(sources)
    yield {"registry": registry, "cache": AnnotationCache(registry)}


# Create the MCP server
mcp = FastMCP(
    "Exchange Documentation",
    lifespan=lifespan,
)


def get_registry(ctx: Context) -> SpecRegistry:
    """Get the spec registry from context."""
    return ctx.request_context.lifespan_context["registry"]


def get_cache(ctx: Context) -> AnnotationCache:
    """Get the annotation cache from context."""
    return ctx.request_context.lifespan_context["cache"]


def _violations_to_dicts(violations) -> list[dict]:
    return [
        {"pointer": v.pointer, "keyword": v.keyword, "message": v.message}
        for v in violations
    ]


@mcp.tool()
async def list_specs(ctx: Context) -> list[dict]:
    """List the registered OpenAPI specifications.

    Returns each specification's id, title, the server URLs it is mounted at
    and its number of operations. Waits for specifications still loading.
    """
    registry = get_registry(ctx)
    await registry.settled()
    return [
        {
            "spec_id": spec.spec_id,
            "name": spec.name,
            "servers": [base.url for base in spec.servers],
            "builtin": spec.builtin,
            "operation_count": sum(1 for _ in spec.operations()),
        }
        for spec in registry.specifications
    ]


@mcp.tool()
async def validate_spec(document: str) -> dict:
    """Validate an OpenAPI 3.1 document (YAML or JSON text).

    Args:
        document: The document text

    Returns whether the document is valid and the list of violations, each
    with the JSON Pointer of the offending value.
    """
    try:
        parsed = parse_document(document)
    except SpecParseError as e:
        return {"valid": False, "error": str(e), "violations": []}

    outcome = validate(parsed)
    return {"valid": outcome.valid, "violations": _violations_to_dicts(outcome.violations)}


@mcp.tool()
async def register_spec(
    ctx: Context,
    document: str,
    spec_id: Optional[str] = None,
    source_url: Optional[str] = None,
) -> dict:
    """Register an OpenAPI 3.1 document so matching exchanges get documented.

    Args:
        document: The document text (YAML or JSON)
        spec_id: Registry id; registering an existing id replaces it
        source_url: URL the document came from, used to resolve relative server URLs

    Returns the registered specification, or the reasons it was rejected.
    """
    registry = get_registry(ctx)
    try:
        spec = registry.register(parse_document(document), spec_id=spec_id, source=source_url)
    except SpecParseError as e:
        return {"registered": False, "error": str(e), "violations": []}
    except InvalidSpecificationError as e:
        return {
            "registered": False,
            "error": str(e),
            "violations": _violations_to_dicts(e.violations),
        }

    get_cache(ctx).clear()
    return {
        "registered": True,
        "spec_id": spec.spec_id,
        "name": spec.name,
        "servers": [base.url for base in spec.servers],
    }


@mcp.tool()
async def annotate_exchange(
    ctx: Context,
    method: str,
    url: str,
    request_headers: Optional[dict[str, str]] = None,
    request_body: Optional[str] = None,
    status_code: Optional[int] = None,
    response_headers: Optional[dict[str, str]] = None,
    response_body: Optional[str] = None,
    aborted: bool = False,
    exchange_id: Optional[str] = None,
    brief: bool = False,
) -> Optional[dict]:
    """Describe an HTTP exchange using the OpenAPI operation it matches.

    Args:
        method: HTTP method (GET, POST, ...)
        url: Full request URL
        request_headers: Request headers
        request_body: Request body text
        status_code: Response status; leave out while the response is pending
        response_headers: Response headers
        response_body: Response body text
        aborted: The connection closed before a response completed
        exchange_id: Stable id; repeated calls with the same id reuse the result
        brief: Leave out JSON schemas

    Returns the documentation (operation, parameters, body schemas, status
    description), or null when no known operation matches.
    """
    response = None
    if aborted:
        response = "aborted"
    elif status_code is not None:
        response = ExchangeResponse(
            status_code=status_code,
            headers=response_headers or {},
            body=response_body.encode() if response_body is not None else None,
        )

    exchange = Exchange(
        id=exchange_id or uuid.uuid4().hex,
        request=ExchangeRequest(
            method=method,
            url=url,
            headers=request_headers or {},
            body=request_body.encode() if request_body is not None else None,
        ),
        response=response,
    )

    documentation = await get_cache(ctx).get_documentation(exchange)
    if documentation is None:
        return None
    return _documentation_to_dict(documentation, brief=brief)


def _documentation_to_dict(documentation: ApiExchange, brief: bool = False) -> dict:
    """Convert documentation to dictionary representation."""
    exclude = None
    if brief:
        exclude = {
            "parameters": {"__all__": {"json_schema"}},
            "request_body": {"json_schema"},
            "response": {"body": {"json_schema"}},
        }
    return documentation.model_dump(mode="json", exclude=exclude, exclude_none=True)


def run_server():
    """Run the MCP server."""
    configure_logging()
    mcp.run()


if __name__ == "__main__":
    run_server()
