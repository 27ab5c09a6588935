"""Builders for OpenAPI documents and exchanges used across tests."""

from typing import Any, Optional

from exchange_docs_mcp.models import Exchange, ExchangeRequest, ExchangeResponse


def make_spec(
    paths: dict[str, Any],
    servers: Optional[list[str]] = None,
    title: str = "Test API",
    **extra: Any,
) -> dict[str, Any]:
    """A minimal valid OpenAPI 3.1 document."""
    document: dict[str, Any] = {
        "openapi": "3.1.0",
        "info": {"title": title, "version": "1.0"},
        "paths": paths,
    }
    if servers is not None:
        document["servers"] = [{"url": url} for url in servers]
    document.update(extra)
    return document


def operation(summary: str = "", **fields: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"responses": {"200": {"description": "OK"}}}
    if summary:
        result["summary"] = summary
    result.update(fields)
    return result


def path_param(name: str, schema_type: str = "string") -> dict[str, Any]:
    return {"name": name, "in": "path", "required": True, "schema": {"type": schema_type}}


def make_exchange(
    method: str,
    url: str,
    headers: Optional[dict] = None,
    body: Optional[bytes] = None,
    response: Any = None,
    exchange_id: str = "exchange-1",
) -> Exchange:
    return Exchange(
        id=exchange_id,
        request=ExchangeRequest(method=method, url=url, headers=headers or {}, body=body),
        response=response,
    )


def make_response(
    status_code: int,
    headers: Optional[dict] = None,
    body: Optional[bytes] = None,
) -> ExchangeResponse:
    return ExchangeResponse(status_code=status_code, headers=headers or {}, body=body)
