"""CLI for the exchange documentation server."""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from .annotations import AnnotationCache
from .config import configure_logging, load_sources
from .errors import InvalidSpecificationError, SpecParseError
from .models import ApiExchange, Exchange, ExchangeRequest, ExchangeResponse
from .parsers.documents import read_document
from .registry import SpecRegistry
from .validator import validate

app = typer.Typer(
    name="exchange-docs",
    help="Document captured HTTP exchanges using OpenAPI specifications",
)


def _read_spec(spec_file: Path) -> dict:
    try:
        return read_document(spec_file)
    except (OSError, SpecParseError) as e:
        typer.echo(f"[red]ERROR[/red] {e}", color=True)
        raise typer.Exit(1)


def _parse_headers(headers: Optional[list[str]]) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for header in headers or []:
        name, sep, value = header.partition(":")
        if not sep:
            raise typer.BadParameter(f"Expected 'Name: value', got {header!r}")
        result.setdefault(name.strip(), []).append(value.strip())
    return result


@app.command("validate")
def validate_spec(
    spec_file: Path = typer.Argument(..., help="OpenAPI 3.1 document (.yaml, .yml or .json)"),
) -> None:
    """Check an OpenAPI document against the OpenAPI 3.1 schema."""
    outcome = validate(_read_spec(spec_file))

    if outcome.valid:
        typer.echo(f"{spec_file}: valid")
        return

    typer.echo(f"{spec_file}: {len(outcome.violations)} violation(s)")
    for violation in outcome.violations:
        typer.echo(f"  {violation.pointer or '/'}: {violation.message}")
    raise typer.Exit(1)


@app.command()
def list_sources(
    specs_file: Optional[Path] = typer.Option(
        None,
        "--specs",
        "-s",
        help="Path to specs.yaml file",
    ),
) -> None:
    """List all configured specification sources."""
    sources = load_sources(specs_file)

    typer.echo("Configured specification sources:\n")

    for source in sources:
        typer.echo(f"  [bold]{source.name}[/bold]", color=True)
        typer.echo(f"    Location: {source.location}")
        if source.builtin:
            typer.echo("    Built-in: yes")
        if source.description:
            typer.echo(f"    Description: {source.description}")
        typer.echo("")


@app.command()
def annotate(
    method: str = typer.Argument(..., help="HTTP method of the request"),
    url: str = typer.Argument(..., help="Full request URL"),
    spec_files: list[Path] = typer.Option(
        ...,
        "--spec",
        help="OpenAPI document to match against (repeatable)",
    ),
    headers: Optional[list[str]] = typer.Option(
        None,
        "--header",
        "-H",
        help="Request header as 'Name: value' (repeatable)",
    ),
    request_body: Optional[str] = typer.Option(None, "--request-body", help="Request body"),
    status: Optional[int] = typer.Option(None, "--status", help="Response status code"),
    response_headers: Optional[list[str]] = typer.Option(
        None,
        "--response-header",
        help="Response header as 'Name: value' (repeatable)",
    ),
    response_body: Optional[str] = typer.Option(None, "--response-body", help="Response body"),
    aborted: bool = typer.Option(False, "--aborted", help="The response was aborted"),
) -> None:
    """Print the documentation of a single exchange as JSON."""
    configure_logging("WARNING")

    registry = SpecRegistry()
    for spec_file in spec_files:
        try:
            registry.register(_read_spec(spec_file), source=str(spec_file.resolve()))
        except InvalidSpecificationError as e:
            typer.echo(f"[red]INVALID[/red] {e}", color=True)
            raise typer.Exit(1)

    response = None
    if aborted:
        response = "aborted"
    elif status is not None:
        response = ExchangeResponse(
            status_code=status,
            headers=_parse_headers(response_headers),
            body=response_body.encode() if response_body is not None else None,
        )

    exchange = Exchange(
        id="cli",
        request=ExchangeRequest(
            method=method,
            url=url,
            headers=_parse_headers(headers),
            body=request_body.encode() if request_body is not None else None,
        ),
        response=response,
    )

    async def document() -> Optional[ApiExchange]:
        return await AnnotationCache(registry).get_documentation(exchange)

    result = asyncio.run(document())
    if result is None:
        typer.echo("No documentation")
        return

    typer.echo(result.model_dump_json(indent=2))


@app.command()
def serve() -> None:
    """Start the MCP server."""
    # Import here to avoid loading the MCP stack for other commands
    from .server import run_server

    run_server()


if __name__ == "__main__":
    app()
