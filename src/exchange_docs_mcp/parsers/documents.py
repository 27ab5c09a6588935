"""Loading of OpenAPI documents from text, files and URLs."""

from pathlib import Path
from typing import Any, Optional, Union

import httpx
import yaml

from ..errors import SpecParseError


def stringify_keys(value: Any) -> Any:
    """Return a copy of a parsed document with every mapping key as a string.

    YAML turns unquoted keys like ``200:`` into integers, while OpenAPI
    (and JSON) keys are always strings.
    """
    if isinstance(value, dict):
        return {str(key): stringify_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [stringify_keys(item) for item in value]
    return value


def parse_document(content: Union[str, bytes], name: str = "<document>") -> dict[str, Any]:
    """Parse YAML or JSON text into an OpenAPI document mapping.

    Args:
        content: Document text (JSON is accepted as YAML)
        name: Name used in error messages

    Returns:
        The parsed document, with string keys throughout

    Raises:
        SpecParseError: If the text is not parseable or is not a mapping
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SpecParseError(f"{name} is not UTF-8 text: {e}") from e

    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecParseError(f"{name} is not valid YAML or JSON: {e}") from e

    if not isinstance(document, dict):
        raise SpecParseError(f"{name} does not contain an OpenAPI document object")

    try:
        return stringify_keys(document)
    except RecursionError as e:
        raise SpecParseError(f"{name} contains a recursive YAML alias or is nested too deeply") from e


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def read_document(file_path: Path) -> dict[str, Any]:
    """Read and parse an OpenAPI file (.yaml, .yml or .json)."""
    return parse_document(file_path.read_text(encoding="utf-8"), name=str(file_path))


async def fetch_document(
    client: httpx.AsyncClient,
    location: str,
    base_dir: Optional[Path] = None,
) -> tuple[dict[str, Any], str]:
    """Fetch and parse a document from a URL or a file path.

    Args:
        client: HTTP client to use for URLs
        location: http(s) URL or file path
        base_dir: Directory that relative file paths are resolved against

    Returns:
        Tuple of (parsed document, resolved source location)

    Raises:
        httpx.HTTPStatusError: If the server answers with an error status
        httpx.RequestError: If the request fails
        OSError: If the file cannot be read
        SpecParseError: If the content is not an OpenAPI document object
    """
    if is_url(location):
        response = await client.get(location, follow_redirects=True)
        response.raise_for_status()
        return parse_document(response.content, name=location), str(response.url)

    file_path = Path(location).expanduser()
    if base_dir is not None and not file_path.is_absolute():
        file_path = base_dir / file_path
    return read_document(file_path), str(file_path.resolve())
