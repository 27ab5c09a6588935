"""Configuration for the exchange documentation server."""

import logging
import sys
from pathlib import Path
from typing import Optional

import yaml
from pydantic_settings import BaseSettings

from .models import SpecSource, SpecsConfig


class Settings(BaseSettings):
    """Application settings."""

    # Path to specs.yaml (default: project root)
    specs_file: Optional[Path] = None

    # Timeout for fetching specifications, in seconds
    fetch_timeout: float = 30.0

    log_level: str = "INFO"

    model_config = {"env_prefix": "EXCHANGE_DOCS_"}


def get_project_root() -> Path:
    """Get the project root directory."""
    # Start from the current file and go up to find pyproject.toml
    current = Path(__file__).resolve().parent
    while current != current.parent:
        if (current / "pyproject.toml").exists():
            return current
        current = current.parent
    # Fallback to current working directory
    return Path.cwd()


def get_specs_file(specs_file: Optional[Path] = None) -> Path:
    """Get the specs.yaml path, from the argument, the settings or the project root."""
    if specs_file is None:
        specs_file = Settings().specs_file
    if specs_file is None:
        specs_file = get_project_root() / "specs.yaml"
    return specs_file


def load_sources(specs_file: Optional[Path] = None) -> list[SpecSource]:
    """Load specification sources from YAML file.

    Relative file locations are resolved against the directory of the
    YAML file.
    """
    specs_file = get_specs_file(specs_file)

    if not specs_file.exists():
        raise FileNotFoundError(f"Specs file not found: {specs_file}")

    with open(specs_file) as f:
        data = yaml.safe_load(f) or {}

    config = SpecsConfig(**data)

    base_dir = specs_file.resolve().parent
    sources = []
    for source in config.sources:
        if not source.location.startswith(("http://", "https://")):
            location = Path(source.location).expanduser()
            if not location.is_absolute():
                source = source.model_copy(update={"location": str(base_dir / location)})
        sources.append(source)
    return sources


def configure_logging(level: Optional[str] = None) -> None:
    """Log to stderr; stdout belongs to command output and the MCP transport."""
    logging.basicConfig(
        level=(level or Settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
