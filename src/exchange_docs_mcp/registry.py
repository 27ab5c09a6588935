"""Registry of the OpenAPI specifications known to the running process."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from .errors import InvalidSpecificationError
from .models import SpecSource
from .parsers.documents import fetch_document, stringify_keys
from .specification import ServerBase, Specification
from .validator import validate

logger = logging.getLogger(__name__)


def _document_title(document: Any) -> str:
    if isinstance(document, dict) and isinstance(document.get("info"), dict):
        title = document["info"].get("title")
        if isinstance(title, str) and title:
            return title
    return "<untitled document>"


class SpecRegistry:
    """Validated specifications, indexed by the server base URLs they declare.

    Contents are an immutable tuple that is swapped wholesale on every change,
    so readers never see a partially updated registry.
    """

    def __init__(
        self,
        fetch_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.fetch_timeout = fetch_timeout
        self._transport = transport
        self._specs: tuple[Specification, ...] = ()
        self._pending: set[asyncio.Task] = set()

    @property
    def specifications(self) -> tuple[Specification, ...]:
        return self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, spec_id: str) -> Optional[Specification]:
        for spec in self._specs:
            if spec.spec_id == spec_id:
                return spec
        return None

    def register(
        self,
        document: Any,
        *,
        spec_id: Optional[str] = None,
        source: Optional[str] = None,
        builtin: bool = False,
    ) -> Specification:
        """Validate a document and add it to the registry.

        Args:
            document: Parsed OpenAPI document
            spec_id: Registry key (default: the source, then info.title).
                Registering an existing key replaces that specification.
            source: URL or path the document was loaded from. Relative server
                URLs are resolved against it when it is an http(s) URL.
            builtin: Whether this is one of the bundled specifications

        Returns:
            The registered Specification

        Raises:
            InvalidSpecificationError: If the document fails validation; the
                registry is left unchanged.
        """
        name = spec_id or source or _document_title(document)

        outcome = validate(document)
        if not outcome.valid:
            logger.warning(
                "Rejected specification %s with %d violation(s)",
                name,
                len(outcome.violations),
            )
            raise InvalidSpecificationError(name, outcome.violations)

        spec = Specification(name, stringify_keys(document), source=source, builtin=builtin)
        self._specs = tuple(s for s in self._specs if s.spec_id != name) + (spec,)
        logger.info(
            "Registered %s at %s",
            name,
            ", ".join(base.url for base in spec.servers) or "no servers",
        )
        return spec

    def unregister(self, spec_id: str) -> bool:
        """Remove a specification. Returns False if it was not registered."""
        remaining = tuple(s for s in self._specs if s.spec_id != spec_id)
        removed = len(remaining) != len(self._specs)
        self._specs = remaining
        return removed

    def base_for(self, spec: Specification, host: str, path: str) -> Optional[ServerBase]:
        """The most specific server base of a specification covering host and path."""
        matching = [base for base in spec.servers if base.matches(host, path)]
        if not matching:
            return None
        return max(matching, key=lambda base: (len(base.base_path), base.host is not None))

    def lookup_candidates(self, host: str, path: str) -> list[Specification]:
        """Find specifications mounted at a prefix of host + path.

        Returns:
            Specifications ordered longest base path first, then host-specific
            before host-agnostic, then by registration order
        """
        ranked = []
        for order, spec in enumerate(self._specs):
            base = self.base_for(spec, host, path)
            if base is not None:
                ranked.append(((-len(base.base_path), base.host is None, order), spec))

        ranked.sort(key=lambda item: item[0])
        return [spec for _, spec in ranked]

    async def acquire(self, source: SpecSource, base_dir: Optional[Path] = None) -> Specification:
        """Fetch, parse, validate and register a single source."""
        async with httpx.AsyncClient(timeout=self.fetch_timeout, transport=self._transport) as client:
            document, location = await fetch_document(client, source.location, base_dir)

        return self.register(
            document,
            spec_id=source.name,
            source=location,
            builtin=source.builtin,
        )

    async def _load(self, source: SpecSource, base_dir: Optional[Path]) -> Optional[Specification]:
        try:
            return await self.acquire(source, base_dir)
        except httpx.HTTPStatusError as e:
            logger.error("Failed to load %s: HTTP %s", source.name, e.response.status_code)
        except httpx.RequestError as e:
            logger.error("Failed to load %s: %s", source.name, e)
        except InvalidSpecificationError as e:
            for violation in e.violations:
                logger.error("  %s: %s", violation.pointer or "/", violation.message)
        except (OSError, ValueError) as e:
            logger.error("Failed to load %s: %s", source.name, e)
        return None

    def load(self, source: SpecSource, base_dir: Optional[Path] = None) -> "asyncio.Task[Optional[Specification]]":
        """Start loading a source in the background.

        The returned task resolves to the registered Specification, or None if
        loading failed (failures are logged). ``settled()`` waits for it.
        """
        task = asyncio.get_running_loop().create_task(self._load(source, base_dir))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def load_sources(
        self,
        sources: list[SpecSource],
        base_dir: Optional[Path] = None,
    ) -> list["asyncio.Task[Optional[Specification]]"]:
        """Start loading every configured source."""
        return [self.load(source, base_dir) for source in sources]

    @property
    def loading(self) -> bool:
        return any(not task.done() for task in self._pending)

    async def settled(self) -> None:
        """Wait until every in-flight load has finished, successfully or not."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
