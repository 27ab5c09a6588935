"""Per-exchange memoized documentation lookups."""

import asyncio
import logging
from typing import Callable, Optional

from .matcher import MatchResult, match_exchange
from .models import ApiExchange, Exchange
from .parsers.exchange import parse_exchange
from .registry import SpecRegistry

logger = logging.getLogger(__name__)

Matcher = Callable[[SpecRegistry, Exchange], Optional[MatchResult]]
Parser = Callable[[MatchResult, Exchange], ApiExchange]


class AnnotationCache:
    """Documentation for exchanges, computed at most once per exchange.

    ``get_documentation`` returns an asyncio task that resolves to the
    exchange's documentation, or to None when there is none. Faults while
    matching or parsing are logged and resolve to None; they never reach
    the caller.
    """

    def __init__(
        self,
        registry: SpecRegistry,
        matcher: Matcher = match_exchange,
        parser: Parser = parse_exchange,
    ):
        self.registry = registry
        self._matcher = matcher
        self._parser = parser
        self._entries: dict[str, "asyncio.Task[Optional[ApiExchange]]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, exchange: Exchange) -> bool:
        return exchange.id in self._entries

    def get_documentation(self, exchange: Exchange) -> "asyncio.Task[Optional[ApiExchange]]":
        """Get (or start computing) the documentation for an exchange.

        Must be called with a running event loop. Repeated calls for the same
        exchange return the same task, finished or not.
        """
        entry = self._entries.get(exchange.id)
        if entry is None:
            entry = asyncio.get_running_loop().create_task(self._document(exchange))
            self._entries[exchange.id] = entry
        return entry

    async def _document(self, exchange: Exchange) -> Optional[ApiExchange]:
        # Specs still loading may be the ones this exchange belongs to
        await self.registry.settled()

        try:
            match = self._matcher(self.registry, exchange)
            if match is None:
                return None
            return self._parser(match, exchange)
        except Exception:
            logger.exception(
                "Failed to document exchange %s (%s %s)",
                exchange.id,
                exchange.method,
                exchange.request.url,
            )
            return None

    def forget(self, exchange: Exchange) -> None:
        """Drop the entry for an exchange. An in-flight computation still finishes."""
        self._entries.pop(exchange.id, None)

    def clear(self) -> None:
        self._entries.clear()
