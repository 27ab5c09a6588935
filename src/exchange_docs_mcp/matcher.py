"""Matching of exchanges to the OpenAPI operation they belong to."""

import logging
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import unquote

from .specification import HTTP_METHODS, PathTemplate, Specification, split_path

if TYPE_CHECKING:
    from .models import Exchange
    from .registry import SpecRegistry

logger = logging.getLogger(__name__)


class MatchResult:
    """The specification and operation an exchange corresponds to."""

    def __init__(
        self,
        specification: Specification,
        method: str,
        path_template: str,
        operation: dict[str, Any],
        path_parameters: dict[str, str],
        ambiguous_with: Optional[list[str]] = None,
    ):
        self.specification = specification
        self.method = method
        self.path_template = path_template
        self.operation = operation
        self.path_parameters = path_parameters
        self.ambiguous_with = ambiguous_with or []

    @property
    def ambiguous(self) -> bool:
        """Whether other, equally specific templates matched too."""
        return bool(self.ambiguous_with)

    @property
    def path_item(self) -> dict[str, Any]:
        return self.specification.path_item(self.path_template)

    def __repr__(self) -> str:
        return (
            f"MatchResult({self.specification.spec_id!r}, "
            f"{self.method.upper()} {self.path_template})"
        )


def find_templates(spec: Specification, relative_path: str) -> list[tuple[PathTemplate, dict[str, str]]]:
    """Find the most specific templates matching a spec-relative path.

    Returns every template tied for the highest literal-segment count, in
    declaration order, with the raw variable values each extracted.
    """
    segments = split_path(relative_path)
    matches = []
    for template in spec.templates:
        values = template.match(segments)
        if values is not None:
            matches.append((template, values))

    if not matches:
        return []

    best = max(template.literal_count for template, _ in matches)
    return [(t, values) for t, values in matches if t.literal_count == best]


def match(registry: "SpecRegistry", method: str, host: str, path: str) -> Optional[MatchResult]:
    """Find the operation a request corresponds to.

    Only the most specific specification for host and path is tried; if none
    of its paths match, less specific candidates are not consulted.

    Args:
        registry: Registry to look specifications up in
        method: HTTP method, in any case
        host: Request host, with port if not the default
        path: Request path; any query string or fragment is ignored

    Returns:
        The MatchResult, or None if no operation matches
    """
    path = path.split("#", 1)[0].split("?", 1)[0] or "/"

    candidates = registry.lookup_candidates(host, path)
    if not candidates:
        return None

    spec = candidates[0]
    base = registry.base_for(spec, host, path)
    relative_path = path[len(base.base_path):] if base is not None else path

    found = find_templates(spec, relative_path)
    if not found:
        return None

    template, raw_values = found[0]
    ambiguous_with = [t.template for t, _ in found[1:]]
    if ambiguous_with:
        logger.warning(
            "Ambiguous match for %s in %s: %s chosen over %s",
            path,
            spec.spec_id,
            template.template,
            ", ".join(ambiguous_with),
        )

    method = method.lower()
    if method not in HTTP_METHODS:
        return None
    operation = spec.resolve(spec.path_item(template.template).get(method))
    if not isinstance(operation, dict):
        return None

    return MatchResult(
        specification=spec,
        method=method,
        path_template=template.template,
        operation=operation,
        path_parameters={name: unquote(value) for name, value in raw_values.items()},
        ambiguous_with=ambiguous_with,
    )


def match_exchange(registry: "SpecRegistry", exchange: "Exchange") -> Optional[MatchResult]:
    """Match an exchange by its recorded method, host and path."""
    return match(registry, exchange.method, exchange.host, exchange.path)
