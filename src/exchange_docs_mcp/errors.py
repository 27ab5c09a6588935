"""Exceptions raised by the exchange documentation core."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Violation


class ExchangeDocsError(Exception):
    """Base class for all errors raised by this package."""


class SpecParseError(ExchangeDocsError, ValueError):
    """A document could not be parsed into an OpenAPI mapping."""


class InvalidSpecificationError(ExchangeDocsError, ValueError):
    """A document failed structural validation and was not registered."""

    def __init__(self, name: str, violations: list["Violation"]):
        self.name = name
        self.violations = violations
        super().__init__(
            f"{name} is not a valid OpenAPI 3.1 document "
            f"({len(violations)} violation(s))"
        )
