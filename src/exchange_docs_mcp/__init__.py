"""Document captured HTTP exchanges using OpenAPI 3.1 specifications."""

from .annotations import AnnotationCache
from .errors import InvalidSpecificationError, SpecParseError
from .matcher import MatchResult, match, match_exchange
from .models import ApiExchange, Exchange, ExchangeRequest, ExchangeResponse
from .parsers import parse_exchange
from .registry import SpecRegistry
from .validator import validate

__version__ = "0.1.0"

__all__ = [
    "AnnotationCache",
    "ApiExchange",
    "Exchange",
    "ExchangeRequest",
    "ExchangeResponse",
    "InvalidSpecificationError",
    "MatchResult",
    "SpecParseError",
    "SpecRegistry",
    "match",
    "match_exchange",
    "parse_exchange",
    "validate",
]
