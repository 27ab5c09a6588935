"""Projection of a matched OpenAPI operation onto a concrete exchange."""

import logging
import re
from typing import TYPE_CHECKING, Any, Optional, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, UnknownType
from referencing.exceptions import Unresolvable

from ..models import (
    ApiExchange,
    BodyDoc,
    Exchange,
    ExchangeMessage,
    OperationDoc,
    ParameterDoc,
    ResponseDoc,
    SecuritySchemeDoc,
    ServiceDoc,
)

if TYPE_CHECKING:
    from ..matcher import MatchResult

logger = logging.getLogger(__name__)

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")

ParameterValue = Union[str, list[str], None]


def select_media_type(content: Any, content_type: Optional[str]) -> Optional[str]:
    """Pick the declared media type key matching a Content-Type header.

    An exact match wins, then a 'type/*' entry, then '*/*'. Parameters such
    as charset are ignored. Without a Content-Type only '*/*' can match.
    """
    if not isinstance(content, dict) or not content:
        return None

    declared = {key.split(";", 1)[0].strip().lower(): key for key in content}

    if content_type:
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type in declared:
            return declared[media_type]
        wildcard = media_type.split("/", 1)[0] + "/*"
        if wildcard in declared:
            return declared[wildcard]

    return declared.get("*/*")


def response_key(responses: Any, status_code: int) -> Optional[str]:
    """Find the responses entry for a status: exact code, then 'NXX', then 'default'."""
    if not isinstance(responses, dict):
        return None

    code = str(status_code)
    if code in responses:
        return code

    pattern = f"{code[0]}XX"
    for key in responses:
        if key.upper() == pattern:
            return key

    if "default" in responses:
        return "default"
    return None


def _schema_types(schema: Any) -> list[str]:
    if not isinstance(schema, dict):
        return []
    types = schema.get("type", [])
    return [types] if isinstance(types, str) else list(types)


def coerce_value(value: Any, schema: Any) -> Any:
    """Convert a raw string parameter value to the type its schema declares."""
    types = _schema_types(schema)

    if isinstance(value, list):
        if "array" in types:
            items = schema.get("items", {})
            return [coerce_value(item, items) for item in value]
        return value

    if not isinstance(value, str) or "string" in types:
        return value

    if "array" in types:
        items = schema.get("items", {})
        return [coerce_value(item, items) for item in value.split(",")]
    if "integer" in types and re.fullmatch(r"[-+]?\d+", value):
        return int(value)
    if "number" in types:
        try:
            return float(value)
        except ValueError:
            return value
    if "boolean" in types and value in ("true", "false"):
        return value == "true"
    return value


def check_value(value: Any, schema: Any) -> list[str]:
    """Validate a parameter value against its schema, returning the problems found."""
    if value is None or schema is None or schema is True or schema == {}:
        return []

    try:
        Draft202012Validator.check_schema(schema)
        validator = Draft202012Validator(schema)
        return [error.message for error in validator.iter_errors(coerce_value(value, schema))]
    except (SchemaError, UnknownType, re.error, TypeError, Unresolvable) as e:
        logger.debug("Skipping value check against unusable schema: %s", e)
        return []


class ExchangeParser:
    """Builds the documentation of one exchange from its matched operation."""

    def __init__(self, match: "MatchResult", exchange: Exchange):
        self.match = match
        self.exchange = exchange
        self.spec = match.specification
        self.operation = match.operation
        self.warnings: list[str] = []

    def parse(self) -> ApiExchange:
        """Build the documentation object. Unavailable sections are left out."""
        operation_doc = self._operation()
        if operation_doc.deprecated:
            self.warnings.append(f"The operation '{operation_doc.name}' is deprecated.")
        if self.match.ambiguous:
            self.warnings.append(
                f"This request also matches {', '.join(self.match.ambiguous_with)}."
            )

        return ApiExchange(
            service=self._service(),
            operation=operation_doc,
            parameters=self._parameters(),
            request_body=self._request_body(),
            response=self._response(),
            security=self._security(),
            warnings=self.warnings,
            ambiguous=self.match.ambiguous,
        )

    def _service(self) -> ServiceDoc:
        document = self.spec.document
        info = document.get("info") or {}
        logo = info.get("x-logo") or {}
        docs = document.get("externalDocs") or {}

        return ServiceDoc(
            name=self.spec.name,
            short_name=info.get("x-httptoolkit-short-name"),
            description=info.get("description", ""),
            logo_url=logo.get("url"),
            docs_url=docs.get("url"),
            builtin=self.spec.builtin,
        )

    def _operation(self) -> OperationDoc:
        operation = self.operation
        method = self.match.method.upper()
        summary = operation.get("summary", "")
        docs = operation.get("externalDocs") or {}
        description = operation.get("description") or self.match.path_item.get("description", "")

        return OperationDoc(
            name=summary or operation.get("operationId") or f"{method} {self.match.path_template}",
            method=method,
            path=self.match.path_template,
            summary=summary,
            description=description,
            operation_id=operation.get("operationId"),
            tags=operation.get("tags", []),
            deprecated=operation.get("deprecated", False),
            docs_url=docs.get("url"),
        )

    def _declared_parameters(self) -> list[dict[str, Any]]:
        """Path-item parameters overridden by operation parameters of the same name and location."""
        declared: dict[tuple[str, str], dict[str, Any]] = {}
        for source in (self.match.path_item, self.operation):
            for param in source.get("parameters") or []:
                param = self.spec.resolve(param)
                if not isinstance(param, dict) or "name" not in param:
                    continue
                if param.get("in") not in PARAMETER_LOCATIONS:
                    continue
                declared[(param["name"], param["in"])] = param
        return list(declared.values())

    def _parameter_value(self, name: str, location: str) -> ParameterValue:
        request = self.exchange.request

        if location == "path":
            return self.match.path_parameters.get(name)
        if location == "query":
            values = self.exchange.query.get_list(name)
        elif location == "header":
            values = request.header_map().get_list(name)
        else:
            return request.cookies.get(name)

        if not values:
            return None
        return values[0] if len(values) == 1 else values

    def _parameter_schema(self, param: dict[str, Any]) -> Any:
        if "schema" in param:
            return self.spec.dereference(param["schema"])
        content = param.get("content")
        if isinstance(content, dict) and content:
            media = next(iter(content.values()))
            if isinstance(media, dict) and "schema" in media:
                return self.spec.dereference(media["schema"])
        return None

    def _parameters(self) -> list[ParameterDoc]:
        result = []

        for param in self._declared_parameters():
            name = param["name"]
            location = param["in"]
            required = bool(param.get("required", False))
            deprecated = bool(param.get("deprecated", False))
            schema = self._parameter_schema(param)
            value = self._parameter_value(name, location)

            warnings = []
            missing = value is None and required
            if missing:
                self.warnings.append(f"The required {location} parameter '{name}' is missing.")
            if value is not None:
                warnings.extend(check_value(value, schema))
                if deprecated:
                    warnings.append(f"The '{name}' parameter is deprecated.")

            result.append(ParameterDoc(
                name=name,
                location=location,
                description=param.get("description", ""),
                required=required,
                deprecated=deprecated,
                json_schema=schema,
                value=value,
                missing=missing,
                warnings=warnings,
            ))

        return result

    def _body(self, content: Any, message: ExchangeMessage, description: str) -> Optional[BodyDoc]:
        media_type = select_media_type(content, message.content_type)
        if media_type is None:
            return None

        media = content[media_type]
        schema = media.get("schema") if isinstance(media, dict) else None
        return BodyDoc(
            media_type=media_type,
            description=description,
            json_schema=self.spec.dereference(schema) if schema is not None else None,
        )

    def _request_body(self) -> Optional[BodyDoc]:
        request_body = self.spec.resolve(self.operation.get("requestBody"))
        if not isinstance(request_body, dict):
            return None

        request = self.exchange.request
        if not request.has_body:
            if request_body.get("required", False):
                self.warnings.append("The request body is required but missing.")
            return None

        return self._body(
            request_body.get("content"),
            request,
            request_body.get("description", ""),
        )

    def _response(self) -> Optional[ResponseDoc]:
        response = self.exchange.completed_response
        if response is None:
            # Pending and aborted responses are documented identically: not at all
            return None

        responses = self.operation.get("responses")
        key = response_key(responses, response.status_code)
        if key is None:
            return ResponseDoc(status_code=response.status_code)

        declared = self.spec.resolve(responses[key])
        if not isinstance(declared, dict):
            return None

        description = declared.get("description")
        body = None
        if response.has_body:
            body = self._body(declared.get("content"), response, description or "")

        return ResponseDoc(
            status_code=response.status_code,
            matched_key=key,
            description=description,
            body=body,
        )

    def _security(self) -> list[SecuritySchemeDoc]:
        document = self.spec.document
        if "security" in self.operation:
            requirements = self.operation["security"]
        else:
            requirements = document.get("security", [])

        schemes = (document.get("components") or {}).get("securitySchemes") or {}

        result: dict[str, SecuritySchemeDoc] = {}
        for requirement in requirements or []:
            for name, scopes in requirement.items():
                scheme = self.spec.resolve(schemes.get(name))
                if name in result or not isinstance(scheme, dict):
                    continue
                result[name] = SecuritySchemeDoc(
                    name=name,
                    type=scheme.get("type", ""),
                    description=scheme.get("description", ""),
                    scheme=scheme.get("scheme"),
                    location=scheme.get("in"),
                    parameter_name=scheme.get("name"),
                    scopes=list(scopes or []),
                )
        return list(result.values())


def parse_exchange(match: "MatchResult", exchange: Exchange) -> ApiExchange:
    """Describe an exchange using the operation it was matched to."""
    return ExchangeParser(match, exchange).parse()
