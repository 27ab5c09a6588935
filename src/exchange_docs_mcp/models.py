"""Pydantic models for exchanges, spec sources and exchange documentation."""

from http.cookies import CookieError, SimpleCookie
from typing import Any, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field


HeaderValues = dict[str, Union[str, list[str]]]


def _to_httpx_headers(headers: HeaderValues) -> httpx.Headers:
    items = []
    for name, value in headers.items():
        if isinstance(value, list):
            items.extend((name, v) for v in value)
        else:
            items.append((name, value))
    return httpx.Headers(items, encoding="utf-8")


class Violation(BaseModel):
    """One structural problem found while validating an OpenAPI document."""

    model_config = ConfigDict(frozen=True)

    pointer: str = Field(description="JSON Pointer to the offending value")
    keyword: str = Field(description="Schema keyword that failed, e.g. 'required'")
    message: str


class ValidationOutcome(BaseModel):
    """Result of validating a document against the OpenAPI 3.1 schema."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    violations: list[Violation] = Field(default_factory=list)


class SpecSource(BaseModel):
    """Configuration for an OpenAPI specification source."""

    name: str
    location: str = Field(description="http(s) URL or file path of the document")
    builtin: bool = False
    description: str = ""


class SpecsConfig(BaseModel):
    """Configuration file structure for specs.yaml."""

    sources: list[SpecSource] = Field(default_factory=list)


class ExchangeMessage(BaseModel):
    """Headers and body shared by requests and responses."""

    headers: HeaderValues = Field(default_factory=dict)
    body: Optional[bytes] = Field(default=None, description="Raw body, absent while streaming")

    def header_map(self) -> httpx.Headers:
        """Case-insensitive view over the headers."""
        return _to_httpx_headers(self.headers)

    def header(self, name: str) -> Optional[str]:
        return self.header_map().get(name)

    @property
    def has_body(self) -> bool:
        return bool(self.body)

    @property
    def content_type(self) -> Optional[str]:
        return self.header("content-type")


class ExchangeRequest(ExchangeMessage):
    """A captured HTTP request."""

    method: str
    url: str

    @property
    def parsed_url(self) -> httpx.URL:
        return httpx.URL(self.url)

    @property
    def cookies(self) -> dict[str, str]:
        """Cookies sent in the Cookie header(s)."""
        cookies: dict[str, str] = {}
        for raw in self.header_map().get_list("cookie"):
            jar: SimpleCookie = SimpleCookie()
            try:
                jar.load(raw)
            except CookieError:
                continue
            cookies.update({name: morsel.value for name, morsel in jar.items()})
        return cookies


class ExchangeResponse(ExchangeMessage):
    """A completed HTTP response."""

    status_code: int
    status_message: str = ""


class Exchange(BaseModel):
    """A captured request paired with its response, if any.

    The response is absent while still pending, and the literal ``"aborted"``
    when the connection closed before a response completed.
    """

    id: str = Field(description="Identity of the exchange, stable for its lifetime")
    request: ExchangeRequest
    response: Union[ExchangeResponse, Literal["aborted"], None] = None

    @property
    def method(self) -> str:
        return self.request.method.upper()

    @property
    def host(self) -> str:
        """Host of the request URL, with the port only when it is not the default."""
        url = self.request.parsed_url
        if url.port is not None:
            return f"{url.host}:{url.port}"
        return url.host

    @property
    def path(self) -> str:
        """Raw request path, without query string or fragment."""
        raw = self.request.parsed_url.raw_path.decode("ascii")
        return raw.split("?", 1)[0] or "/"

    @property
    def query(self) -> httpx.QueryParams:
        return self.request.parsed_url.params

    @property
    def completed_response(self) -> Optional[ExchangeResponse]:
        if isinstance(self.response, ExchangeResponse):
            return self.response
        return None


class ServiceDoc(BaseModel):
    """The API an exchange belongs to."""

    model_config = ConfigDict(frozen=True)

    name: str
    short_name: Optional[str] = None
    description: str = ""
    logo_url: Optional[str] = None
    docs_url: Optional[str] = None
    builtin: bool = False


class OperationDoc(BaseModel):
    """The operation an exchange was matched to."""

    model_config = ConfigDict(frozen=True)

    name: str
    method: str
    path: str = Field(description="Path template, e.g. '/users/{id}'")
    summary: str = ""
    description: str = ""
    operation_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False
    docs_url: Optional[str] = None


class ParameterDoc(BaseModel):
    """A declared parameter paired with its value in the exchange."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: Literal["path", "query", "header", "cookie"]
    description: str = ""
    required: bool = False
    deprecated: bool = False
    json_schema: Optional[Any] = None
    value: Union[str, list[str], None] = None
    missing: bool = Field(default=False, description="Required but absent from the exchange")
    warnings: list[str] = Field(default_factory=list)


class BodyDoc(BaseModel):
    """Schema of a request or response body, for the declared media type."""

    model_config = ConfigDict(frozen=True)

    media_type: str
    description: str = ""
    json_schema: Optional[Any] = None


class ResponseDoc(BaseModel):
    """Documentation of the response status and body."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    matched_key: Optional[str] = Field(
        default=None,
        description="Responses entry used: exact code, 'NXX' or 'default'. None when nothing matched",
    )
    description: Optional[str] = None
    body: Optional[BodyDoc] = None


class SecuritySchemeDoc(BaseModel):
    """A security scheme the operation declares. Described, never enforced."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    description: str = ""
    scheme: Optional[str] = None
    location: Optional[str] = None
    parameter_name: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)


class ApiExchange(BaseModel):
    """Documentation of a single exchange, derived from its matched operation."""

    model_config = ConfigDict(frozen=True)

    service: ServiceDoc
    operation: OperationDoc
    parameters: list[ParameterDoc] = Field(default_factory=list)
    request_body: Optional[BodyDoc] = None
    response: Optional[ResponseDoc] = None
    security: list[SecuritySchemeDoc] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    ambiguous: bool = False
