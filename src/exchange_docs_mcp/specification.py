"""Loaded OpenAPI specifications: server bases, path templates and $ref handling."""

import copy
import logging
import re
from typing import Any, Iterator, Optional
from urllib.parse import unquote

import httpx

logger = logging.getLogger(__name__)

HTTP_METHODS = ["get", "put", "post", "delete", "options", "head", "patch", "trace"]

DEFAULT_PORTS = {"http": 80, "https": 443}

VARIABLE_PATTERN = re.compile(r"\{([^{}]+)\}")


def split_path(path: str) -> list[str]:
    """Split a URL path into segments, ignoring one leading and one trailing slash."""
    if path.startswith("/"):
        path = path[1:]
    if path.endswith("/"):
        path = path[:-1]
    if not path:
        return []
    return path.split("/")


def resolve_pointer(document: Any, ref: str) -> Any:
    """Resolve a local reference like '#/components/schemas/User' within a document.

    Returns None for external references and for pointers that lead nowhere.
    """
    if not ref.startswith("#"):
        return None
    pointer = ref[1:]
    if not pointer:
        return document
    if not pointer.startswith("/"):
        return None

    node = document
    for token in pointer[1:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        token = unquote(token)
        if isinstance(node, dict) and token in node:
            node = node[token]
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            return None
    return node


class ServerBase:
    """A normalized server URL that a specification is mounted at.

    Relative servers without a known source URL have no host and match
    requests to any host.
    """

    def __init__(self, scheme: Optional[str], host: Optional[str], base_path: str):
        self.scheme = scheme
        self.host = host
        self.base_path = base_path

    @classmethod
    def parse(cls, url: str, source: Optional[str] = None) -> Optional["ServerBase"]:
        if VARIABLE_PATTERN.search(url):
            logger.debug("Ignoring server URL with undeclared variables %r", url)
            return None
        try:
            if source and source.startswith(("http://", "https://")):
                parsed = httpx.URL(source).join(url)
            else:
                parsed = httpx.URL(url)
        except httpx.InvalidURL:
            logger.debug("Ignoring unparseable server URL %r", url)
            return None

        path = parsed.raw_path.decode("ascii").split("?", 1)[0]
        if not path.startswith("/"):
            path = "/" + path
        base_path = path.rstrip("/")

        if not parsed.host:
            return cls(None, None, base_path)

        host = parsed.host
        if parsed.port is not None and parsed.port != DEFAULT_PORTS.get(parsed.scheme):
            host = f"{host}:{parsed.port}"
        return cls(parsed.scheme or None, host, base_path)

    def matches(self, host: str, path: str) -> bool:
        """Whether this base covers the given host and path."""
        if self.host is not None and self.host != normalize_host(host):
            return False
        if not self.base_path:
            return True
        return path == self.base_path or path.startswith(self.base_path + "/")

    @property
    def url(self) -> str:
        if self.host is None:
            return self.base_path or "/"
        return f"{self.scheme or 'https'}://{self.host}{self.base_path}"

    def __repr__(self) -> str:
        return f"ServerBase({self.url})"


def normalize_host(host: str) -> str:
    """Lowercase a request host.

    Default ports depend on the scheme, so they must already be absent, as
    they are from ``Exchange.host``.
    """
    return host.lower()


def expand_server_urls(server: dict[str, Any]) -> list[str]:
    """Expand a server object's URL template over its declared variable values."""
    urls = [server.get("url", "/")]
    for name, variable in (server.get("variables") or {}).items():
        values = list(variable.get("enum") or [])
        default = variable.get("default")
        if default is not None and default not in values:
            values.append(default)
        placeholder = "{" + name + "}"
        expanded = []
        for url in urls:
            if placeholder in url and values:
                expanded.extend(url.replace(placeholder, str(value)) for value in values)
            else:
                expanded.append(url)
        urls = expanded
    return urls


class PathTemplate:
    """A compiled path template such as '/users/{id}/orders/{orderId}'."""

    def __init__(self, template: str, index: int):
        self.template = template
        self.index = index
        self.segments = split_path(template)
        self.literal_count = 0
        self._matchers: list[tuple[Optional[str], Optional[re.Pattern], list[str]]] = []

        for segment in self.segments:
            names = VARIABLE_PATTERN.findall(segment)
            if not names:
                self.literal_count += 1
                self._matchers.append((segment, None, []))
                continue
            pattern = ""
            last = 0
            for found in VARIABLE_PATTERN.finditer(segment):
                pattern += re.escape(segment[last:found.start()]) + "(.+?)"
                last = found.end()
            pattern += re.escape(segment[last:])
            self._matchers.append((None, re.compile(pattern), names))

    @property
    def variable_names(self) -> list[str]:
        return [name for _, _, names in self._matchers for name in names]

    def match(self, segments: list[str]) -> Optional[dict[str, str]]:
        """Match concrete path segments, returning raw variable values on success."""
        if len(segments) != len(self._matchers):
            return None

        values: dict[str, str] = {}
        for segment, (literal, pattern, names) in zip(segments, self._matchers):
            if pattern is None:
                if segment != literal:
                    return None
                continue
            if not segment:
                return None
            found = pattern.fullmatch(segment)
            if not found:
                return None
            values.update(zip(names, found.groups()))
        return values

    def __repr__(self) -> str:
        return f"PathTemplate({self.template!r})"


class Specification:
    """A validated OpenAPI document, as held by the spec registry."""

    def __init__(
        self,
        spec_id: str,
        document: dict[str, Any],
        source: Optional[str] = None,
        builtin: bool = False,
    ):
        self.spec_id = spec_id
        self.document = copy.deepcopy(document)
        self.source = source

        info = self.document.get("info", {})
        self.name: str = info.get("title", spec_id)
        self.builtin = builtin or bool(info.get("x-httptoolkit-builtin-api", False))

        servers = self.document.get("servers") or [{"url": "/"}]
        bases: list[ServerBase] = []
        for server in servers:
            for url in expand_server_urls(server):
                base = ServerBase.parse(url, source)
                if base is not None:
                    bases.append(base)
        self.servers = tuple(bases)

        paths = self.document.get("paths") or {}
        self.templates = tuple(
            PathTemplate(template, index) for index, template in enumerate(paths)
        )

    @property
    def paths(self) -> dict[str, Any]:
        return self.document.get("paths") or {}

    def path_item(self, template: str) -> dict[str, Any]:
        item = self.resolve(self.paths.get(template))
        return item if isinstance(item, dict) else {}

    def operations(self) -> Iterator[tuple[str, str, dict[str, Any]]]:
        """Yield (method, path template, operation) for every declared operation."""
        for template in self.paths:
            item = self.path_item(template)
            for method in HTTP_METHODS:
                operation = item.get(method)
                if isinstance(operation, dict):
                    yield method, template, operation

    def resolve(self, node: Any) -> Any:
        """Follow local $ref chains. External or broken references resolve to None."""
        seen: set[str] = set()
        while isinstance(node, dict) and isinstance(node.get("$ref"), str):
            ref = node["$ref"]
            if ref in seen:
                return None
            seen.add(ref)
            node = resolve_pointer(self.document, ref)
        return node

    def dereference(self, node: Any, _stack: tuple[str, ...] = ()) -> Any:
        """Return a copy of a schema with local $refs inlined.

        Recursive references are replaced by the always-valid schema {}.
        Sibling keywords next to a $ref are kept on top of the referenced schema.
        """
        if isinstance(node, list):
            return [self.dereference(item, _stack) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if not isinstance(ref, str):
            return {key: self.dereference(value, _stack) for key, value in node.items()}

        siblings = {
            key: self.dereference(value, _stack)
            for key, value in node.items()
            if key != "$ref"
        }
        if ref in _stack:
            return siblings
        target = resolve_pointer(self.document, ref)
        if target is None:
            return siblings

        resolved = self.dereference(target, _stack + (ref,))
        if isinstance(resolved, dict):
            return {**resolved, **siblings}
        if siblings:
            return {"allOf": [resolved], **siblings}
        return resolved

    def __repr__(self) -> str:
        return f"Specification({self.spec_id!r}, servers={list(self.servers)})"
