"""Tests for the spec registry."""

import asyncio

import httpx
import pytest
import yaml

from exchange_docs_mcp.errors import InvalidSpecificationError
from exchange_docs_mcp.models import SpecSource
from exchange_docs_mcp.registry import SpecRegistry
from exchange_docs_mcp.specification import ServerBase, expand_server_urls

from helpers import make_spec, operation


def ids(specs) -> list[str]:
    return [spec.spec_id for spec in specs]


class TestRegister:
    """Tests for registering documents."""

    def test_register_valid_document(self):
        """Test that a valid document is stored and returned."""
        registry = SpecRegistry()

        spec = registry.register(make_spec({"/users": {"get": operation()}}), spec_id="users")

        assert spec.spec_id == "users"
        assert spec.name == "Test API"
        assert registry.specifications == (spec,)
        assert registry.get("users") is spec

    def test_invalid_document_is_not_registered(self):
        """Test that an invalid document raises with violations and changes nothing."""
        registry = SpecRegistry()
        existing = registry.register(make_spec({"/users": {"get": operation()}}), spec_id="ok")

        document = make_spec({})
        document["info"]["x-custom"] = 1

        with pytest.raises(InvalidSpecificationError) as exc_info:
            registry.register(document, spec_id="bad")

        assert "/info/x-custom" in [v.pointer for v in exc_info.value.violations]
        assert registry.specifications == (existing,)

    def test_default_spec_id_is_title(self):
        """Test that documents without an id or source are keyed by title."""
        registry = SpecRegistry()

        spec = registry.register(make_spec({}, title="Billing"))

        assert spec.spec_id == "Billing"

    def test_same_id_replaces_specification(self):
        """Test that registering an existing id replaces it wholesale."""
        registry = SpecRegistry()
        registry.register(make_spec({"/a": {"get": operation()}}), spec_id="api")
        replacement = registry.register(make_spec({"/b": {"get": operation()}}), spec_id="api")

        assert registry.specifications == (replacement,)
        assert [t.template for t in replacement.templates] == ["/b"]

    def test_unregister(self):
        """Test removing a specification."""
        registry = SpecRegistry()
        registry.register(make_spec({}), spec_id="api")

        assert registry.unregister("api") is True
        assert registry.unregister("api") is False
        assert len(registry) == 0

    def test_registered_document_is_a_copy(self):
        """Test that later changes to the input document do not leak in."""
        registry = SpecRegistry()
        document = make_spec({"/users": {"get": operation()}})
        spec = registry.register(document)

        document["paths"]["/other"] = {}

        assert "/other" not in spec.paths


class TestServerBases:
    """Tests for server URL normalization."""

    def test_trailing_slash_and_case_are_normalized(self):
        """Test that host case and trailing slashes do not matter."""
        base = ServerBase.parse("https://API.Example.com/v2/")

        assert base.host == "api.example.com"
        assert base.base_path == "/v2"
        assert base.url == "https://api.example.com/v2"

    def test_default_port_is_dropped(self):
        """Test that explicit default ports are normalized away."""
        assert ServerBase.parse("https://api.example.com:443/").host == "api.example.com"
        assert ServerBase.parse("http://api.example.com:8080").host == "api.example.com:8080"

    def test_relative_server_matches_any_host(self):
        """Test that relative servers without a source URL are host-agnostic."""
        base = ServerBase.parse("/v1")

        assert base.host is None
        assert base.matches("anything.example.com", "/v1/users")
        assert not base.matches("anything.example.com", "/v10/users")

    def test_relative_server_resolves_against_source(self):
        """Test that relative servers are resolved against an http(s) source."""
        base = ServerBase.parse("/v3", source="https://api.example.com/specs/openapi.json")

        assert base.host == "api.example.com"
        assert base.base_path == "/v3"

    def test_server_variables_are_expanded(self):
        """Test that server variables expand over their enum and default."""
        server = {
            "url": "https://{region}.example.com/{version}",
            "variables": {
                "region": {"default": "eu", "enum": ["eu", "us"]},
                "version": {"default": "v1"},
            },
        }

        assert sorted(expand_server_urls(server)) == [
            "https://eu.example.com/v1",
            "https://us.example.com/v1",
        ]

    def test_undeclared_variables_are_ignored(self):
        """Test that server URLs with unexpanded variables are skipped."""
        assert ServerBase.parse("https://{tenant}.example.com") is None


class TestLookupCandidates:
    """Tests for finding specifications by host and path."""

    def test_longest_prefix_first(self):
        """Test that a spec mounted at /v2/ beats one mounted at /."""
        registry = SpecRegistry()
        registry.register(make_spec({"/users": {"get": operation()}}, servers=["/"]), spec_id="root")
        registry.register(make_spec({"/users": {"get": operation()}}, servers=["/v2/"]), spec_id="v2")

        assert ids(registry.lookup_candidates("example.com", "/v2/users")) == ["v2", "root"]
        assert ids(registry.lookup_candidates("example.com", "/users")) == ["root"]

    def test_prefix_must_end_at_segment_boundary(self):
        """Test that /v2 does not cover /v20."""
        registry = SpecRegistry()
        registry.register(make_spec({}, servers=["https://api.example.com/v2"]), spec_id="v2")

        assert registry.lookup_candidates("api.example.com", "/v20/users") == []
        assert ids(registry.lookup_candidates("api.example.com", "/v2")) == ["v2"]

    def test_host_must_match(self):
        """Test that absolute servers only cover their own host."""
        registry = SpecRegistry()
        registry.register(make_spec({}, servers=["https://api.example.com"]), spec_id="api")

        assert registry.lookup_candidates("other.example.com", "/users") == []
        assert ids(registry.lookup_candidates("API.example.com", "/users")) == ["api"]
        assert registry.lookup_candidates("api.example.com:8443", "/users") == []

    def test_host_specific_beats_host_agnostic(self):
        """Test ordering between equally long base paths."""
        registry = SpecRegistry()
        registry.register(make_spec({}, servers=["/api"]), spec_id="anywhere")
        registry.register(make_spec({}, servers=["https://example.com/api"]), spec_id="example")

        assert ids(registry.lookup_candidates("example.com", "/api/users")) == ["example", "anywhere"]

    def test_spec_without_servers_is_mounted_at_root(self):
        """Test the default server of '/'."""
        registry = SpecRegistry()
        registry.register(make_spec({}), spec_id="default")

        assert ids(registry.lookup_candidates("any.host", "/whatever")) == ["default"]

    def test_spec_appears_once_with_its_best_base(self):
        """Test that specs with several matching servers are listed once."""
        registry = SpecRegistry()
        registry.register(make_spec({}, servers=["/", "/v1"]), spec_id="multi")
        registry.register(make_spec({}, servers=["/v1/admin"]), spec_id="admin")

        assert ids(registry.lookup_candidates("h", "/v1/admin/x")) == ["admin", "multi"]

    def test_register_then_lookup_returns_it_first(self):
        """Test that a freshly registered spec is found first under its base URL."""
        registry = SpecRegistry()
        registry.register(make_spec({}, servers=["https://example.com"]), spec_id="broad")
        spec = registry.register(
            make_spec({}, servers=["https://example.com/billing/"]),
            spec_id="billing",
        )

        assert registry.lookup_candidates("example.com", "/billing/invoices")[0] is spec


class TestAsyncLoading:
    """Tests for acquiring specifications in the background."""

    def _transport(self, documents: dict[str, dict], gate: asyncio.Event = None):
        async def handler(request: httpx.Request) -> httpx.Response:
            if gate is not None:
                await gate.wait()
            document = documents.get(str(request.url))
            if document is None:
                return httpx.Response(404)
            return httpx.Response(200, text=yaml.safe_dump(document))

        return httpx.MockTransport(handler)

    def test_load_from_url(self):
        """Test that a URL source is fetched, validated and registered."""
        url = "https://api.example.com/openapi.yaml"
        registry = SpecRegistry(transport=self._transport({
            url: make_spec({"/users": {"get": operation()}}, servers=["/v1"]),
        }))

        async def run():
            task = registry.load(SpecSource(name="remote", location=url))
            await registry.settled()
            return await task

        spec = asyncio.run(run())

        assert spec is registry.get("remote")
        # Relative servers resolve against the URL the document came from
        assert spec.servers[0].url == "https://api.example.com/v1"

    def test_failed_load_is_logged_and_ignored(self, caplog):
        """Test that fetch failures leave the registry unchanged."""
        registry = SpecRegistry(transport=self._transport({}))

        async def run():
            task = registry.load(SpecSource(name="missing", location="https://x.example.com/a.json"))
            await registry.settled()
            return await task

        assert asyncio.run(run()) is None
        assert len(registry) == 0
        assert "HTTP 404" in caplog.text

    def test_invalid_loaded_document_is_not_registered(self, tmp_path):
        """Test that invalid files are rejected during loading."""
        spec_file = tmp_path / "bad.yaml"
        spec_file.write_text("openapi: 3.0.0\ninfo: {title: Old, version: '1'}\npaths: {}\n")
        registry = SpecRegistry()

        async def run():
            registry.load(SpecSource(name="bad", location=str(spec_file)))
            await registry.settled()

        asyncio.run(run())

        assert len(registry) == 0

    def test_settled_waits_for_pending_loads(self):
        """Test that settled() only returns once in-flight loads finish."""
        url = "https://api.example.com/openapi.yaml"
        gate = asyncio.Event()
        registry = SpecRegistry(transport=self._transport({url: make_spec({})}, gate))

        async def run():
            registry.load(SpecSource(name="slow", location=url))
            waiter = asyncio.ensure_future(registry.settled())
            await asyncio.sleep(0.01)
            assert registry.loading
            assert not waiter.done()

            gate.set()
            await waiter
            assert not registry.loading

        asyncio.run(run())

        assert registry.get("slow") is not None
