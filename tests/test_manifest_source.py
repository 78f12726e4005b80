"""
Tests for GitHub manifest discovery.

HTTP is served by httpx.MockTransport, so the real client code paths
(status handling, JSON decoding, pagination) run without a network.
"""

import json
import pytest
from pathlib import Path
from unittest.mock import AsyncMock

import httpx

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from appstore.config import RegistryConfig
from appstore.manifest_source import (
    GitHubManifestSource, StaticManifestSource, parse_descriptor,
)
from appstore.models import AppCategory
from common.exceptions import CatalogFetchError, DescriptorError


ORG = "z-os4"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _repo(name: str, **extra) -> dict:
    data = {
        "name": name,
        "default_branch": "main",
        "html_url": f"https://github.com/{ORG}/{name}",
        "description": f"{name} repository",
        "archived": False,
    }
    data.update(extra)
    return data


def _descriptor(version: str = "1.0.0", **marker) -> dict:
    return {
        "name": "pkg",
        "version": version,
        "description": "From package.json",
        "author": "zOS Team",
        "main": "dist/index.js",
        "zos": marker,
    }


class FakeGitHub:
    """Routes api.github.com listings and raw.githubusercontent.com descriptors."""

    def __init__(self, repos, descriptors=None, listing_status=200, broken=()):
        self.repos = repos
        self.descriptors = descriptors or {}
        self.listing_status = listing_status
        self.broken = set(broken)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = request.url

        if url.host == "api.github.com":
            if self.listing_status != 200:
                return httpx.Response(self.listing_status, json={"message": "Server Error"})
            page = int(url.params.get("page", "1"))
            per_page = int(url.params.get("per_page", "30"))
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.repos[start:start + per_page])

        _org, name, _branch, _file = url.path.strip("/").split("/", 3)
        if name in self.broken:
            raise httpx.ConnectError("connection reset", request=request)
        body = self.descriptors.get(name)
        if body is None:
            return httpx.Response(404, text="404: Not Found")
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, text=json.dumps(body))

    def descriptor_urls(self):
        return [str(r.url) for r in self.requests if r.url.host != "api.github.com"]


async def _discover(github: FakeGitHub, config: RegistryConfig = None):
    config = config or RegistryConfig(organization=ORG)
    async with httpx.AsyncClient(transport=httpx.MockTransport(github)) as client:
        source = GitHubManifestSource(config, client=client)
        manifests = await source.discover()
    return manifests, source


# ---------------------------------------------------------------------------
# Tests: parse_descriptor
# ---------------------------------------------------------------------------

class TestParseDescriptor:
    """Mapping package.json into a manifest."""

    @pytest.mark.unit
    def test_full_descriptor(self):
        descriptor = _descriptor(
            "2.3.1",
            id="io.zos.notes",
            name="Notes",
            icon="📝",
            category="productivity",
            permissions=["storage", "network"],
            installable=True,
            minPlatformVersion="4.0.0",
            releaseNotes="Faster sync",
        )
        manifest = parse_descriptor(descriptor, _repo("notes"), ORG)

        assert manifest.id == "io.zos.notes"
        assert manifest.name == "Notes"
        assert manifest.version == "2.3.1"
        assert manifest.category is AppCategory.PRODUCTIVITY
        assert manifest.permissions == ("storage", "network")
        assert manifest.author == "zOS Team"
        assert manifest.entry_point == "dist/index.js"
        assert manifest.repository_url == "https://github.com/z-os4/notes"
        assert manifest.min_platform_version == "4.0.0"
        assert manifest.release_notes == "Faster sync"

    @pytest.mark.unit
    def test_defaults_for_empty_marker(self):
        manifest = parse_descriptor({"zos": {}}, _repo("Weather"), ORG)

        assert manifest.id == "io.github.z-os4.weather"
        assert manifest.name == "Weather"
        assert manifest.icon == "📦"
        assert manifest.version == "0.0.0"
        assert manifest.category is AppCategory.UTILITIES
        assert manifest.permissions == ()
        assert manifest.installable is True
        assert manifest.author == ORG
        assert manifest.description == "Weather repository"
        assert manifest.entry_point == "index.js"

    @pytest.mark.unit
    def test_installable_only_false_when_explicit(self):
        off = parse_descriptor({"zos": {"installable": False}}, _repo("a"), ORG)
        on = parse_descriptor({"zos": {"installable": "no"}}, _repo("b"), ORG)
        assert off.installable is False
        assert on.installable is True

    @pytest.mark.unit
    def test_author_object(self):
        descriptor = {"author": {"name": "Ada", "email": "ada@example.com"}, "zos": {}}
        manifest = parse_descriptor(descriptor, _repo("calc"), ORG)
        assert manifest.author == "Ada"

    @pytest.mark.unit
    def test_unknown_category_is_utilities(self):
        manifest = parse_descriptor({"zos": {"category": "games"}}, _repo("chess"), ORG)
        assert manifest.category is AppCategory.UTILITIES

    @pytest.mark.unit
    def test_no_marker_is_not_an_app(self):
        assert parse_descriptor({"name": "lib", "version": "1.0.0"}, _repo("lib"), ORG) is None

    @pytest.mark.unit
    def test_marker_must_be_object(self):
        with pytest.raises(DescriptorError):
            parse_descriptor({"zos": True}, _repo("odd"), ORG)

    @pytest.mark.unit
    def test_descriptor_must_be_object(self):
        with pytest.raises(DescriptorError):
            parse_descriptor(["zos"], _repo("odd"), ORG)


# ---------------------------------------------------------------------------
# Tests: GitHubManifestSource.discover
# ---------------------------------------------------------------------------

class TestGitHubDiscovery:
    """End-to-end discovery against a fake GitHub."""

    @pytest.mark.asyncio
    async def test_discovers_only_marked_repositories(self):
        github = FakeGitHub(
            repos=[
                _repo("notes"),
                _repo(".github"),
                _repo("plain-lib"),
                _repo("no-descriptor"),
                _repo("old-app", archived=True),
                _repo("calc"),
            ],
            descriptors={
                "notes": _descriptor(id="io.zos.notes"),
                ".github": _descriptor(id="io.zos.github"),
                "plain-lib": {"name": "plain-lib", "version": "3.0.0"},
                "old-app": _descriptor(id="io.zos.old"),
                "calc": _descriptor(id="io.zos.calc"),
            },
        )

        manifests, source = await _discover(github)

        assert [m.id for m in manifests] == ["io.zos.notes", "io.zos.calc"]
        assert source.skipped == []
        # dot-prefixed and archived repositories are never fetched
        assert not any("/.github/" in u or "/old-app/" in u for u in github.descriptor_urls())

    @pytest.mark.asyncio
    async def test_archived_repositories_kept_when_configured(self):
        github = FakeGitHub(
            repos=[_repo("old-app", archived=True)],
            descriptors={"old-app": _descriptor(id="io.zos.old")},
        )
        config = RegistryConfig(organization=ORG, skip_archived=False)

        manifests, _ = await _discover(github, config)

        assert [m.id for m in manifests] == ["io.zos.old"]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_repositories(self):
        """Two of five repositories fail; the other three still come through."""
        github = FakeGitHub(
            repos=[_repo(n) for n in ("a", "b", "c", "d", "e")],
            descriptors={
                "a": _descriptor(id="io.zos.a"),
                "b": httpx.Response(500, text="oops"),
                "c": _descriptor(id="io.zos.c"),
                "e": _descriptor(id="io.zos.e"),
            },
            broken={"d"},
        )

        manifests, source = await _discover(github)

        assert [m.id for m in manifests] == ["io.zos.a", "io.zos.c", "io.zos.e"]
        assert sorted(e.details["repo"] for e in source.skipped) == ["b", "d"]
        assert source.warnings == source.skipped

    @pytest.mark.asyncio
    async def test_pathologically_nested_descriptor_is_skipped(self):
        github = FakeGitHub(
            repos=[_repo("a"), _repo("b"), _repo("c")],
            descriptors={
                "a": _descriptor(id="io.x.a"),
                "b": "[" * 200000 + "]" * 200000,
                "c": _descriptor(id="io.x.c"),
            },
        )

        manifests, source = await _discover(github)

        assert [m.id for m in manifests] == ["io.x.a", "io.x.c"]
        assert [e.details["repo"] for e in source.skipped] == ["b"]

    @pytest.mark.asyncio
    async def test_unexpected_client_error_is_skipped(self):
        github = FakeGitHub(
            repos=[_repo("a"), _repo("b")],
            descriptors={"a": _descriptor(id="io.x.a"), "b": _descriptor(id="io.x.b")},
        )

        def handler(request):
            if request.url.path.startswith("/z-os4/b/"):
                raise RuntimeError("transport bug")
            return github(request)

        config = RegistryConfig(organization=ORG)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = GitHubManifestSource(config, client=client)
            manifests = await source.discover()

        assert [m.id for m in manifests] == ["io.x.a"]
        assert "transport bug" in source.skipped[0].details["reason"]

    @pytest.mark.asyncio
    async def test_garbled_descriptor_is_skipped(self):
        github = FakeGitHub(
            repos=[_repo("broken"), _repo("ok")],
            descriptors={"broken": "{not json", "ok": _descriptor(id="io.zos.ok")},
        )

        manifests, source = await _discover(github)

        assert [m.id for m in manifests] == ["io.zos.ok"]
        assert len(source.skipped) == 1
        assert source.skipped[0].code == "DESCRIPTOR_INVALID"

    @pytest.mark.asyncio
    async def test_listing_failure_raises_catalog_error(self):
        github = FakeGitHub(repos=[], listing_status=503)

        with pytest.raises(CatalogFetchError) as excinfo:
            await _discover(github)

        assert excinfo.value.recoverable is True
        assert "503" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_listing_not_a_list(self):
        def handler(request):
            return httpx.Response(200, json={"message": "Not Found"})

        config = RegistryConfig(organization=ORG)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = GitHubManifestSource(config, client=client)
            with pytest.raises(CatalogFetchError):
                await source.discover()

    @pytest.mark.asyncio
    async def test_listing_transport_errors_are_retried(self, monkeypatch):
        monkeypatch.setattr("common.decorators.asyncio.sleep", AsyncMock())
        attempts = {"count": 0}
        github = FakeGitHub(
            repos=[_repo("notes")],
            descriptors={"notes": _descriptor(id="io.zos.notes")},
        )

        def flaky(request):
            if request.url.host == "api.github.com" and attempts["count"] < 2:
                attempts["count"] += 1
                raise httpx.ConnectTimeout("timed out", request=request)
            return github(request)

        config = RegistryConfig(organization=ORG)
        async with httpx.AsyncClient(transport=httpx.MockTransport(flaky)) as client:
            manifests = await GitHubManifestSource(config, client=client).discover()

        assert attempts["count"] == 2
        assert [m.id for m in manifests] == ["io.zos.notes"]

    @pytest.mark.asyncio
    async def test_pagination_follows_full_pages(self):
        names = [f"app{i}" for i in range(5)]
        github = FakeGitHub(
            repos=[_repo(n) for n in names],
            descriptors={n: _descriptor(id=f"io.zos.{n}") for n in names},
        )
        config = RegistryConfig(organization=ORG, per_page=2)

        manifests, _ = await _discover(github, config)

        assert [m.id for m in manifests] == [f"io.zos.{n}" for n in names]
        pages = [r.url.params["page"] for r in github.requests if r.url.host == "api.github.com"]
        assert pages == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_max_pages_caps_listing(self):
        names = [f"app{i}" for i in range(6)]
        github = FakeGitHub(
            repos=[_repo(n) for n in names],
            descriptors={n: _descriptor(id=f"io.zos.{n}") for n in names},
        )
        config = RegistryConfig(organization=ORG, per_page=2, max_pages=2)

        manifests, _ = await _discover(github, config)

        assert len(manifests) == 4

    @pytest.mark.asyncio
    async def test_descriptor_fetched_from_default_branch(self):
        github = FakeGitHub(
            repos=[_repo("legacy", default_branch="master")],
            descriptors={"legacy": _descriptor(id="io.zos.legacy")},
        )

        await _discover(github)

        assert github.descriptor_urls() == [
            "https://raw.githubusercontent.com/z-os4/legacy/master/package.json"
        ]

    @pytest.mark.asyncio
    async def test_token_sent_as_bearer(self):
        github = FakeGitHub(repos=[])
        config = RegistryConfig(organization=ORG, token="ghp_test")

        await _discover(github, config)

        assert github.requests[0].headers["Authorization"] == "Bearer ghp_test"
        assert github.requests[0].headers["Accept"] == "application/vnd.github+json"

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        source = GitHubManifestSource(RegistryConfig(organization=ORG))
        client = source._get_client()

        await source.aclose()

        assert client.is_closed
        assert source._client is None


class TestStaticManifestSource:

    @pytest.mark.asyncio
    async def test_returns_copy(self, notes_manifest):
        source = StaticManifestSource([notes_manifest])
        first = await source.discover()
        first.clear()

        assert await source.discover() == [notes_manifest]
        assert source.warnings == []
