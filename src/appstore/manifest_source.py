"""
Manifest Source - discovers installable apps published in a GitHub organization.

Every repository of the organization is a candidate. A repository is an
app when its package.json on the default branch carries a ``zos``
section:

    {
      "name": "notes",
      "version": "1.2.0",
      "description": "Take notes",
      "author": "zOS",
      "main": "dist/index.js",
      "zos": {
        "id": "io.zos.notes",
        "name": "Notes",
        "icon": "📝",
        "category": "productivity",
        "permissions": ["storage"],
        "installable": true,
        "minPlatformVersion": "4.0.0"
      }
    }

Repositories without a descriptor, or without the section, are silently
ignored. A repository that fails to fetch or parse is skipped and noted
in ``skipped``; only a failure of the organization listing itself aborts
discovery.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Iterable

import httpx

from common.decorators import retry, timed
from common.exceptions import CatalogFetchError, DescriptorError

from .config import RegistryConfig
from .models import AppManifest, AppCategory

logger = logging.getLogger(__name__)

USER_AGENT = "zos-appstore"


class ManifestSource(ABC):
    """Base class for manifest sources."""

    @abstractmethod
    async def discover(self) -> List[AppManifest]:
        """
        Fetch the current list of candidate apps.

        Raises:
            CatalogFetchError: if the catalog as a whole is unreachable
        """
        pass

    @property
    def warnings(self) -> List[DescriptorError]:
        """Per-repository problems from the last discovery."""
        return []

    async def aclose(self) -> None:
        """Release network resources."""
        pass


class StaticManifestSource(ManifestSource):
    """Serves a fixed list of manifests (offline mode)."""

    def __init__(self, manifests: Optional[Iterable[AppManifest]] = None):
        self._manifests = list(manifests or [])

    async def discover(self) -> List[AppManifest]:
        return list(self._manifests)


def _author(value: Any, fallback: str) -> str:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def parse_descriptor(
    descriptor: Any,
    repo: Dict[str, Any],
    organization: str,
    marker_key: str = "zos",
) -> Optional[AppManifest]:
    """
    Map a repository's package.json to a manifest.

    Args:
        descriptor: Decoded package.json
        repo: Repository entry from the organization listing
        organization: Organization name, used for default id and author
        marker_key: Top-level key that marks the repository as an app

    Returns:
        AppManifest, or None if the descriptor has no marker section.

    Raises:
        DescriptorError: if the descriptor is present but unusable
    """
    repo_name = repo.get("name", "")
    if not isinstance(descriptor, dict):
        raise DescriptorError(repo_name, "descriptor is not a JSON object")

    marker = descriptor.get(marker_key)
    if marker is None:
        return None
    if not isinstance(marker, dict):
        raise DescriptorError(repo_name, f"'{marker_key}' section is not an object")

    app_id = marker.get("id")
    if not isinstance(app_id, str) or not app_id.strip():
        app_id = f"io.github.{organization}.{repo_name}".lower()

    description = descriptor.get("description") or repo.get("description") or ""
    version = descriptor.get("version")
    release_notes = marker.get("releaseNotes")

    return AppManifest(
        id=app_id.strip(),
        name=str(marker.get("name") or repo_name),
        description=str(description),
        icon=str(marker.get("icon") or "📦"),
        version=version if isinstance(version, str) and version else "0.0.0",
        category=AppCategory.parse(marker.get("category", "utilities")),
        author=_author(descriptor.get("author"), organization),
        repository_url=str(repo.get("html_url") or ""),
        min_platform_version=str(marker.get("minPlatformVersion") or "1.0.0"),
        permissions=marker.get("permissions") or (),
        installable=marker.get("installable") is not False,
        entry_point=str(descriptor.get("main") or "index.js"),
        release_notes=release_notes if isinstance(release_notes, str) else None,
    )


class GitHubManifestSource(ManifestSource):
    """
    Discovers app manifests across a GitHub organization.

    The HTTP client is created lazily and owned by the source unless one
    is passed in; call ``aclose()`` when done.
    """

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or RegistryConfig()
        self._client = client
        self._owns_client = client is None
        self.skipped: List[DescriptorError] = []

    @property
    def warnings(self) -> List[DescriptorError]:
        return list(self.skipped)

    @property
    def listing_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/orgs/{self.config.organization}/repos"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @timed
    async def discover(self) -> List[AppManifest]:
        self.skipped = []
        client = self._get_client()

        repos = await self.list_repositories(client)
        candidates = [r for r in repos if self._is_candidate(r)]
        logger.debug(
            f"{len(candidates)} of {len(repos)} repositories in "
            f"{self.config.organization} are candidates"
        )

        # gather() keeps listing order, so de-duplication downstream is stable
        results = await asyncio.gather(
            *(self._fetch_manifest(client, repo) for repo in candidates)
        )
        manifests = [m for m in results if m is not None]

        logger.info(
            f"Discovered {len(manifests)} apps in {self.config.organization}"
            + (f" ({len(self.skipped)} repositories skipped)" if self.skipped else "")
        )
        return manifests

    async def list_repositories(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        """
        Fetch every repository of the organization, page by page.

        Raises:
            CatalogFetchError: if any listing page fails
        """
        url = self.listing_url
        repos: List[Dict[str, Any]] = []

        for page in range(1, self.config.max_pages + 1):
            try:
                batch = await self._fetch_repo_page(client, url, page)
            except httpx.HTTPStatusError as e:
                raise CatalogFetchError(url, f"HTTP {e.response.status_code}", cause=e)
            except httpx.HTTPError as e:
                raise CatalogFetchError(url, str(e) or type(e).__name__, cause=e)
            except ValueError as e:
                raise CatalogFetchError(url, "response is not valid JSON", cause=e)

            if not isinstance(batch, list):
                raise CatalogFetchError(url, "expected a list of repositories")

            repos.extend(r for r in batch if isinstance(r, dict))
            if len(batch) < self.config.per_page:
                break
        else:
            logger.warning(
                f"Stopped listing {self.config.organization} after "
                f"{self.config.max_pages} pages"
            )

        return repos

    @retry(max_attempts=3, delay=0.5, exceptions=(httpx.TransportError,))
    async def _fetch_repo_page(self, client: httpx.AsyncClient, url: str, page: int) -> Any:
        resp = await client.get(
            url,
            params={"per_page": self.config.per_page, "page": page},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()

    def _is_candidate(self, repo: Dict[str, Any]) -> bool:
        name = repo.get("name")
        if not isinstance(name, str) or not name:
            return False
        # .github and friends are organization plumbing
        if name.startswith("."):
            return False
        if self.config.skip_archived and repo.get("archived") is True:
            return False
        return True

    def descriptor_url(self, repo: Dict[str, Any]) -> str:
        branch = repo.get("default_branch") or self.config.branch
        return (
            f"{self.config.raw_url.rstrip('/')}/{self.config.organization}/"
            f"{repo['name']}/{branch}/{self.config.descriptor_path}"
        )

    def _skip(self, repo_name: str, reason: str) -> None:
        error = DescriptorError(repo_name, reason)
        logger.warning(error.message)
        self.skipped.append(error)

    async def _fetch_manifest(
        self, client: httpx.AsyncClient, repo: Dict[str, Any]
    ) -> Optional[AppManifest]:
        name = repo["name"]
        url = self.descriptor_url(repo)

        try:
            resp = await client.get(url, headers=self._headers())
            if resp.status_code == 404:
                logger.debug(f"{name}: no {self.config.descriptor_path}, not an app")
                return None
            resp.raise_for_status()
            descriptor = resp.json()
        except httpx.HTTPStatusError as e:
            self._skip(name, f"HTTP {e.response.status_code} fetching descriptor")
            return None
        except httpx.HTTPError as e:
            self._skip(name, str(e) or type(e).__name__)
            return None
        except ValueError:
            self._skip(name, "descriptor is not valid JSON")
            return None
        except Exception as e:
            # One repository never takes the rest of the organization down
            self._skip(name, f"{type(e).__name__}: {e}")
            return None

        try:
            manifest = parse_descriptor(
                descriptor, repo, self.config.organization, self.config.marker_key
            )
        except DescriptorError as e:
            logger.warning(e.message)
            self.skipped.append(e)
            return None
        except Exception as e:
            self._skip(name, f"unusable descriptor ({type(e).__name__}: {e})")
            return None

        if manifest is None:
            logger.debug(f"{name}: no '{self.config.marker_key}' section, not an app")
        return manifest
