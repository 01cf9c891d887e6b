"""
HTTP clients for the npm registry, package tarballs and SPDX license texts.

All clients share one httpx.AsyncClient per run. Each client is also an async
context manager that creates (and later closes) its own client when none was
passed in.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from httpx import HTTPStatusError, RequestError

from .cache_manager import ResponseCacheManager
from .cli_config import NetworkConfig
from .error_handling import (
    RegistryLookupFailed,
    SpdxFetchFailed,
    TarballFetchFailed,
    sanitize_url,
)
from .structured_logging import get_registry_logger

REGISTRY_NAMESPACE = "registry"
SPDX_NAMESPACE = "spdx"


def create_http_client(
    network: NetworkConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Build the shared AsyncClient with the configured timeouts and user agent."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(network.read_timeout, connect=network.connect_timeout),
        headers={"User-Agent": network.user_agent},
        follow_redirects=True,
        transport=transport,
    )


@dataclass(frozen=True)
class RegistryPackage:
    """License relevant fields of a registry document, for one version."""

    name: str
    version: Optional[str] = None
    license: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    tarball_url: Optional[str] = None


def extract_repository_url(repository_data: Any) -> Optional[str]:
    """Extract repository URL from npm repository field."""
    if not repository_data:
        return None

    if isinstance(repository_data, str):
        return repository_data
    elif isinstance(repository_data, dict):
        url = repository_data.get("url")
        return url if isinstance(url, str) else None

    return None


def extract_license(license_data: Any) -> Optional[str]:
    """Extract license string from npm license field."""
    if not license_data:
        return None

    if isinstance(license_data, str):
        return license_data
    elif isinstance(license_data, dict):
        license_type = license_data.get("type")
        return license_type if isinstance(license_type, str) else None
    elif isinstance(license_data, list):
        # Legacy "licenses" arrays, take the first one
        first_license = license_data[0]
        if isinstance(first_license, (str, dict)):
            return extract_license(first_license)

    return None


def declared_license(metadata: Dict[str, Any]) -> Optional[str]:
    """Declared license of a package.json-like mapping, legacy field included."""
    return extract_license(metadata.get("license")) or extract_license(
        metadata.get("licenses")
    )


class BaseHttpClient:
    """
    Base class for the HTTP clients.

    Uses the async context manager pattern for httpx.AsyncClient resource
    management when the client is not injected.
    """

    def __init__(
        self,
        network: NetworkConfig,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ResponseCacheManager] = None,
    ):
        self.network = network
        self.client = client
        self.cache = cache or ResponseCacheManager()
        self._owns_client = client is None
        self._key_locks: Dict[str, asyncio.Lock] = {}

    async def __aenter__(self):
        """Initialize the HTTP client when entering the context."""
        if self.client is None:
            self.client = create_http_client(self.network)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up the HTTP client when exiting the context."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self.client is None:
            raise RuntimeError("HTTP client not initialized - use within async context manager")
        return self.client

    def _lock_for(self, key: str) -> asyncio.Lock:
        # One in-flight request per cache key
        return self._key_locks.setdefault(key, asyncio.Lock())


class NPMRegistryClient(BaseHttpClient):
    """Client for package documents from an npm compatible registry."""

    def _auth_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.network.registry_token:
            headers["Authorization"] = f"Bearer {self.network.registry_token}"
        return headers

    def package_url(self, package_name: str) -> str:
        """Registry document URL; scoped names are sent as ``@scope%2Fname``."""
        return f"{self.network.registry_url.rstrip('/')}/{quote(package_name, safe='@')}"

    async def fetch_document(self, package_name: str) -> Dict[str, Any]:
        """
        Fetch the full registry document of a package.

        Raises:
            RegistryLookupFailed: On transport errors, non-2xx responses or a
                body that is not a JSON object
        """
        cached = self.cache.get(REGISTRY_NAMESPACE, package_name)
        if cached is not None:
            return cached

        async with self._lock_for(package_name):
            cached = self.cache.get(REGISTRY_NAMESPACE, package_name)
            if cached is not None:
                return cached

            url = self.package_url(package_name)
            logger = get_registry_logger()
            logger.debug("registry_request", url=sanitize_url(url))

            try:
                response = await self._require_client().get(url, headers=self._auth_headers())
                response.raise_for_status()
                data = response.json()
            except HTTPStatusError as e:
                raise RegistryLookupFailed(
                    f"Registry returned HTTP {e.response.status_code} for {package_name}",
                    status_code=e.response.status_code,
                ) from e
            except RequestError as e:
                raise RegistryLookupFailed(
                    f"Network error fetching {package_name} from registry: {e}"
                ) from e
            except ValueError as e:
                raise RegistryLookupFailed(
                    f"Invalid JSON in registry document for {package_name}"
                ) from e

            if not isinstance(data, dict):
                raise RegistryLookupFailed(
                    f"Registry document for {package_name} is not an object"
                )

            self.cache.put(REGISTRY_NAMESPACE, package_name, data)
            return data

    async def get_package(self, package_name: str, version: str = "") -> RegistryPackage:
        """
        Look up license metadata for one version of a package.

        An empty version selects ``dist-tags.latest``. The declared license is
        read from the top of the document first, then from the version entry.
        """
        data = await self.fetch_document(package_name)

        dist_tags = data.get("dist-tags") if isinstance(data.get("dist-tags"), dict) else {}
        selected = version or dist_tags.get("latest")
        versions = data.get("versions") if isinstance(data.get("versions"), dict) else {}
        version_data = versions.get(selected, {}) if selected else {}
        if not isinstance(version_data, dict):
            version_data = {}

        dist = version_data.get("dist") if isinstance(version_data.get("dist"), dict) else {}
        repository = extract_repository_url(data.get("repository")) or extract_repository_url(
            version_data.get("repository")
        )
        homepage = data.get("homepage") or version_data.get("homepage")

        return RegistryPackage(
            name=package_name,
            version=selected,
            license=declared_license(data) or declared_license(version_data),
            homepage=homepage if isinstance(homepage, str) else None,
            repository=repository,
            tarball_url=dist.get("tarball"),
        )

    async def download(self, url: str, destination: Path) -> Path:
        """
        Stream a tarball to ``destination``.

        Raises:
            TarballFetchFailed: On transport, HTTP or file system errors
        """
        logger = get_registry_logger()
        logger.verbose("tarball_download", url=sanitize_url(url))

        try:
            async with self._require_client().stream("GET", url) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        await asyncio.to_thread(f.write, chunk)
        except HTTPStatusError as e:
            raise TarballFetchFailed(
                f"Tarball download returned HTTP {e.response.status_code}: {sanitize_url(url)}"
            ) from e
        except RequestError as e:
            raise TarballFetchFailed(
                f"Network error downloading {sanitize_url(url)}: {e}"
            ) from e
        except OSError as e:
            raise TarballFetchFailed(f"Could not write {destination}: {e}") from e

        return destination


class SpdxTextClient(BaseHttpClient):
    """Client for plain-text licenses from the SPDX license list."""

    def text_url(self, identifier: str) -> str:
        return f"{self.network.spdx_text_url.rstrip('/')}/{quote(identifier)}.txt"

    async def fetch(self, identifier: str) -> str:
        """
        Fetch the license text for an SPDX identifier.

        Raises:
            SpdxFetchFailed: On transport errors or non-2xx responses
        """
        cached = self.cache.get(SPDX_NAMESPACE, identifier)
        if cached is not None:
            return cached

        async with self._lock_for(identifier):
            cached = self.cache.get(SPDX_NAMESPACE, identifier)
            if cached is not None:
                return cached

            url = self.text_url(identifier)
            get_registry_logger().debug("spdx_request", url=url)
            try:
                response = await self._require_client().get(url)
                response.raise_for_status()
            except HTTPStatusError as e:
                raise SpdxFetchFailed(
                    f"No SPDX text for {identifier} (HTTP {e.response.status_code})"
                ) from e
            except RequestError as e:
                raise SpdxFetchFailed(f"Network error fetching SPDX text {identifier}: {e}") from e

            text = response.text
            self.cache.put(SPDX_NAMESPACE, identifier, text)
            return text
