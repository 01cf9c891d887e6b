"""
License source chain.

Resolves the license texts of every dependency through an ordered list of
sources: local package metadata, the npm registry, license files in
node_modules, the published tarball and finally the SPDX license list. Each
source is only consulted while the previous ones left something missing.
"""

import asyncio
import hashlib
import json
import os
import re
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .cli_config import ReportConfig
from .dependency import Dependency
from .error_handling import (
    ErrorLevel,
    LocalFileReadFailed,
    NoLicenseFound,
    NoLicenseFoundStrict,
    RecoverableError,
    SpdxParseFailed,
    TarballFetchFailed,
    get_error_handler,
)
from .manifest import find_in_roots
from .registry_clients import (
    NPMRegistryClient,
    SpdxTextClient,
    declared_license,
    extract_repository_url,
)
from .spdx import license_identifiers, load_bundled_text
from .structured_logging import get_license_logger

LICENSE_FILE_RE = re.compile(r"^(LICENSE|LICENCE|COPYING|COPYRIGHT)", re.IGNORECASE)
NO_MATCH_EXTENSIONS = frozenset(["js", "ts", "d.ts", "c", "cpp", "h", "class", "pl", "sh"])


def text_id(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def short_link(name: str) -> str:
    """Stable 12 character anchor for a package name."""
    return hashlib.sha1(name.encode("utf-8")).hexdigest()[:12]


def is_license_file(path: str) -> bool:
    """True for LICENSE/LICENCE/COPYING/COPYRIGHT files that are not code."""
    basename = path.replace("\\", "/").rsplit("/", 1)[-1]
    if not LICENSE_FILE_RE.match(basename):
        return False
    if "." in basename and basename.rsplit(".", 1)[1] in NO_MATCH_EXTENSIONS:
        return False
    return True


@dataclass
class LicenseRecord:
    """Everything known about one dependency's license."""

    dependency: Dependency
    short_link: str
    declared_license: str = ""
    homepage: Optional[str] = None
    texts: Dict[str, str] = field(default_factory=dict)

    def add_text(self, text: str) -> None:
        self.texts[text_id(text)] = text

    @property
    def name(self) -> str:
        return self.dependency.name


def scan_license_files(directory: Path) -> Dict[str, str]:
    """
    Read every license file below ``directory``.

    Returns:
        Dict[str, str]: sha1 of the trimmed text -> trimmed text
    """
    texts = {}
    error_handler = get_error_handler()

    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for file_name in sorted(files):
            if not is_license_file(file_name):
                continue
            path = Path(root) / file_name
            try:
                text = path.read_text(encoding="utf-8", errors="replace").strip()
            except OSError as e:
                error_handler.report(
                    LocalFileReadFailed(f"Could not read license file {path}: {e}"),
                    "license_sources",
                    "scan_license_files",
                )
                continue
            get_license_logger().verbose("license_file_read", f"Reading license from: {path}")
            texts[text_id(text)] = text

    return texts


def extract_license_members(archive: Path, destination: Path) -> List[Path]:
    """
    Extract only license files from a tarball.

    Members that are not regular files, do not look like license files or
    would land outside ``destination`` are ignored.

    Raises:
        TarballFetchFailed: If the archive cannot be opened or read
    """
    destination.mkdir(parents=True, exist_ok=True)
    base = destination.resolve()
    extracted = []

    try:
        with tarfile.open(archive, mode="r:*") as tar:
            for member in tar.getmembers():
                if not member.isfile() or not is_license_file(member.name):
                    continue

                target = (base / member.name).resolve()
                if os.path.commonpath([str(base), str(target)]) != str(base):
                    continue

                source = tar.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with source, open(target, "wb") as f:
                    f.write(source.read())
                extracted.append(target)
    except (tarfile.TarError, OSError) as e:
        raise TarballFetchFailed(f"Could not extract {archive.name}: {e}") from e

    return extracted


class LicenseResolver:
    """Runs the source chain for each dependency, several dependencies at a time."""

    def __init__(
        self,
        config: ReportConfig,
        registry_client: NPMRegistryClient,
        spdx_client: SpdxTextClient,
        max_concurrent: int = 16,
    ):
        self.config = config
        self.registry_client = registry_client
        self.spdx_client = spdx_client
        self.max_concurrent = max_concurrent

    def _find(self, relative_path: str) -> Optional[Path]:
        return find_in_roots(relative_path, self.config.root_path, self.config.monorepo_path)

    def _report(self, error: RecoverableError, function: str, record: LicenseRecord) -> None:
        get_error_handler().report(
            error,
            "license_sources",
            function,
            details={"package": record.dependency.spec},
        )

    def _homepage(self, homepage, repository) -> Optional[str]:
        if not self.config.external_links:
            return None
        if isinstance(homepage, str) and homepage:
            return homepage
        return extract_repository_url(repository)

    def from_local_metadata(self, record: LicenseRecord) -> bool:
        """
        Read the installed package.json.

        Returns True only when a declared license was found and a tarball
        URL is already known, so the registry can be skipped.
        """
        logger = get_license_logger()
        dependency = record.dependency

        metadata_path = self._find(dependency.local_metadata_path)
        if metadata_path is None:
            logger.verbose("local_metadata_missing", f"Cannot find local package: {dependency.local_metadata_path}")
            return False

        logger.debug("local_metadata_read", f"Loading {metadata_path} for {dependency.name}")
        try:
            with open(metadata_path, encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise LocalFileReadFailed(f"Could not read {metadata_path}: {e}") from e
        if not isinstance(metadata, dict):
            raise LocalFileReadFailed(f"{metadata_path} does not contain a JSON object")

        license_value = declared_license(metadata)
        if not license_value:
            logger.warning(
                "local_license_missing",
                f"Could not find license info in local package.json for {dependency.spec}",
            )
            return False

        record.declared_license = license_value
        record.homepage = self._homepage(metadata.get("homepage"), metadata.get("repository"))
        return bool(dependency.tarball_url)

    async def from_registry(self, record: LicenseRecord) -> bool:
        dependency = record.dependency
        package = await self.registry_client.get_package(dependency.name, dependency.version)

        if package.license:
            record.declared_license = package.license
        elif not record.declared_license:
            get_license_logger().warning(
                "registry_license_missing",
                f"Could not find license info in registry for {dependency.spec}",
            )

        if record.homepage is None:
            record.homepage = self._homepage(package.homepage, package.repository)
        if not dependency.tarball_url and package.tarball_url:
            record.dependency = dependency.with_tarball(package.tarball_url)
        return bool(package.license)

    async def from_local_files(self, record: LicenseRecord) -> None:
        package_dir = self._find(f"node_modules/{record.dependency.name}")
        if package_dir is None or not package_dir.is_dir():
            return
        record.texts.update(await asyncio.to_thread(scan_license_files, package_dir))

    async def from_tarball(self, record: LicenseRecord) -> None:
        """Download the published tarball into the scratch directory and scan it."""
        dependency = record.dependency
        url = dependency.tarball_url
        if not url:
            raise TarballFetchFailed(f"No tarball location for {dependency.spec}")
        if not url.startswith(("https://", "http://")):
            raise TarballFetchFailed(f"Tarball for {dependency.spec} is not an online location")

        scratch_dir = self.config.scratch_dir
        scratch_dir.mkdir(parents=True, exist_ok=True)
        archive = scratch_dir / f"{dependency.scratch_name}.tgz"
        extract_dir = scratch_dir / dependency.scratch_name

        await self.registry_client.download(url, archive)
        await asyncio.to_thread(extract_license_members, archive, extract_dir)
        record.texts.update(await asyncio.to_thread(scan_license_files, extract_dir))

    async def from_spdx(self, record: LicenseRecord) -> None:
        """Resolve each identifier of the declared license to its canonical text."""
        logger = get_license_logger()
        if not record.declared_license or not isinstance(record.declared_license, str):
            raise SpdxParseFailed(f"No license string to parse for {record.name}")

        for identifier in license_identifiers(record.declared_license):
            bundled = load_bundled_text(identifier)
            if bundled is not None:
                logger.debug("spdx_bundled", f"Using prefetched SPDX license {identifier}")
                record.add_text(bundled)
                continue

            logger.info("spdx_download", f"Downloading SPDX license {identifier}")
            try:
                record.add_text(await self.spdx_client.fetch(identifier))
            except RecoverableError as e:
                self._report(e, "from_spdx", record)

    async def resolve(self, dependency: Dependency) -> LicenseRecord:
        """
        Resolve the license record of a single dependency.

        Raises:
            NoLicenseFoundStrict: When no text was found and fail_on_missing is set
        """
        config = self.config
        logger = get_license_logger()
        record = LicenseRecord(dependency=dependency, short_link=short_link(dependency.name))

        has_license_info = False
        if config.avoid_registry:
            try:
                has_license_info = self.from_local_metadata(record)
            except RecoverableError as e:
                self._report(e, "from_local_metadata", record)

        if not has_license_info:
            try:
                await self.from_registry(record)
            except RecoverableError as e:
                self._report(e, "from_registry", record)

        if not config.only_spdx:
            await self.from_local_files(record)

        if not record.texts and config.tarball_download_enabled:
            try:
                await self.from_tarball(record)
            except RecoverableError as e:
                self._report(e, "from_tarball", record)

        if not record.texts:
            if not config.only_spdx:
                logger.warning(
                    "license_file_missing",
                    f"No license file found for package {record.name}"
                    + ("" if config.no_spdx else ", using SPDX string"),
                )
            if not config.no_spdx:
                try:
                    await self.from_spdx(record)
                except RecoverableError as e:
                    self._report(e, "from_spdx", record)

        if not record.texts:
            if config.fail_on_missing:
                raise NoLicenseFoundStrict(record.name)
            get_error_handler().report(
                NoLicenseFound(f"No license file for {record.name}, skipping..."),
                "license_sources",
                "resolve",
                level=ErrorLevel.ERROR,
                details={"package": dependency.spec},
            )

        logger.debug("license_resolved", package=dependency.spec, texts=len(record.texts))
        return record

    async def resolve_all(self, dependencies: Iterable[Dependency]) -> List[LicenseRecord]:
        """
        Resolve all dependencies with at most ``max_concurrent`` in flight.

        Records are returned in input order. A strict missing license cancels
        the remaining work and propagates.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def bounded(dependency: Dependency) -> LicenseRecord:
            async with semaphore:
                return await self.resolve(dependency)

        tasks = [asyncio.create_task(bounded(dependency)) for dependency in dependencies]
        if not tasks:
            return []

        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
