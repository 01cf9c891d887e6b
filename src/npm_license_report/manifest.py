"""
Manifest and lock file reader.

Locates package.json and its lock file in the project root (falling back to
the monorepo root) and exposes their raw records. Two package-lock schema
generations are understood; yarn.lock (v1) is read as a generation 1
equivalent flat mapping.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .error_handling import (
    LockMissing,
    ManifestMissing,
    ManifestParseError,
    UnsupportedLockVersion,
    get_error_handler,
)
from .structured_logging import get_resolver_logger

MANIFEST_FILE = "package.json"
NPM_LOCK_FILE = "package-lock.json"
YARN_LOCK_FILE = "yarn.lock"

GENERATION_1 = 1
GENERATION_3 = 3
SUPPORTED_GENERATIONS = (GENERATION_1, GENERATION_3)

_YARN_VERSION_RE = re.compile(r'^version\s+"?([^"\s]+)"?')
_YARN_RESOLVED_RE = re.compile(r'^resolved\s+"?([^"\s]+)"?')


@dataclass(frozen=True)
class ProjectManifest:
    """The fields of package.json the pipeline needs."""

    name: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)
    path: Optional[Path] = None


@dataclass(frozen=True)
class LockEntry:
    version: str
    resolved: Optional[str] = None


@dataclass(frozen=True)
class LockFile:
    """
    Raw lock file records.

    For generation 1 the keys of ``entries`` are package names, for
    generation 3 they are install paths such as
    ``node_modules/a/node_modules/b``.
    """

    version_marker: Any
    entries: Dict[str, LockEntry]
    path: Path
    source: str = NPM_LOCK_FILE

    @property
    def generation(self) -> Optional[int]:
        if self.version_marker in SUPPORTED_GENERATIONS and not isinstance(
            self.version_marker, bool
        ):
            return int(self.version_marker)
        return None

    @property
    def supported(self) -> bool:
        return self.generation is not None

    def lookup(self, key: str) -> Optional[LockEntry]:
        return self.entries.get(key)


def find_in_roots(
    relative_path: Union[str, Path],
    project_root: Path,
    monorepo_root: Optional[Path] = None,
) -> Optional[Path]:
    """Resolve a path against the project root, then the monorepo root."""
    candidate = (project_root / relative_path).resolve()
    if candidate.exists():
        return candidate

    if monorepo_root is not None:
        candidate = (monorepo_root / relative_path).resolve()
        if candidate.exists():
            return candidate

    return None


def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid JSON in {path.name}: {e}") from e
    except OSError as e:
        raise ManifestParseError(f"Error reading {path.name}: {e}") from e


def _string_mapping(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {
        str(name).strip(): str(spec)
        for name, spec in value.items()
        if isinstance(name, str) and name.strip()
    }


def parse_package_json(path: Path) -> ProjectManifest:
    """
    Parse a package.json file.

    Raises:
        ManifestParseError: If the file is not valid JSON or not an object
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ManifestParseError(f"{path.name} must contain a JSON object")

    return ProjectManifest(
        name=str(data.get("name") or path.parent.name),
        dependencies=_string_mapping(data.get("dependencies")),
        dev_dependencies=_string_mapping(data.get("devDependencies")),
        optional_dependencies=_string_mapping(data.get("optionalDependencies")),
        path=path,
    )


def _lock_entries(records: Any) -> Dict[str, LockEntry]:
    entries = {}
    if not isinstance(records, dict):
        return entries
    for key, record in records.items():
        if not isinstance(record, dict):
            continue
        resolved = record.get("resolved")
        entries[key] = LockEntry(
            version=str(record.get("version") or ""),
            resolved=resolved if isinstance(resolved, str) else None,
        )
    return entries


def parse_package_lock(path: Path) -> LockFile:
    """
    Parse a package-lock.json file.

    Generation 1 records live under ``dependencies``, generation 3 records
    under ``packages``. Other generations are returned with no entries.
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ManifestParseError(f"{path.name} must contain a JSON object")

    marker = data.get("lockfileVersion")
    if marker == GENERATION_1:
        entries = _lock_entries(data.get("dependencies"))
    elif marker == GENERATION_3:
        entries = _lock_entries(data.get("packages"))
    else:
        entries = {}

    return LockFile(version_marker=marker, entries=entries, path=path)


def _yarn_package_name(spec: str) -> Optional[str]:
    """Extract ``@scope/name`` or ``name`` from ``"@scope/name@^1.0.0"``."""
    spec = spec.strip().strip("\"'")
    at = spec.rfind("@")
    if at <= 0:
        return None
    return spec[:at]


def parse_yarn_lock(path: Path) -> LockFile:
    """
    Parse a yarn.lock (v1) file into a flat name -> entry mapping.

    Yarn lock files use a custom format that's similar to YAML but not quite.
    When several version ranges of one package resolve differently, the
    first block wins. Berry (v2+) lock files are reported as unsupported.
    """
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ManifestParseError(f"Error reading {path.name}: {e}") from e

    if "__metadata:" in content:
        return LockFile(version_marker="yarn-berry", entries={}, path=path, source=YARN_LOCK_FILE)

    entries: Dict[str, LockEntry] = {}
    current: Optional[str] = None
    version: Optional[str] = None
    resolved: Optional[str] = None

    def flush() -> None:
        if current and version and current not in entries:
            entries[current] = LockEntry(version=version, resolved=resolved)

    for raw_line in content.splitlines():
        if not raw_line.strip() or raw_line.lstrip().startswith("#"):
            continue

        # Package declaration line (unindented, ends with :)
        if not raw_line.startswith((" ", "\t")):
            flush()
            current, version, resolved = None, None, None
            header = raw_line.rstrip().rstrip(":")
            for spec in header.split(","):
                name = _yarn_package_name(spec)
                if name:
                    current = name
                    break
            continue

        line = raw_line.strip()
        version_match = _YARN_VERSION_RE.match(line)
        if version_match:
            version = version_match.group(1)
            continue
        resolved_match = _YARN_RESOLVED_RE.match(line)
        if resolved_match:
            resolved = resolved_match.group(1).split("#", 1)[0]

    flush()
    return LockFile(
        version_marker=GENERATION_1, entries=entries, path=path, source=YARN_LOCK_FILE
    )


def read_manifest(project_root: Path, monorepo_root: Optional[Path] = None) -> ProjectManifest:
    """
    Locate and parse package.json.

    Raises:
        ManifestMissing: If no package.json exists in either root
    """
    logger = get_resolver_logger()
    manifest_path = find_in_roots(MANIFEST_FILE, project_root, monorepo_root)
    if manifest_path is None:
        raise ManifestMissing(f"No {MANIFEST_FILE} found in {project_root}")

    logger.verbose("manifest_found", f"Parsing package file: {manifest_path}")
    return parse_package_json(manifest_path)


def read_lock_file(project_root: Path, monorepo_root: Optional[Path] = None) -> LockFile:
    """
    Locate and parse the lock file, preferring package-lock.json over yarn.lock.

    Raises:
        LockMissing: If neither lock file exists in either root
    """
    logger = get_resolver_logger()

    npm_lock = find_in_roots(NPM_LOCK_FILE, project_root, monorepo_root)
    if npm_lock is not None:
        logger.verbose("lock_file_found", f"Using lock file: {npm_lock}")
        lock = parse_package_lock(npm_lock)
    else:
        yarn_lock = find_in_roots(YARN_LOCK_FILE, project_root, monorepo_root)
        if yarn_lock is None:
            raise LockMissing(f"No {NPM_LOCK_FILE} or {YARN_LOCK_FILE} found in {project_root}")
        logger.info("lock_file_found", f"Using yarn instead of npm lock file: {yarn_lock}")
        lock = parse_yarn_lock(yarn_lock)

    if not lock.supported:
        get_error_handler().report(
            UnsupportedLockVersion(
                f"Unsupported lock file version {lock.version_marker!r}! "
                "Falling back to using package.json only"
            ),
            "manifest",
            "read_lock_file",
            details={"lock_file": lock.path.name},
        )

    return lock
