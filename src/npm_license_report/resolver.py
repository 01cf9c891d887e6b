"""
Dependency set resolution.

Turns the manifest and lock file records into the canonical, deduplicated and
sorted list of dependencies a report is generated for.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .cli_config import ReportConfig
from .dependency import Dependency, sort_key
from .error_handling import DependencyNotInLock, get_error_handler
from .manifest import GENERATION_1, GENERATION_3, LockFile, ProjectManifest
from .structured_logging import get_resolver_logger

NODE_MODULES = "node_modules/"


@dataclass(frozen=True)
class DependencyCandidate:
    """A name selected for the report together with its lock install path."""

    name: str
    install_path: str


def _manifest_names(manifest: ProjectManifest, config: ReportConfig) -> List[str]:
    names = list(manifest.dependencies)
    if not config.only_prod:
        if config.include_dev:
            names.extend(manifest.dev_dependencies)
        if config.include_optional:
            names.extend(manifest.optional_dependencies)
    return names


def _generation_1_names(
    manifest: ProjectManifest, lock: LockFile, config: ReportConfig
) -> List[str]:
    names = list(lock.entries)
    if config.only_prod:
        get_resolver_logger().warning(
            "reduced_fidelity",
            "Using only-prod with a generation 1 or yarn lock file cannot see "
            "transitive production dependencies; use a generation 3 npm lock",
        )
        prod_names = set(manifest.dependencies)
        names = [name for name in names if name in prod_names]
    return names


def _generation_3_candidates(
    manifest: ProjectManifest, lock: LockFile, config: ReportConfig
) -> Tuple[List[str], List[DependencyCandidate]]:
    """
    Split install paths on ``node_modules/``.

    Paths splitting into exactly two parts are top-level installs. With
    only-prod, deeper paths whose first package is a production dependency
    are kept as extras with their full install path.
    """
    prod_names = list(manifest.dependencies)
    prod_dirs = {f"{name}/" for name in prod_names}

    primary: List[str] = []
    extras: List[DependencyCandidate] = []
    for key in lock.entries:
        parts = key.split(NODE_MODULES)
        if len(parts) == 2:
            name = parts[1]
            if not config.only_prod or name in prod_names:
                primary.append(name)
        elif config.only_prod and len(parts) > 2 and parts[1] in prod_dirs:
            extras.append(DependencyCandidate(name=parts[-1], install_path=key))

    return primary, extras


def select_candidates(
    manifest: ProjectManifest, lock: Optional[LockFile], config: ReportConfig
) -> List[DependencyCandidate]:
    """Apply the lock generation specific key derivation."""
    extras: List[DependencyCandidate] = []

    if not config.use_lock_file or lock is None or not lock.supported:
        names = _manifest_names(manifest, config)
    elif lock.generation == GENERATION_1:
        names = _generation_1_names(manifest, lock, config)
    else:
        names, extras = _generation_3_candidates(manifest, lock, config)

    primary = [
        DependencyCandidate(name=name, install_path=f"{NODE_MODULES}{name}")
        for name in names
    ]
    return primary + extras


def _lock_key(candidate: DependencyCandidate, lock: LockFile) -> str:
    if lock.generation == GENERATION_3:
        return candidate.install_path
    return candidate.name


def attach_lock_records(
    candidates: Iterable[DependencyCandidate], lock: Optional[LockFile]
) -> List[Dependency]:
    """Build Dependency records, skipping names missing from a supported lock."""
    error_handler = get_error_handler()
    dependencies = []

    for candidate in candidates:
        local_metadata_path = f"{candidate.install_path}/package.json"

        if lock is None or not lock.supported:
            dependencies.append(
                Dependency(
                    name=candidate.name,
                    version="",
                    local_metadata_path=local_metadata_path,
                )
            )
            continue

        entry = lock.lookup(_lock_key(candidate, lock))
        if entry is None:
            error_handler.report(
                DependencyNotInLock(
                    f"Could not find {candidate.name} in {lock.source}! Skipping..."
                ),
                "resolver",
                "attach_lock_records",
                details={"package": candidate.name},
            )
            continue

        dependencies.append(
            Dependency(
                name=candidate.name,
                version=entry.version,
                local_metadata_path=local_metadata_path,
                tarball_url=entry.resolved,
            )
        )

    return dependencies


def sort_dependencies(dependencies: Iterable[Dependency]) -> List[Dependency]:
    return sorted(dependencies, key=lambda dep: sort_key(dep.name))


def resolve_dependency_set(
    manifest: ProjectManifest,
    lock: Optional[LockFile],
    config: ReportConfig,
) -> List[Dependency]:
    """
    Produce the canonical dependency list for one run.

    Args:
        manifest: Parsed package.json
        lock: Parsed lock file, possibly of an unsupported generation
        config: Selection flags (only_prod, use_lock_file, ignored, ...)

    Returns:
        List[Dependency]: Unique by name, ignored names removed, sorted
    """
    logger = get_resolver_logger()

    candidates = select_candidates(manifest, lock, config)
    ignored = set(config.ignored)

    unique: List[DependencyCandidate] = []
    seen = set()
    for candidate in candidates:
        if candidate.name in ignored or candidate.name in seen:
            continue
        seen.add(candidate.name)
        unique.append(candidate)

    dependencies = sort_dependencies(attach_lock_records(unique, lock))
    logger.verbose(
        "dependency_set_resolved",
        f"Resolved {len(dependencies)} dependencies",
        generation=lock.generation if lock else None,
        use_lock_file=config.use_lock_file,
    )
    return dependencies

