"""
Run orchestration.

Reads the manifest and lock file, resolves the dependency set, consults the
skip gate and, when the set changed, resolves licenses and writes the report.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import httpx

from .cache_manager import ResponseCacheManager
from .cli_config import ComprehensiveConfig
from .fingerprint import (
    Fingerprint,
    checksum_comment,
    compute_fingerprint,
    should_skip,
    write_checksum_file,
)
from .grouping import group_license_records
from .license_sources import LicenseResolver
from .manifest import read_lock_file, read_manifest
from .registry_clients import NPMRegistryClient, SpdxTextClient, create_http_client
from .report import render_report, write_report
from .resolver import resolve_dependency_set
from .structured_logging import get_report_logger


@dataclass(frozen=True)
class ReportOutcome:
    """What a run did."""

    skipped: bool
    out_path: Path
    fingerprint: Fingerprint
    dependency_count: int
    entry_count: int = 0
    missing: Tuple[str, ...] = ()


async def generate_license_report(
    config: ComprehensiveConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ReportOutcome:
    """
    Generate the license report for one project.

    Args:
        config: Complete run configuration
        transport: Optional httpx transport, used instead of the network

    Returns:
        ReportOutcome: Whether the report was skipped or written, and where

    Raises:
        FatalError: Manifest, lock file or report output failures, and
            NoLicenseFoundStrict in strict mode
    """
    logger = get_report_logger()
    report_config = config.report
    root, monorepo = report_config.root_path, report_config.monorepo_path

    manifest = read_manifest(root, monorepo)
    lock = read_lock_file(root, monorepo)
    dependencies = resolve_dependency_set(manifest, lock, report_config)

    fingerprint = compute_fingerprint(dependencies)
    out_path = Path(report_config.out_path).resolve()

    if should_skip(fingerprint, report_config):
        return ReportOutcome(
            skipped=True,
            out_path=out_path,
            fingerprint=fingerprint,
            dependency_count=len(dependencies),
        )

    logger.verbose(
        "generation_started", f"Generating license HTML for corpus: {fingerprint.value}"
    )
    logger.debug("fingerprint_corpus", f"Contains packages: {fingerprint.corpus}")

    scratch_dir = report_config.scratch_dir
    scratch_dir.mkdir(parents=True, exist_ok=True)
    try:
        cache = ResponseCacheManager(config.performance)
        async with create_http_client(config.network, transport) as client:
            resolver = LicenseResolver(
                report_config,
                NPMRegistryClient(config.network, client, cache),
                SpdxTextClient(config.network, client, cache),
                max_concurrent=config.network.max_concurrent,
            )
            records = await resolver.resolve_all(dependencies)
        logger.info("licenses_found", f"Found {len(records)} licenses")

        entries = group_license_records(records, group=report_config.group)
        content = render_report(
            entries,
            title=report_config.title or manifest.name,
            add_index=report_config.add_index,
            comments=checksum_comment(fingerprint) if report_config.checksum_embed else "",
            template_path=report_config.template_path,
        )
        write_report(content, out_path)
        if report_config.checksum_path:
            write_checksum_file(fingerprint, Path(report_config.checksum_path))
    finally:
        if not report_config.keep_scratch:
            logger.debug("scratch_removed", f"Deleting cache from: {scratch_dir}")
            shutil.rmtree(scratch_dir, ignore_errors=True)

    cache_stats = {f"cache_{key}": value for key, value in cache.get_stats().items()}
    logger.info("generation_done", "Done!", **cache_stats)
    return ReportOutcome(
        skipped=False,
        out_path=out_path,
        fingerprint=fingerprint,
        dependency_count=len(dependencies),
        entry_count=len(entries),
        missing=tuple(record.name for record in records if not record.texts),
    )
