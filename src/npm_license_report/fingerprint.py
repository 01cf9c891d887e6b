"""
Dependency set fingerprint and the incremental skip gate.

The fingerprint is a sha1 over ``name@version`` pairs in resolver order. A
report is regenerated only when neither the checksum side-car file nor the
marker embedded in the previous report carries the same fingerprint.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .cli_config import ReportConfig
from .dependency import Dependency
from .error_handling import ReportWriteError
from .structured_logging import get_report_logger


@dataclass(frozen=True)
class Fingerprint:
    value: str
    corpus: str

    def __str__(self) -> str:
        return self.value


def compute_fingerprint(dependencies: Iterable[Dependency]) -> Fingerprint:
    """Hash the ``name@version, name@version, ...`` corpus of a dependency list."""
    corpus = ", ".join(dependency.spec for dependency in dependencies)
    return Fingerprint(
        value=hashlib.sha1(corpus.encode("utf-8")).hexdigest(),
        corpus=corpus,
    )


def checksum_marker(fingerprint: Fingerprint) -> str:
    return f"[[checksum: {fingerprint.value}]]"


def checksum_comment(fingerprint: Fingerprint) -> str:
    """HTML comment embedded into generated reports."""
    return f"<!-- {checksum_marker(fingerprint)} -->"


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def matches_checksum_file(fingerprint: Fingerprint, checksum_path: Path) -> bool:
    """Exact content equality with the side-car file."""
    if not checksum_path.is_file():
        return False
    return _read_text(checksum_path) == fingerprint.value


def matches_embedded_marker(fingerprint: Fingerprint, report_path: Path) -> bool:
    if not report_path.is_file():
        return False
    get_report_logger().debug(
        "previous_report_found", f"Found previously generated HTML file: {report_path}"
    )
    content = _read_text(report_path)
    return content is not None and checksum_marker(fingerprint) in content


def should_skip(fingerprint: Fingerprint, config: ReportConfig) -> bool:
    """
    Decide whether generation can be skipped.

    Args:
        fingerprint: Fingerprint of the freshly resolved dependency set
        config: Report configuration; checksum_path and checksum_embed
            select the enabled modes

    Returns:
        bool: True if any enabled mode matches
    """
    logger = get_report_logger()

    skip = False
    if config.checksum_path and matches_checksum_file(fingerprint, Path(config.checksum_path)):
        skip = True
    elif config.checksum_embed and matches_embedded_marker(fingerprint, Path(config.out_path)):
        skip = True

    if skip:
        logger.info("generation_skipped", "Generating license HTML skipped")
        logger.verbose(
            "fingerprint_unchanged",
            f"License already generated for corpus: {fingerprint.value}",
        )
        logger.debug("fingerprint_corpus", f"Contains packages: {fingerprint.corpus}")
    return skip


def write_checksum_file(fingerprint: Fingerprint, checksum_path: Path) -> None:
    """
    Persist the fingerprint, without a trailing newline.

    Raises:
        ReportWriteError: If the file cannot be written
    """
    try:
        if checksum_path.parent and not checksum_path.parent.exists():
            checksum_path.parent.mkdir(parents=True, exist_ok=True)
        checksum_path.write_text(fingerprint.value, encoding="utf-8")
    except OSError as e:
        raise ReportWriteError(f"Could not write checksum file {checksum_path}: {e}") from e

    get_report_logger().verbose(
        "checksum_saved", f"Saved checksum {fingerprint.value} into: {checksum_path}"
    )
