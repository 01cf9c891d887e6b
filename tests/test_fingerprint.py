"""
Fingerprint and skip gate tests.
"""

import hashlib

import pytest

from npm_license_report.cli_config import ReportConfig
from npm_license_report.dependency import Dependency
from npm_license_report.error_handling import ReportWriteError
from npm_license_report.fingerprint import (
    checksum_comment,
    checksum_marker,
    compute_fingerprint,
    should_skip,
    write_checksum_file,
)


def deps(*pairs):
    return [Dependency(name, version, f"node_modules/{name}/package.json") for name, version in pairs]


class TestFingerprint:
    """Test fingerprint computation."""

    def test_value_is_sha1_of_corpus(self):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0"), ("b", "2.0.0")))

        assert fingerprint.corpus == "a@1.0.0, b@2.0.0"
        assert fingerprint.value == hashlib.sha1(b"a@1.0.0, b@2.0.0").hexdigest()
        assert str(fingerprint) == fingerprint.value

    def test_deterministic(self):
        first = compute_fingerprint(deps(("a", "1.0.0"), ("b", "2.0.0")))
        second = compute_fingerprint(deps(("a", "1.0.0"), ("b", "2.0.0")))

        assert first == second

    def test_version_change_changes_value(self):
        before = compute_fingerprint(deps(("a", "1.0.0")))
        after = compute_fingerprint(deps(("a", "1.0.1")))

        assert before.value != after.value

    def test_empty_dependency_set(self):
        assert compute_fingerprint([]).value == hashlib.sha1(b"").hexdigest()

    def test_marker_format(self):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))

        assert checksum_marker(fingerprint) == f"[[checksum: {fingerprint.value}]]"
        assert checksum_comment(fingerprint) == f"<!-- [[checksum: {fingerprint.value}]] -->"


class TestSkipGate:
    """Test the checksum file and embedded marker modes."""

    def test_no_mode_never_skips(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        config = ReportConfig(out_path=str(temp_dir / "licenses.html"))

        assert not should_skip(fingerprint, config)

    def test_checksum_file_match(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        checksum = temp_dir / "licenses.sha1"
        write_checksum_file(fingerprint, checksum)
        config = ReportConfig(checksum_path=str(checksum))

        assert should_skip(fingerprint, config)

    def test_checksum_file_must_match_exactly(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        checksum = temp_dir / "licenses.sha1"
        checksum.write_text(fingerprint.value + "\n")
        config = ReportConfig(checksum_path=str(checksum))

        assert not should_skip(fingerprint, config)

    def test_missing_checksum_file(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        config = ReportConfig(checksum_path=str(temp_dir / "absent.sha1"))

        assert not should_skip(fingerprint, config)

    def test_embedded_marker_match(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        report = temp_dir / "licenses.html"
        report.write_text(f"<html><head>{checksum_comment(fingerprint)}</head></html>")
        config = ReportConfig(out_path=str(report), checksum_embed=True)

        assert should_skip(fingerprint, config)

    def test_embedded_marker_ignored_when_mode_off(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        report = temp_dir / "licenses.html"
        report.write_text(checksum_comment(fingerprint))
        config = ReportConfig(out_path=str(report))

        assert not should_skip(fingerprint, config)

    def test_stale_embedded_marker(self, temp_dir):
        old = compute_fingerprint(deps(("a", "1.0.0")))
        new = compute_fingerprint(deps(("a", "1.1.0")))
        report = temp_dir / "licenses.html"
        report.write_text(checksum_comment(old))
        config = ReportConfig(out_path=str(report), checksum_embed=True)

        assert not should_skip(new, config)

    def test_checksum_file_falls_through_to_marker(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        report = temp_dir / "licenses.html"
        report.write_text(checksum_comment(fingerprint))
        config = ReportConfig(
            out_path=str(report),
            checksum_path=str(temp_dir / "absent.sha1"),
            checksum_embed=True,
        )

        assert should_skip(fingerprint, config)


class TestChecksumFile:
    """Test writing the side-car file."""

    def test_written_without_newline(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        checksum = temp_dir / "nested" / "licenses.sha1"

        write_checksum_file(fingerprint, checksum)

        assert checksum.read_bytes() == fingerprint.value.encode("ascii")

    def test_unwritable_location(self, temp_dir):
        fingerprint = compute_fingerprint(deps(("a", "1.0.0")))
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(ReportWriteError):
            write_checksum_file(fingerprint, blocker / "licenses.sha1")
