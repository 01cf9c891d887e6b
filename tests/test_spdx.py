"""
SPDX expression handling tests.
"""

import pytest

from npm_license_report.error_handling import SpdxParseFailed
from npm_license_report.spdx import (
    SpdxJunction,
    SpdxLeaf,
    collect_identifiers,
    license_identifiers,
    load_bundled_text,
    normalize_identifier,
    parse_spdx_expression,
)


class TestParsing:
    """Test parsing into leaves and junctions."""

    def test_single_identifier(self):
        assert parse_spdx_expression("MIT") == SpdxLeaf("MIT")

    def test_or_junction(self):
        node = parse_spdx_expression("(MIT OR Apache-2.0)")

        assert isinstance(node, SpdxJunction)
        assert node.operator == "OR"
        assert collect_identifiers(node) == ["MIT", "Apache-2.0"]

    def test_nested_junctions(self):
        node = parse_spdx_expression("MIT AND (BSD-3-Clause OR GPL-2.0+)")

        assert node.operator == "AND"
        assert isinstance(node.right, SpdxJunction)
        assert node.right.operator == "OR"
        assert collect_identifiers(node) == ["MIT", "BSD-3-Clause", "GPL-2.0+"]

    def test_chains_fold_into_binary_nodes(self):
        node = parse_spdx_expression("MIT OR ISC OR 0BSD")

        assert node.operator == "OR"
        assert isinstance(node.left, SpdxJunction) or isinstance(node.right, SpdxJunction)
        assert collect_identifiers(node) == ["MIT", "ISC", "0BSD"]

    def test_with_exception_keeps_license(self):
        node = parse_spdx_expression("GPL-2.0-only WITH Classpath-exception-2.0")

        assert collect_identifiers(node) == ["GPL-2.0-only"]

    def test_empty_expression_fails(self):
        with pytest.raises(SpdxParseFailed):
            parse_spdx_expression("")

    def test_non_string_expression_fails(self):
        with pytest.raises(SpdxParseFailed):
            parse_spdx_expression(["MIT", "ISC"])

    def test_unbalanced_expression_fails(self):
        with pytest.raises(SpdxParseFailed):
            parse_spdx_expression("(MIT OR")


class TestNormalization:
    """Test identifier normalization."""

    @pytest.mark.parametrize(
        "identifier,expected",
        [
            ("GPL-2.0", "GPL-2.0-or-later"),
            ("GPL-2.0+", "GPL-2.0-or-later"),
            ("LGPL-2.1", "LGPL-2.1-or-later"),
            ("AGPL-3.0", "AGPL-3.0-or-later"),
            ("GPL-3.0-only", "GPL-3.0-only"),
            ("MIT", "MIT"),
            ("Apache-2.0", "Apache-2.0"),
        ],
    )
    def test_normalize_identifier(self, identifier, expected):
        assert normalize_identifier(identifier) == expected

    def test_license_identifiers_are_unique(self):
        assert license_identifiers("(MIT OR GPL-2.0) AND MIT") == ["MIT", "GPL-2.0-or-later"]


class TestBundledTexts:
    """Test the bundled license text directory."""

    def test_common_licenses_are_bundled(self):
        for identifier in ("MIT", "ISC", "BSD-2-Clause", "BSD-3-Clause", "0BSD", "Unlicense", "WTFPL"):
            assert load_bundled_text(identifier)

    def test_unknown_identifier(self):
        assert load_bundled_text("Apache-2.0") is None

    def test_identifier_cannot_escape_directory(self):
        assert load_bundled_text("../templates/report.html") is None
        assert load_bundled_text("") is None
