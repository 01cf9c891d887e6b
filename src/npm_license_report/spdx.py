"""
SPDX license expression handling.

Declared npm licenses such as ``(MIT OR Apache-2.0)`` are parsed into a small
binary tree of leaves and junctions, walked to collect the license
identifiers, and each identifier is resolved to a license text either from the
bundled ``spdx/`` directory or from the SPDX license list.
"""

from dataclasses import dataclass
from functools import reduce
from pathlib import Path
from typing import List, Optional, Union

from license_expression import (
    ExpressionError,
    LicenseSymbol,
    LicenseWithExceptionSymbol,
    Licensing,
)

from .error_handling import SpdxParseFailed

BUNDLED_TEXT_DIR = Path(__file__).parent / "spdx"

# Deprecated bare identifiers that the license list publishes as -or-later
OR_LATER_FAMILIES = (
    "AGPL-1.0",
    "AGPL-3.0",
    "LGPL-2.0",
    "LGPL-2.1",
    "LGPL-3.0",
    "GPL-1.0",
    "GPL-2.0",
    "GPL-3.0",
)

_licensing = Licensing()


@dataclass(frozen=True)
class SpdxLeaf:
    identifier: str


@dataclass(frozen=True)
class SpdxJunction:
    operator: str
    left: "SpdxNode"
    right: "SpdxNode"


SpdxNode = Union[SpdxLeaf, SpdxJunction]


def _to_node(expression) -> SpdxNode:
    if isinstance(expression, LicenseWithExceptionSymbol):
        return SpdxLeaf(expression.license_symbol.key)
    if isinstance(expression, LicenseSymbol):
        return SpdxLeaf(expression.key)

    if isinstance(expression, _licensing.AND):
        operator = "AND"
    elif isinstance(expression, _licensing.OR):
        operator = "OR"
    else:
        raise SpdxParseFailed(f"Unexpected SPDX expression node: {expression!r}")

    nodes = [_to_node(arg) for arg in expression.args]
    return reduce(lambda left, right: SpdxJunction(operator, left, right), nodes)


def parse_spdx_expression(expression: str) -> SpdxNode:
    """
    Parse an SPDX license expression.

    ``WITH`` exceptions collapse to their license identifier. n-ary AND/OR
    chains are folded into left-leaning binary junctions.

    Raises:
        SpdxParseFailed: If the expression is empty or not valid SPDX
    """
    if not isinstance(expression, str):
        raise SpdxParseFailed(f"License expression is not a string: {expression!r}")
    if not expression.strip():
        raise SpdxParseFailed("Empty license expression")

    try:
        parsed = _licensing.parse(expression.strip())
    except ExpressionError as e:
        raise SpdxParseFailed(f"Could not parse license expression {expression!r}: {e}") from e

    if parsed is None:
        raise SpdxParseFailed(f"Could not parse license expression {expression!r}")
    return _to_node(parsed)


def collect_identifiers(node: SpdxNode) -> List[str]:
    """Collect leaf identifiers left to right."""
    if isinstance(node, SpdxLeaf):
        return [node.identifier]
    return collect_identifiers(node.left) + collect_identifiers(node.right)


def normalize_identifier(identifier: str) -> str:
    """
    Map an identifier onto the name its text is published under.

    >>> normalize_identifier("GPL-2.0+")
    'GPL-2.0-or-later'
    """
    identifier = identifier.strip()
    if identifier.endswith("+"):
        identifier = identifier[:-1]
    if identifier in OR_LATER_FAMILIES:
        identifier = f"{identifier}-or-later"
    return identifier


def license_identifiers(expression: str) -> List[str]:
    """Unique normalized identifiers of an expression, in order of appearance."""
    identifiers: List[str] = []
    for identifier in collect_identifiers(parse_spdx_expression(expression)):
        normalized = normalize_identifier(identifier)
        if normalized not in identifiers:
            identifiers.append(normalized)
    return identifiers


def load_bundled_text(identifier: str) -> Optional[str]:
    """Return the bundled license text for an identifier, if one ships."""
    # identifiers come from package metadata, keep them inside the directory
    if not identifier or "/" in identifier or "\\" in identifier or identifier.startswith("."):
        return None

    path = BUNDLED_TEXT_DIR / f"{identifier}.txt"
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")
