"""
Grouping of license records by identical license text.

Records sharing any license text hash end up in the same entry. Connected
records are found with a disjoint-set over record positions; a final pass
collapses entries whose member names are identical.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .dependency import sort_key
from .license_sources import LicenseRecord
from .structured_logging import get_report_logger


@dataclass
class ReportMember:
    name: str
    version: str
    short_link: str
    homepage: str = ""
    comma: bool = True


@dataclass
class GroupedEntry:
    """One report section: a set of packages and the texts they share."""

    uid: str
    members: List[ReportMember]
    texts: Dict[str, str] = field(default_factory=dict)
    declared_licenses: List[str] = field(default_factory=list)

    @property
    def licenses(self) -> List[str]:
        return list(self.texts.values())

    @property
    def member_names(self) -> List[str]:
        return [member.name for member in self.members]


class DisjointSet:
    """Union-find with path compression."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # keep the earliest record as root
            if root_b < root_a:
                root_a, root_b = root_b, root_a
            self.parent[root_b] = root_a


def group_uid(names: Sequence[str]) -> str:
    return hashlib.sha1(", ".join(names).encode("utf-8")).hexdigest()[:12]


def _member(record: LicenseRecord) -> ReportMember:
    return ReportMember(
        name=record.name,
        version=record.dependency.version,
        short_link=record.short_link,
        homepage=record.homepage or "",
    )


def _mark_last(members: List[ReportMember]) -> None:
    for index, member in enumerate(members):
        member.comma = index < len(members) - 1


def _build_entry(records: List[LicenseRecord]) -> GroupedEntry:
    members: List[ReportMember] = []
    seen = set()
    texts: Dict[str, str] = {}
    declared: List[str] = []

    for record in records:
        if record.name not in seen:
            seen.add(record.name)
            members.append(_member(record))
        for text_hash, text in record.texts.items():
            texts.setdefault(text_hash, text)
        if record.declared_license and record.declared_license not in declared:
            declared.append(record.declared_license)

    names = sorted((member.name for member in members), key=sort_key)
    return GroupedEntry(uid=group_uid(names), members=members, texts=texts, declared_licenses=declared)


def _singletons(records: Sequence[LicenseRecord]) -> List[GroupedEntry]:
    entries = []
    for record in records:
        entries.append(
            GroupedEntry(
                uid=hashlib.sha1(record.name.encode("utf-8")).hexdigest()[:12],
                members=[_member(record)],
                texts=dict(record.texts),
                declared_licenses=[record.declared_license] if record.declared_license else [],
            )
        )
    for entry in entries:
        _mark_last(entry.members)
    return entries


def group_license_records(
    records: Sequence[LicenseRecord], group: bool = True
) -> List[GroupedEntry]:
    """
    Build report entries from license records.

    Args:
        records: License records in resolver order
        group: Merge records that share license texts

    Returns:
        List[GroupedEntry]: Ordered by the position of each entry's first member
    """
    if not group:
        return _singletons(records)

    components = DisjointSet(len(records))
    text_owner: Dict[str, int] = {}

    for index, record in enumerate(records):
        for text_hash, text in record.texts.items():
            # empty texts never join packages together
            if not text:
                continue
            if text_hash in text_owner:
                components.union(index, text_owner[text_hash])
            else:
                text_owner[text_hash] = index

    by_root: Dict[int, List[LicenseRecord]] = {}
    for index, record in enumerate(records):
        by_root.setdefault(components.find(index), []).append(record)

    # Collapse components with the same member names, e.g. duplicate records
    collapsed: Dict[frozenset, GroupedEntry] = {}
    for component in by_root.values():
        entry = _build_entry(component)
        key = frozenset(entry.member_names)
        if key in collapsed:
            existing = collapsed[key]
            for text_hash, text in entry.texts.items():
                existing.texts.setdefault(text_hash, text)
            for declared in entry.declared_licenses:
                if declared not in existing.declared_licenses:
                    existing.declared_licenses.append(declared)
        else:
            collapsed[key] = entry

    entries = list(collapsed.values())
    for entry in entries:
        _mark_last(entry.members)

    get_report_logger().verbose(
        "licenses_grouped",
        f"Grouped {len(records)} licenses into {len(entries)} entries",
    )
    return entries
