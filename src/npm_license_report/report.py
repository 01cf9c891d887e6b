"""
Report assembly: index building, HTML rendering and persistence.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from .dependency import sort_key
from .error_handling import ReportWriteError
from .grouping import GroupedEntry
from .structured_logging import get_report_logger

TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = "report.html.j2"


@dataclass
class IndexLink:
    name: str
    link: str


@dataclass
class IndexEntry:
    """A package in the report index and the anchors of its entries."""

    name: str
    link: str
    additional: List[IndexLink] = field(default_factory=list)
    comma: bool = True


def member_anchor(entry: GroupedEntry, short_link: str) -> str:
    return f"{entry.uid}-pkg-{short_link}"


def build_index(entries: Sequence[GroupedEntry]) -> List[IndexEntry]:
    """
    One index entry per package name.

    A package listed in several report entries links to the first one and
    gets numbered links ("2", "3", ...) to the others.
    """
    indexes: Dict[str, IndexEntry] = {}

    for entry in entries:
        for member in entry.members:
            anchor = member_anchor(entry, member.short_link)
            existing = indexes.get(member.name)
            if existing is not None:
                existing.additional.append(
                    IndexLink(name=str(len(existing.additional) + 2), link=anchor)
                )
            else:
                indexes[member.name] = IndexEntry(name=member.name, link=anchor)

    index = sorted(indexes.values(), key=lambda item: sort_key(item.name))
    if index:
        index[-1].comma = False
    return index


def create_environment(template_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html", "xml", "html.j2"]),
        keep_trailing_newline=True,
    )


def render_report(
    entries: Sequence[GroupedEntry],
    title: str,
    add_index: bool = False,
    comments: str = "",
    template_path: Optional[str] = None,
) -> str:
    """
    Render the report with the bundled template or a custom one.

    Raises:
        ReportWriteError: If the template cannot be loaded or rendered
    """
    if template_path:
        path = Path(template_path).resolve()
        environment = create_environment(path.parent)
        template_name = path.name
    else:
        environment = create_environment(TEMPLATE_DIR)
        template_name = DEFAULT_TEMPLATE

    get_report_logger().verbose("template_load", f"Loading template: {template_name}")
    try:
        template = environment.get_template(template_name)
        return template.render(
            entries=entries,
            title=title,
            index=build_index(entries) if add_index else [],
            add_index=add_index,
            comments=comments,
        )
    except TemplateError as e:
        raise ReportWriteError(f"Could not render template {template_name}: {e}") from e


def write_report(content: str, out_path: Path) -> Path:
    """
    Write the rendered report, creating the output directory as needed.

    Raises:
        ReportWriteError: If the directory or the file cannot be written
    """
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ReportWriteError(f"Could not write report to {out_path}: {e}") from e

    get_report_logger().verbose("report_saved", f"Saved output HTML into: {out_path}")
    return out_path
