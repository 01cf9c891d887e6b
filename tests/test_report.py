"""
Index building, rendering and report writing tests.
"""

import pytest

from conftest import MIT_TEXT
from npm_license_report.error_handling import ReportWriteError
from npm_license_report.grouping import GroupedEntry, ReportMember
from npm_license_report.report import build_index, member_anchor, render_report, write_report


def entry(uid, *members, texts=None, declared=None):
    report_members = [
        ReportMember(name=name, version="1.0.0", short_link=f"{name}-link", comma=index < len(members) - 1)
        for index, name in enumerate(members)
    ]
    return GroupedEntry(
        uid=uid,
        members=report_members,
        texts=texts or {},
        declared_licenses=declared or [],
    )


class TestIndex:
    """Test the package index."""

    def test_sorted_with_scope_ignored(self):
        index = build_index([entry("u1", "zod", "@babel/core"), entry("u2", "axios")])

        assert [item.name for item in index] == ["axios", "@babel/core", "zod"]
        assert [item.comma for item in index] == [True, True, False]

    def test_anchor_format(self):
        first = entry("abc123", "left-pad")

        [item] = build_index([first])

        assert item.link == "abc123-pkg-left-pad-link"
        assert item.link == member_anchor(first, "left-pad-link")

    def test_repeated_package_gets_numbered_links(self):
        index = build_index([entry("u1", "a"), entry("u2", "a"), entry("u3", "a", "b")])

        first = index[0]
        assert first.link == "u1-pkg-a-link"
        assert [(link.name, link.link) for link in first.additional] == [
            ("2", "u2-pkg-a-link"),
            ("3", "u3-pkg-a-link"),
        ]
        assert index[1].additional == []

    def test_empty(self):
        assert build_index([]) == []


class TestRendering:
    """Test rendering with the bundled and custom templates."""

    def test_bundled_template(self):
        html = render_report(
            [entry("u1", "pkg-a", "pkg-b", texts={"h": MIT_TEXT}, declared=["MIT"])],
            title="my-app",
        )

        assert "<title>my-app - third party licenses</title>" in html
        assert 'id="u1"' in html
        assert 'id="u1-pkg-pkg-a-link"' in html
        assert "pkg-a</a>" not in html
        assert "pkg-a@1.0.0" in html
        assert "MIT License" in html

    def test_homepage_links(self):
        first = entry("u1", "pkg-a", texts={"h": MIT_TEXT})
        first.members[0].homepage = "https://a.dev"

        html = render_report([first], title="app")

        assert '<a href="https://a.dev">pkg-a</a>' in html

    def test_checksum_comment_is_not_escaped(self):
        html = render_report([], title="app", comments="<!-- [[checksum: abc]] -->")

        assert "<!-- [[checksum: abc]] -->" in html

    def test_license_text_is_escaped(self):
        html = render_report(
            [entry("u1", "pkg", texts={"h": "Copyright <someone@example.com> & co"})],
            title="app",
        )

        assert "&lt;someone@example.com&gt; &amp; co" in html
        assert "<someone@example.com>" not in html

    def test_missing_text_notice(self):
        html = render_report([entry("u1", "pkg")], title="app")

        assert "No license text found." in html

    def test_index_only_when_requested(self):
        entries = [entry("u1", "pkg-a", texts={"h": MIT_TEXT})]

        assert 'href="#u1-pkg-pkg-a-link"' not in render_report(entries, title="app")
        assert 'href="#u1-pkg-pkg-a-link"' in render_report(entries, title="app", add_index=True)

    def test_custom_template(self, temp_dir):
        template = temp_dir / "custom.html.j2"
        template.write_text(
            "{{ comments | safe }}{% for entry in entries %}[{{ entry.member_names | join('+') }}]{% endfor %}"
            "{% for item in index %}<{{ item.name }}>{% endfor %}"
        )

        html = render_report(
            [entry("u1", "a", "b"), entry("u2", "c")],
            title="app",
            add_index=True,
            comments="<!-- c -->",
            template_path=str(template),
        )

        assert html == "<!-- c -->[a+b][c]<a><b><c>"

    def test_missing_template_raises(self, temp_dir):
        with pytest.raises(ReportWriteError):
            render_report([], title="app", template_path=str(temp_dir / "absent.html"))

    def test_broken_template_raises(self, temp_dir):
        template = temp_dir / "broken.html"
        template.write_text("{% for entry in entries %}")

        with pytest.raises(ReportWriteError):
            render_report([], title="app", template_path=str(template))


class TestWriting:
    """Test persisting the report."""

    def test_creates_parent_directories(self, temp_dir):
        out_path = temp_dir / "public" / "legal" / "licenses.html"

        assert write_report("<html></html>", out_path) == out_path
        assert out_path.read_text() == "<html></html>"

    def test_unwritable_location(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(ReportWriteError):
            write_report("<html></html>", blocker / "licenses.html")
