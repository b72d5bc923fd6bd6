"""Unit tests for the section tree and the section document skeleton.

HOW: SectionTree is exercised directly (no grabber needed); rendered
documents are parsed with lxml to check the XHTML scaffold.
"""

import pytest
from lxml import etree

from conftest import XHTML_NS
from epub_packager.core.sections import Section, SectionTree, render_section
from epub_packager.errors import FilenameAlreadyUsedError, ParentDoesNotExistError


@pytest.fixture
def tree():
    return SectionTree()


class TestAdd:
    """Names are generated, validated and unique across the whole tree."""

    def test_generated_names_increment(self, tree):
        assert tree.add("<p>x</p>", "Ch1") == "section0001.xhtml"
        assert tree.add("<p>x</p>", "Ch1") == "section0002.xhtml"

    def test_generated_name_skips_explicit_names(self, tree):
        tree.add("<p>a</p>", filename="section0001.xhtml")
        tree.add("<p>b</p>", filename="section0002.xhtml")
        assert tree.add("<p>c</p>") == "section0003.xhtml"

    def test_generated_name_fills_gaps(self, tree):
        tree.add("<p>a</p>", filename="section0002.xhtml")
        assert tree.add("<p>b</p>") == "section0001.xhtml"
        assert tree.add("<p>c</p>") == "section0003.xhtml"

    def test_explicit_duplicate_rejected(self, tree):
        tree.add("<p>a</p>", filename="intro.xhtml")
        with pytest.raises(FilenameAlreadyUsedError):
            tree.add("<p>b</p>", filename="intro.xhtml")
        assert len(tree) == 1

    def test_duplicate_of_child_rejected(self, tree):
        parent = tree.add("<p>a</p>", "Part 1")
        tree.add("<p>b</p>", "1.1", filename="part1-1.xhtml", parent=parent)
        with pytest.raises(FilenameAlreadyUsedError):
            tree.add("<p>c</p>", filename="part1-1.xhtml")

    def test_child_names_share_the_counter(self, tree):
        parent = tree.add("<p>a</p>", "Part 1")
        child = tree.add("<p>b</p>", "1.1", parent=parent)
        assert child == "section0002.xhtml"
        assert tree.add("<p>c</p>") == "section0003.xhtml"

    def test_missing_parent(self, tree):
        with pytest.raises(ParentDoesNotExistError) as excinfo:
            tree.add("<p>b</p>", parent="nope.xhtml")
        assert excinfo.value.filename == "nope.xhtml"

    def test_child_cannot_be_parent(self, tree):
        parent = tree.add("<p>a</p>", "Part 1")
        child = tree.add("<p>b</p>", "1.1", parent=parent)
        with pytest.raises(ParentDoesNotExistError):
            tree.add("<p>c</p>", "1.1.1", parent=child)

    def test_missing_parent_does_not_consume_name(self, tree):
        with pytest.raises(ParentDoesNotExistError):
            tree.add("<p>b</p>", parent="nope.xhtml")
        assert tree.filenames() == []


class TestStructure:
    """Order, lookup and removal."""

    def test_walk_is_depth_first(self, tree):
        first = tree.add("<p>1</p>", "One")
        tree.add("<p>2</p>", "Two")
        tree.add("<p>1.1</p>", "One.One", parent=first)
        assert tree.filenames() == ["section0001.xhtml", "section0003.xhtml", "section0002.xhtml"]

    def test_iter_yields_top_level_only(self, tree):
        first = tree.add("<p>1</p>", "One")
        tree.add("<p>1.1</p>", parent=first)
        assert [s.filename for s in tree] == [first]

    def test_find(self, tree):
        first = tree.add("<p>1</p>", "One")
        child = tree.add("<p>1.1</p>", "Child", parent=first)
        assert tree.find(child).title == "Child"
        assert tree.find("missing.xhtml") is None
        assert child in tree

    def test_remove_child(self, tree):
        first = tree.add("<p>1</p>", "One")
        child = tree.add("<p>1.1</p>", parent=first)
        tree.remove(child)
        assert tree.filenames() == [first]

    def test_remove_parent_removes_children(self, tree):
        first = tree.add("<p>1</p>", "One")
        tree.add("<p>1.1</p>", parent=first)
        tree.remove(first)
        assert tree.filenames() == []

    def test_pick_filename_released(self, tree):
        tree.add("<p>c</p>", filename="cover.xhtml")
        assert tree.pick_filename("cover.xhtml", released="cover.xhtml") == "cover.xhtml"
        with pytest.raises(FilenameAlreadyUsedError):
            tree.pick_filename("cover.xhtml")


class TestRenderSection:
    """The XHTML skeleton around a section body."""

    def test_skeleton(self):
        doc = render_section(Section(filename="a.xhtml", title="Chapter 1", body="<p>Hello</p>"))
        assert doc.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE html>\n')
        root = etree.fromstring(doc.encode("utf-8"))
        assert root.findtext("x:head/x:title", namespaces=XHTML_NS) == "Chapter 1"
        assert root.find("x:head/x:title", XHTML_NS).get("dir") == "auto"
        assert root.find("x:body", XHTML_NS).get("dir") == "auto"
        assert root.findtext("x:body/x:p", namespaces=XHTML_NS) == "Hello"
        assert root.find("x:head/x:link", XHTML_NS) is None

    def test_stylesheet_link(self):
        section = Section(filename="a.xhtml", title="T", body="<p/>", css_path="../css/style.css")
        root = etree.fromstring(render_section(section).encode("utf-8"))
        link = root.find("x:head/x:link", XHTML_NS)
        assert link.get("rel") == "stylesheet"
        assert link.get("type") == "text/css"
        assert link.get("href") == "../css/style.css"

    def test_title_escaped_body_verbatim(self):
        section = Section(filename="a.xhtml", title="Tom & Jerry <3", body="<p>a &amp; b</p>")
        doc = render_section(section)
        assert "<title dir=\"auto\">Tom &amp; Jerry &lt;3</title>" in doc
        assert "<p>a &amp; b</p>" in doc

    def test_title_override(self):
        section = Section(filename="cover.xhtml", title="", body="<p/>")
        root = etree.fromstring(render_section(section, "Book Title").encode("utf-8"))
        assert root.findtext("x:head/x:title", namespaces=XHTML_NS) == "Book Title"
