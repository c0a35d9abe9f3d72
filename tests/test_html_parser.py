import pytest

from tagshelf.services.importers import HtmlParser, ImportParseError
from tagshelf.services.importers.text import tag_color
from tagshelf.services.importers.types import (
    ImportData,
    ImportMetadata,
    ParsedBookmark,
)

NESTED_EXPORT = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1600000000">Folder A</H3>
    <DL><p>
        <DT><A HREF="https://a.example/shallow" ADD_DATE="1600000000">Shallow</A>
        <DT><H3>Folder B</H3>
        <DL><p>
            <DT><A HREF="https://a.example/deep" TAGS="Python, Web Dev">Deep</A>
            <DD>Nested note
        </DL><p>
        <DT><A HREF="https://a.example/after">After B</A>
    </DL><p>
    <DT><A HREF="https://root.example/">Root</A>
</DL><p>
"""


def _by_url(data):
    return {bookmark.url: bookmark for bookmark in data.bookmarks}


def test_parse_recovers_nested_folder_paths():
    data = HtmlParser().parse(NESTED_EXPORT)

    assert [bookmark.url for bookmark in data.bookmarks] == [
        "https://a.example/shallow",
        "https://a.example/deep",
        "https://a.example/after",
        "https://root.example/",
    ]
    rows = _by_url(data)
    assert rows["https://a.example/shallow"].folder == "folder-a"
    assert rows["https://a.example/deep"].folder == "folder-a/folder-b"
    assert rows["https://a.example/after"].folder == "folder-a"
    assert rows["https://root.example/"].folder is None


def test_parse_derives_tags_from_attribute_and_folders():
    rows = _by_url(HtmlParser().parse(NESTED_EXPORT))

    assert rows["https://a.example/deep"].tags == [
        "python",
        "web-dev",
        "folder-a",
        "folder-b",
    ]
    assert rows["https://a.example/shallow"].tags == ["folder-a"]
    assert rows["https://root.example/"].tags == []


def test_parse_without_folder_tags_keeps_explicit_tags_only():
    rows = _by_url(HtmlParser(folder_as_tag=False).parse(NESTED_EXPORT))

    assert rows["https://a.example/deep"].tags == ["python", "web-dev"]
    assert rows["https://a.example/deep"].folder == "folder-a/folder-b"
    assert rows["https://a.example/shallow"].tags == []


def test_parse_reads_description_and_timestamp():
    rows = _by_url(HtmlParser().parse(NESTED_EXPORT))

    assert rows["https://a.example/deep"].description == "Nested note"
    assert rows["https://a.example/deep"].created_at is None
    assert rows["https://a.example/shallow"].created_at.startswith(
        "2020-09-13T12:26:40"
    )


def test_parse_collects_unique_tags_with_deterministic_colors():
    data = HtmlParser().parse(NESTED_EXPORT)

    names = [tag.name for tag in data.tags]
    assert sorted(names) == ["folder-a", "folder-b", "python", "web-dev"]
    assert len(names) == len(set(names))
    for tag in data.tags:
        assert tag.color == tag_color(tag.name)
    assert data.metadata.source == "html"
    assert data.metadata.total_items == 4


def test_parse_drops_separators_and_pseudo_links():
    html = """
<DL><p>
  <DT><A HREF="https://separator.mayastudios.com/">---</A>
  <DT><A HREF="javascript:alert(1)">JS</A>
  <DT><A HREF="data:text/html,hi">Data</A>
  <DT><A HREF="about:blank">Blank</A>
  <DT><A HREF="https://ok.example/">──────</A>
  <DT><A HREF="https://dash.example/">_____</A>
  <DT><A HREF="">Empty</A>
  <DT><A HREF="https://keep.example/">Keep</A>
</DL><p>
"""
    data = HtmlParser().parse(html)
    assert [bookmark.url for bookmark in data.bookmarks] == ["https://keep.example/"]


def test_parse_defaults_missing_title_to_untitled():
    html = """
<!DOCTYPE NETSCAPE-Bookmark-file-1>
<DL><p>
  <DT><A HREF="https://example.com/no-title"></A>
</DL><p>
"""
    data = HtmlParser().parse(html)
    assert len(data.bookmarks) == 1
    assert data.bookmarks[0].title == "Untitled"


def test_parse_skips_placeholder_folder_as_tag():
    html = """
<DL><p>
  <DT><H3>Bookmarks</H3>
  <DL><p>
    <DT><A HREF="https://x.example/">X</A>
  </DL><p>
</DL><p>
"""
    bookmark = HtmlParser().parse(html).bookmarks[0]
    assert bookmark.folder == "bookmarks"
    assert bookmark.tags == []


def test_parse_decodes_double_escaped_entities():
    html = """
<DL><p>
  <DT><A HREF="https://x.example/?a=1&amp;amp;b=2">Tom &amp;amp; Jerry</A>
</DL><p>
"""
    bookmark = HtmlParser().parse(html).bookmarks[0]
    assert bookmark.title == "Tom & Jerry"
    assert bookmark.url == "https://x.example/?a=1&b=2"


def test_parse_handles_bom_and_crlf():
    html = '\ufeff<DL><p>\r\n<DT><A HREF="https://x.example/">X</A>\r\n</DL><p>\r\n'
    data = HtmlParser().parse(html)
    assert [bookmark.title for bookmark in data.bookmarks] == ["X"]


def test_parse_document_without_list_yields_no_bookmarks():
    data = HtmlParser().parse("<html><body><p>nothing here</p></body></html>")
    assert data.bookmarks == []
    assert data.tags == []


def test_parse_folder_heading_swallowed_by_previous_entry():
    html = """
<DL><p>
  <DT><H3>Folder A</H3>
  <DL><p>
    <DT><A HREF="https://a.example/shallow">Shallow</A><DT><H3>Folder B</H3></DT></DT>
    <DL><p>
      <DT><A HREF="https://a.example/deep">Deep</A></DT>
    </DL><p>
  </DL><p>
</DL><p>
"""
    rows = _by_url(HtmlParser().parse(html))

    assert rows["https://a.example/shallow"].folder == "folder-a"
    assert rows["https://a.example/deep"].folder == "folder-a/folder-b"
    assert rows["https://a.example/deep"].tags == ["folder-a", "folder-b"]


def test_parse_keeps_entries_after_stray_list_close():
    html = """
<DL><p>
  <DT><A HREF="https://one.example/">One</A>
</DL><p>
</DL><p>
  <DT><A HREF="https://two.example/">Two</A>
</DL><p>
"""
    data = HtmlParser().parse(html)

    assert [bookmark.url for bookmark in data.bookmarks] == [
        "https://one.example/",
        "https://two.example/",
    ]
    assert all(bookmark.folder is None for bookmark in data.bookmarks)


def test_parse_ignores_links_inside_descriptions():
    html = """
<DL><p>
  <DT><A HREF="https://x.example/">X</A>
  <DD>See <A HREF="https://ref.example/">the reference</A>
</DL><p>
"""
    data = HtmlParser().parse(html)
    assert [bookmark.url for bookmark in data.bookmarks] == ["https://x.example/"]


def test_parse_non_text_input_raises_parse_error_with_cause():
    with pytest.raises(ImportParseError) as excinfo:
        HtmlParser().parse(b"<DL></DL>")
    assert isinstance(excinfo.value.__cause__, TypeError)


def _data(bookmarks):
    return ImportData(
        bookmarks=bookmarks,
        tags=[],
        metadata=ImportMetadata(
            source="html", total_items=len(bookmarks), parsed_at=""
        ),
    )


def test_validate_reports_errors_and_warnings():
    data = _data(
        [
            ParsedBookmark(title="", url="not a url"),
            ParsedBookmark(title="x" * 201, url="https://ok.example/"),
            ParsedBookmark(
                title="Tagged",
                url="https://tags.example/",
                tags=[f"t{i}" for i in range(21)],
            ),
        ]
    )
    result = HtmlParser().validate(data)

    assert result.valid is False
    assert [issue.field for issue in result.errors] == [
        "bookmarks[0].title",
        "bookmarks[0].url",
    ]
    assert result.errors[1].message == "Invalid URL format"
    assert [issue.code for issue in result.errors] == ["MISSING_TITLE", "INVALID_URL"]
    assert [issue.field for issue in result.warnings] == [
        "bookmarks[1].title",
        "bookmarks[2].tags",
    ]


def test_validate_warnings_do_not_block():
    data = _data([ParsedBookmark(title="x" * 300, url="https://ok.example/")])
    result = HtmlParser().validate(data)
    assert result.valid is True
    assert len(result.warnings) == 1
    assert result.as_dict()["valid"] is True
