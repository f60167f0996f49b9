import logging

import pytest

from portapack import determine_base_url, is_relative_reference, resolve_reference


@pytest.mark.parametrize(
    "location,expected",
    [
        ("https://example.com/css/style.css?v=1", "https://example.com/css/"),
        ("https://example.com/docs/", "https://example.com/docs/"),
        ("https://example.com/page", "https://example.com/"),
        ("https://example.com", "https://example.com/"),
        ("HTTP://example.com/a/b.html", "http://example.com/a/"),
    ],
)
def test_remote_base_strips_to_last_slash(location, expected):
    assert determine_base_url(location) == expected


def test_local_file_base_is_parent_directory(tmp_path):
    page = tmp_path / "index.html"
    page.write_text("<html></html>", encoding="utf-8")
    assert determine_base_url(str(page)) == tmp_path.as_uri() + "/"


def test_missing_local_file_is_treated_as_file(tmp_path):
    assert determine_base_url(str(tmp_path / "nope.html")) == tmp_path.as_uri() + "/"


def test_local_directory_base_is_itself(tmp_path):
    assert determine_base_url(str(tmp_path)) == tmp_path.as_uri() + "/"


def test_file_url_location(tmp_path):
    page = tmp_path / "sub" / "page.html"
    page.parent.mkdir()
    page.write_text("x", encoding="utf-8")
    assert determine_base_url(page.as_uri()) == page.parent.as_uri() + "/"


def test_unsupported_or_empty_location_has_no_base(caplog):
    with caplog.at_level(logging.WARNING):
        assert determine_base_url("ftp://example.com/file.html") is None
        assert determine_base_url("") is None
    assert len(caplog.records) == 2


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("img/a.png", "https://example.com/dir/img/a.png"),
        ("../a.png", "https://example.com/a.png"),
        ("/root.css", "https://example.com/root.css"),
        ("  spaced.js  ", "https://example.com/dir/spaced.js"),
        ("a b.png", "https://example.com/dir/a%20b.png"),
        ("icons.svg#logo", "https://example.com/dir/icons.svg"),
        ("font.woff?v=2", "https://example.com/dir/font.woff?v=2"),
        ("https://cdn.example.org/x.js", "https://cdn.example.org/x.js"),
    ],
)
def test_resolve_against_remote_base(raw, expected):
    assert resolve_reference(raw, "https://example.com/dir/") == expected


def test_protocol_relative_inherits_base_scheme():
    assert resolve_reference("//cdn.example.com/lib.js", "https://site.test/") == "https://cdn.example.com/lib.js"
    assert resolve_reference("//cdn.example.com/lib.js", "http://site.test/") == "http://cdn.example.com/lib.js"


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "#top", "data:image/png;base64,AAAA", "DATA:text/css,x", "mailto:a@b.c", "javascript:void(0)"],
)
def test_ignored_references(raw):
    assert resolve_reference(raw, "https://example.com/") is None


def test_unsupported_scheme_logged_at_debug(caplog):
    with caplog.at_level(logging.DEBUG):
        assert resolve_reference("ftp://example.com/a.png", "https://example.com/") is None
    assert all(r.levelno == logging.DEBUG for r in caplog.records)


def test_malformed_reference_warns(caplog):
    with caplog.at_level(logging.WARNING):
        assert resolve_reference("http://[::1", "https://example.com/") is None
    assert any("failed to resolve" in r.getMessage() for r in caplog.records)


def test_relative_without_base(caplog):
    with caplog.at_level(logging.WARNING):
        assert resolve_reference("a.png", None) is None
    assert resolve_reference("https://example.com/a.png", None) == "https://example.com/a.png"


def test_local_base_resolution(tmp_path):
    base = tmp_path.as_uri() + "/"
    assert resolve_reference("css/../img/x.png", base) == tmp_path.as_uri() + "/img/x.png"


def test_is_relative_reference():
    assert is_relative_reference("a.png")
    assert is_relative_reference("../a.png")
    assert not is_relative_reference("https://x/a.png")
    assert not is_relative_reference("//cdn/x.js")
    assert not is_relative_reference("data:,x")
    assert not is_relative_reference("#frag")
