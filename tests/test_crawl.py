from unittest import mock

import pytest
import requests

from conftest import FakeFetcher, make_response
from portapack import Settings, crawl_website, generate_recursive_portable_html, recursively_bundle_site

HTML = {"Content-Type": "text/html; charset=utf-8"}

PAGES = {
    "https://site.test/": (
        '<a href="/a.html">a</a> <a href="b.html#part">b</a> <a href="https://other.test/c">c</a>'
        '<a href="mailto:x@site.test">m</a> <a href="/a.html">again</a> <a href="/file.pdf">pdf</a>'
        '<a href="/gone.html">gone</a>'
    ),
    "https://site.test/a.html": '<a href="deep.html">deep</a>',
    "https://site.test/b.html": "<p>b</p>",
    "https://site.test/deep.html": "<p>deep</p>",
}


def fake_get(url, timeout=None):
    if url in PAGES:
        return make_response(200, PAGES[url].encode("utf-8"), HTML)
    if url.endswith(".pdf"):
        return make_response(200, b"%PDF", {"Content-Type": "application/pdf"})
    if url.startswith("https://other.test/"):
        raise AssertionError("crawled another origin")
    return make_response(404, b"", reason="Not Found")


@pytest.fixture
def session():
    s = mock.MagicMock()
    s.get.side_effect = fake_get
    return s


def urls(pages):
    return [p.url for p in pages]


def test_depth_one_is_the_start_page(session):
    assert urls(crawl_website("https://site.test/", 1, Settings(), session)) == ["https://site.test/"]


def test_breadth_first_same_origin(session):
    pages = crawl_website("https://site.test/", 2, Settings(), session)
    assert urls(pages) == ["https://site.test/", "https://site.test/a.html", "https://site.test/b.html"]
    requested = [c.args[0] for c in session.get.call_args_list]
    assert requested.count("https://site.test/a.html") == 1
    assert "https://site.test/file.pdf" in requested
    assert "https://site.test/gone.html" in requested


def test_depth_three_reaches_nested_pages(session):
    pages = crawl_website("https://site.test/", 3, Settings(), session)
    assert urls(pages)[-1] == "https://site.test/deep.html"
    assert len(pages) == 4


def test_zero_depth_crawls_nothing(session):
    assert crawl_website("https://site.test/", 0, Settings(), session) == []
    session.get.assert_not_called()


@pytest.mark.parametrize("start", ["ftp://site.test/", "not a url", "https://"])
def test_invalid_start_url(start, session):
    with pytest.raises(ValueError):
        crawl_website(start, 1, Settings(), session)


def test_network_errors_skip_the_page():
    s = mock.MagicMock()
    s.get.side_effect = requests.ConnectionError("down")
    assert crawl_website("https://site.test/", 2, Settings(), s) == []


def test_recursive_bundle(session):
    html, count = recursively_bundle_site("https://site.test/", 2, Settings(), session, FakeFetcher())
    assert count == 3
    assert 'id="page-index"' in html
    assert 'id="page-a"' in html
    assert 'id="page-b"' in html


def test_recursive_build_metadata(session):
    result = generate_recursive_portable_html("https://site.test/", 1, Settings(), session, FakeFetcher())
    assert result.metadata.pages_bundled == 1
    assert result.metadata.output_size == len(result.html.encode("utf-8"))
