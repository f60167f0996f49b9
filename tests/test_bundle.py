import logging

import pytest

from portapack import PageEntry, bundle_multi_page_html, slugify


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://example.com/about.html", "about"),
        ("https://example.com/", "index"),
        ("/", "index"),
        ("", "index"),
        ("products/item?id=1", "products-item-id-1"),
        ("/blog/My%20Post.htm", "blog-my-post"),
        ("/Docs/Guide.PHP", "docs-guide"),
        ("https://example.com/a//b///c.aspx#frag", "a-b-c"),
    ],
)
def test_slugify(url, expected):
    assert slugify(url) == expected


def test_bundle_structure():
    out = bundle_multi_page_html(
        [
            PageEntry("https://example.com/", "<h1>Home</h1>"),
            PageEntry("https://example.com/about.html", "<h1>About</h1>"),
        ]
    )
    assert '<nav id="main-nav">' in out
    assert '<div id="page-container" data-default-page="index">' in out
    assert '<template id="page-index"><h1>Home</h1></template>' in out
    assert '<template id="page-about"><h1>About</h1></template>' in out
    assert '<a href="#about" data-page="about">about</a>' in out
    assert '<script id="router-script">' in out


def test_slug_collisions_get_suffixes(caplog):
    pages = [
        PageEntry("https://example.com/", "<p>1</p>"),
        PageEntry("https://example.com/index.html", "<p>2</p>"),
        PageEntry("https://example.com/index.htm", "<p>3</p>"),
    ]
    with caplog.at_level(logging.WARNING):
        out = bundle_multi_page_html(pages)
    assert 'id="page-index"' in out
    assert 'id="page-index-1"' in out
    assert 'id="page-index-2"' in out
    assert any("collision" in r.getMessage() for r in caplog.records)


def test_invalid_entries_are_skipped(caplog):
    with caplog.at_level(logging.WARNING):
        out = bundle_multi_page_html([object(), PageEntry("https://x.test/a.html", "<p>a</p>")])
    assert 'id="page-a"' in out
    assert any("invalid page entry" in r.getMessage() for r in caplog.records)


def test_no_valid_pages():
    with pytest.raises(ValueError):
        bundle_multi_page_html([])
    with pytest.raises(ValueError):
        bundle_multi_page_html([PageEntry("https://x.test/", None)])
