from pathlib import Path
from typing import Dict, List, Optional, Union
from unittest import mock

import pytest

from portapack import FailureKind, FetchError, FetchResult

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01"
WOFF2_BYTES = b"wOF2\x00\x01\x00\x00\x00\x00\x02\x00\xff\xfe"


class FakeFetcher:
    """Serves canned responses by canonical URL and records every request."""

    def __init__(self, responses: Optional[Dict[str, Union[bytes, FetchError]]] = None, generator=None):
        self.responses = dict(responses or {})
        self.generator = generator
        self.calls: List[str] = []
        self.session = mock.MagicMock()

    def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        body = self.responses.get(url)
        if body is None and self.generator is not None:
            body = self.generator(url)
        if body is None:
            return FetchResult(url, error=FetchError(FailureKind.NOT_FOUND, f"no fixture for {url}"))
        if isinstance(body, FetchError):
            return FetchResult(url, error=body)
        return FetchResult(url, data=body)


def make_response(status=200, content=b"", headers=None, reason="OK", encoding="utf-8"):
    r = mock.MagicMock()
    r.status_code = status
    r.content = content
    r.headers = headers or {}
    r.reason = reason
    r.encoding = encoding
    r.apparent_encoding = "utf-8"
    r.text = content.decode("utf-8", errors="replace")
    return r


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def local_site(tmp_path: Path) -> Path:
    """A small site: index.html, css/main.css importing css/theme.css, images, fonts, js."""
    (tmp_path / "css").mkdir()
    (tmp_path / "images").mkdir()
    (tmp_path / "fonts").mkdir()
    (tmp_path / "js").mkdir()
    (tmp_path / "index.html").write_text(
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        "  <title>Local</title>\n"
        '  <link rel="stylesheet" href="css/main.css">\n'
        '  <script src="js/app.js"></script>\n'
        "</head>\n<body>\n"
        '  <img src="images/logo.png" alt="logo">\n'
        '  <div style="background: url(\'images/bg.png\')">hi</div>\n'
        "</body>\n</html>\n",
        encoding="utf-8",
    )
    (tmp_path / "css" / "main.css").write_text(
        '@import "theme.css";\n'
        "body { background: url('../images/bg.png'); }\n"
        ".logo { background-image: url(\"../images/logo.png\"); }\n",
        encoding="utf-8",
    )
    (tmp_path / "css" / "theme.css").write_text(
        "@font-face { font-family: 'Site'; src: url(../fonts/site.woff2) format('woff2'); }\n"
        "h1 { color: #333; }\n",
        encoding="utf-8",
    )
    (tmp_path / "images" / "logo.png").write_bytes(PNG_BYTES)
    (tmp_path / "images" / "bg.png").write_bytes(PNG_BYTES)
    (tmp_path / "fonts" / "site.woff2").write_bytes(WOFF2_BYTES)
    (tmp_path / "js" / "app.js").write_text(
        "console.log('ready');\n\n\nif (a < b) { document.write('</script>'); }\n",
        encoding="utf-8",
    )
    return tmp_path
