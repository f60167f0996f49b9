#!/usr/bin/env python3
"""Bundle an HTML document and every asset it references into one portable file.

Assets are discovered breadth-first: stylesheets linked from the document are
fetched and scanned for ``@import`` and ``url(...)`` references, which are
resolved against the stylesheet's own location and fetched in turn.
"""
import argparse
import base64
import html as html_lib
import logging
import os
import re
import stat
import sys
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union
from urllib.parse import unquote, urldefrag, urljoin, urlsplit, urlunsplit
from urllib.request import url2pathname

import requests
from bs4 import BeautifulSoup, Doctype, FeatureNotFound
from requests.adapters import HTTPAdapter
from requests.utils import requote_uri
from urllib3.util.retry import Retry

__version__ = "0.3.0"

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": f"Mozilla/5.0 (compatible; portapack/{__version__})",
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.7",
}

SUPPORTED_SCHEMES = {"file", "http", "https"}
REMOTE_RE = re.compile(r"^https?://", re.IGNORECASE)
SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*:", re.IGNORECASE)

CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
CSS_IMPORT_PATTERN = (
    r"@import\s+(?:url\(\s*(?P<iq>[\"']?)(?P<iurl>.*?)(?P=iq)\s*\)"
    r"|(?P<sq>[\"'])(?P<istr>.*?)(?P=sq))(?P<media>[^;]*);"
)
CSS_URL_PATTERN = r"url\(\s*(?P<q>[\"']?)(?P<url>.*?)(?P=q)\s*\)"
# imports first, so that "@import url(...)" is consumed as an import
CSS_REF_RE = re.compile(f"{CSS_IMPORT_PATTERN}|{CSS_URL_PATTERN}", re.IGNORECASE)

SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")
WS_RE = re.compile(r"\s+")
SCRIPT_CLOSE_RE = re.compile(r"</(script)", re.IGNORECASE)

HTML_COMMENT_RE = re.compile(r"<!--(?!\[if).*?-->", re.S)
PROTECTED_BLOCK_RE = re.compile(
    r"<(script|style|pre|textarea)\b.*?</\1\s*>", re.IGNORECASE | re.S
)

ICON_RELS = {"icon", "shortcut icon", "apple-touch-icon"}
STRIP_ON_INLINE = ("integrity", "crossorigin", "referrerpolicy")

MINIMAL_SHELL = (
    '<!DOCTYPE html><html><head><base href="./"></head><body></body></html>'
)

# -------------------- Settings --------------------


@dataclass
class Settings:
    embed_assets: bool = True
    timeout: float = 10.0
    base_url: Optional[str] = None
    max_iterations: int = 1000
    workers: int = 8

    # Minification
    minify_html: bool = True
    minify_css: bool = True
    minify_js: bool = True

    # Crawl
    recursive_depth: Optional[int] = None

    # Session
    user_agent: Optional[str] = None
    extra_headers: List[str] = field(default_factory=list)  # "Name: value"


# -------------------- Types --------------------


class AssetKind(Enum):
    CSS = "css"
    JS = "js"
    IMAGE = "image"
    FONT = "font"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


BINARY_KINDS = {AssetKind.IMAGE, AssetKind.FONT, AssetKind.VIDEO, AssetKind.AUDIO}


class FailureKind(Enum):
    BASE_CONTEXT_UNRESOLVABLE = "base-context-unresolvable"
    REFERENCE_UNRESOLVABLE = "reference-unresolvable"
    UNSUPPORTED_PROTOCOL = "unsupported-protocol"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    NETWORK_ERROR = "network-error"
    TIMEOUT = "timeout"
    IO_ERROR = "io-error"
    LOSSY_DECODE = "lossy-decode"
    ITERATION_CAP_EXCEEDED = "iteration-cap-exceeded"


HTTP_STATUS_FAILURES = {
    401: FailureKind.PERMISSION_DENIED,
    403: FailureKind.PERMISSION_DENIED,
    404: FailureKind.NOT_FOUND,
    410: FailureKind.NOT_FOUND,
}


class DocumentError(RuntimeError):
    """The input HTML document itself could not be read or fetched."""


@dataclass(frozen=True)
class FontMeta:
    family: Optional[str] = None
    weight: Optional[int] = None
    style: Optional[str] = None
    format: Optional[str] = None


@dataclass(frozen=True)
class AssetReference:
    raw_url: str
    kind: Optional[AssetKind] = None
    font_meta: Optional[FontMeta] = None


@dataclass(frozen=True)
class Asset:
    kind: AssetKind
    url: str
    content: Optional[str] = None
    font_meta: Optional[FontMeta] = None


@dataclass(frozen=True)
class Issue:
    kind: FailureKind
    url: str
    message: str

    def describe(self) -> str:
        if self.url:
            return f"{self.kind.value}: {self.url}: {self.message}"
        return f"{self.kind.value}: {self.message}"


@dataclass
class ParsedHTML:
    html_content: str
    references: List[AssetReference] = field(default_factory=list)


@dataclass
class ExtractionResult:
    html_content: str
    assets: List[Asset] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)
    aborted: bool = False


@dataclass(frozen=True)
class FetchError:
    kind: FailureKind
    message: str
    status: Optional[int] = None


@dataclass(frozen=True)
class FetchResult:
    url: str
    data: Optional[bytes] = None
    content_type: Optional[str] = None
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


@dataclass(frozen=True)
class Classification:
    content: Optional[str] = None
    css_text: Optional[str] = None  # decoded stylesheet, kept for scanning
    lossy: bool = False


@dataclass
class PageEntry:
    url: str
    html: str


@dataclass
class BundleMetadata:
    input: str
    asset_count: int
    output_size: int
    build_time_ms: int
    pages_bundled: Optional[int] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class BuildResult:
    html: str
    metadata: BundleMetadata


# -------------------- MIME --------------------

MIME_MAP: Dict[str, Tuple[str, AssetKind]] = {
    ".css": ("text/css", AssetKind.CSS),
    ".js": ("application/javascript", AssetKind.JS),
    ".mjs": ("application/javascript", AssetKind.JS),
    ".png": ("image/png", AssetKind.IMAGE),
    ".jpg": ("image/jpeg", AssetKind.IMAGE),
    ".jpeg": ("image/jpeg", AssetKind.IMAGE),
    ".gif": ("image/gif", AssetKind.IMAGE),
    ".svg": ("image/svg+xml", AssetKind.IMAGE),
    ".webp": ("image/webp", AssetKind.IMAGE),
    ".ico": ("image/x-icon", AssetKind.IMAGE),
    ".avif": ("image/avif", AssetKind.IMAGE),
    ".bmp": ("image/bmp", AssetKind.IMAGE),
    ".woff": ("font/woff", AssetKind.FONT),
    ".woff2": ("font/woff2", AssetKind.FONT),
    ".ttf": ("font/ttf", AssetKind.FONT),
    ".otf": ("font/otf", AssetKind.FONT),
    ".eot": ("application/vnd.ms-fontobject", AssetKind.FONT),
    ".mp3": ("audio/mpeg", AssetKind.AUDIO),
    ".ogg": ("audio/ogg", AssetKind.AUDIO),
    ".wav": ("audio/wav", AssetKind.AUDIO),
    ".m4a": ("audio/mp4", AssetKind.AUDIO),
    ".mp4": ("video/mp4", AssetKind.VIDEO),
    ".webm": ("video/webm", AssetKind.VIDEO),
    ".json": ("application/json", AssetKind.OTHER),
    ".webmanifest": ("application/manifest+json", AssetKind.OTHER),
    ".xml": ("application/xml", AssetKind.OTHER),
    ".html": ("text/html", AssetKind.OTHER),
    ".txt": ("text/plain", AssetKind.OTHER),
}
DEFAULT_MIME = ("application/octet-stream", AssetKind.OTHER)
KIND_TEXT_MIME = {
    AssetKind.CSS: "text/css",
    AssetKind.JS: "application/javascript",
}


def _extension(url_or_path: str) -> str:
    try:
        path = urlsplit(url_or_path).path
    except ValueError:
        path = url_or_path
    return os.path.splitext(path)[1].lower()


def guess_mime_type(url_or_path: str) -> Tuple[str, AssetKind]:
    if not url_or_path:
        return DEFAULT_MIME
    return MIME_MAP.get(_extension(url_or_path), DEFAULT_MIME)


def effective_mime(url: str, content_type: Optional[str]) -> str:
    known = MIME_MAP.get(_extension(url))
    if known:
        return known[0]
    if content_type:
        ct = content_type.split(";")[0].strip().lower()
        if ct:
            return ct
    return DEFAULT_MIME[0]


# -------------------- Utils --------------------


def is_remote(location: str) -> bool:
    return bool(location) and bool(REMOTE_RE.match(location))


def is_data_uri(value: Optional[str]) -> bool:
    return bool(value) and value[:5].lower() == "data:"


def can_fetch_url(u: Optional[str]) -> bool:
    if not u:
        return False
    u = u.strip()
    if u.startswith(("#", "mailto:", "tel:", "javascript:", "data:", "blob:")):
        return False
    return True


def is_same_origin(base: str, other: str) -> bool:
    b, o = urlsplit(base), urlsplit(other)
    return (b.scheme, b.netloc) == (o.scheme, o.netloc)


def to_data_uri(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def file_url_to_path(url: str) -> str:
    p = urlsplit(url)
    if p.scheme.lower() != "file":
        raise ValueError(f"not a file URL: {url}")
    if p.netloc and p.netloc.lower() != "localhost":
        if os.name != "nt":
            raise ValueError(f"file URL names a remote host {p.netloc!r}: {url}")
        # UNC share
        return url2pathname(f"//{p.netloc}{p.path}")
    return url2pathname(p.path)


def build_session(settings: Optional[Settings] = None) -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=32, pool_maxsize=32)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS)
    if settings is not None:
        apply_headers_to_session(s, settings)
    return s


def apply_headers_to_session(session: requests.Session, settings: Settings) -> None:
    if settings.user_agent:
        session.headers["User-Agent"] = settings.user_agent
    for h in settings.extra_headers:
        if ":" not in h:
            logging.warning("invalid header (no colon): %s", h)
            continue
        k, v = h.split(":", 1)
        session.headers[k.strip()] = v.strip()


# -------------------- Base context --------------------


def determine_base_url(location: str) -> Optional[str]:
    """Return the directory URL, ending in '/', that relative references
    found at ``location`` resolve against.

    Remote locations keep everything up to the last '/' of their path. Local
    paths and file: URLs resolve to their own directory when they name an
    existing directory, otherwise to their parent directory. Returns None
    when no context can be determined.
    """
    logging.debug("determining base url for %s", location)
    if not location:
        logging.warning("cannot determine base url: empty location")
        return None
    try:
        if is_remote(location):
            p = urlsplit(location)
            path = p.path[: p.path.rfind("/") + 1] or "/"
            return urlunsplit((p.scheme.lower(), p.netloc, path, "", ""))
        if "://" in location and not location.lower().startswith("file:"):
            logging.warning("unsupported protocol in %s, cannot determine base url", location)
            return None
        if location.lower().startswith("file:"):
            path = file_url_to_path(location)
        else:
            path = os.path.abspath(location)
        try:
            is_dir = stat.S_ISDIR(os.stat(path).st_mode)
        except FileNotFoundError:
            logging.debug("%s not found, treating it as a file", path)
            is_dir = False
        except OSError as e:
            logging.warning("could not stat %s: %s; treating it as a file", path, e)
            is_dir = False
        directory = path if is_dir else os.path.dirname(path)
        base = Path(directory).as_uri()
    except (ValueError, OSError) as e:
        logging.error("failed to determine base url for %s: %s", location, e)
        return None
    return base if base.endswith("/") else base + "/"


# -------------------- Reference resolution --------------------


def is_relative_reference(raw: str) -> bool:
    ref = (raw or "").strip()
    if not ref or ref.startswith("#") or is_data_uri(ref):
        return False
    return not SCHEME_RE.match(ref) and not ref.startswith("//")


def resolve_reference(raw: Optional[str], base: Optional[str]) -> Optional[str]:
    """Turn a raw href/src/url() target into a canonical absolute URL.

    Returns None for references that are ignored (empty, data: URIs,
    fragments, unsupported protocols) and for references that cannot be
    resolved; the latter are logged as warnings. Fragments are dropped
    from the canonical form.
    """
    ref = (raw or "").strip()
    if not ref or ref.startswith("#") or is_data_uri(ref):
        return None
    try:
        if ref.startswith("//"):
            if not base:
                logging.warning("cannot resolve protocol-relative url %s without a base", ref)
                return None
            ref = f"{urlsplit(base).scheme}:{ref}"
        resolved = urljoin(base, ref) if base else ref
        parts = urlsplit(resolved)
    except ValueError as e:
        logging.warning("failed to resolve %s against %s: %s", ref, base or "(no base)", e)
        return None
    scheme = parts.scheme.lower()
    if not scheme:
        logging.warning("cannot resolve relative url %s: no base context", ref)
        return None
    if scheme not in SUPPORTED_SCHEMES:
        logging.debug("ignoring %s url: %s", scheme, resolved)
        return None
    path = parts.path
    if scheme != "file" and not path:
        path = "/"
    return requote_uri(urlunsplit((scheme, parts.netloc, path, parts.query, "")))


# -------------------- CSS scanning --------------------


def iter_css_references(css_text: str) -> Iterator[Tuple[str, str]]:
    """Yield ``(rule, raw_target)`` for every @import and url() in css_text."""
    for m in CSS_REF_RE.finditer(CSS_COMMENT_RE.sub("", css_text)):
        if m.group("iurl") is not None or m.group("istr") is not None:
            yield "@import", m.group("iurl") or m.group("istr") or ""
        else:
            yield "url()", m.group("url") or ""


def scan_css_references(css_text: str, css_base: str) -> List[Asset]:
    """Find the assets a stylesheet references, resolved against css_base.

    The result is deduplicated within this stylesheet only; data: URIs are
    skipped. @import targets are always stylesheets.
    """
    found: List[Asset] = []
    seen_here: Set[str] = set()
    for rule, raw in iter_css_references(css_text):
        raw = raw.strip()
        if not raw or is_data_uri(raw):
            continue
        url = resolve_reference(raw, css_base)
        if url is None or url in seen_here:
            continue
        seen_here.add(url)
        kind = AssetKind.CSS if rule == "@import" else guess_mime_type(url)[1]
        found.append(Asset(kind=kind, url=url))
        logging.debug("discovered %s %s via %s in %s", kind.value, url, rule, css_base)
    return found


# -------------------- Fetching --------------------


def _failure(
    url: str, kind: FailureKind, message: str, status: Optional[int] = None
) -> FetchResult:
    logging.warning("failed %s -> %s", url, message)
    return FetchResult(url, error=FetchError(kind, message, status))


class ContentFetcher:
    """Reads the bytes behind canonical file:, http: and https: URLs.

    Failures come back as ``FetchResult.error`` values; ``fetch`` does not
    raise for missing files, HTTP errors or network problems.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session if session is not None else build_session()
        self.timeout = timeout

    def fetch(self, url: str) -> FetchResult:
        logging.debug("fetching %s", url)
        scheme = urlsplit(url).scheme.lower()
        if scheme in ("http", "https"):
            return self._fetch_remote(url)
        if scheme == "file":
            return self._read_local(url)
        return _failure(url, FailureKind.UNSUPPORTED_PROTOCOL, f"unsupported protocol {scheme!r}")

    def _read_local(self, url: str) -> FetchResult:
        try:
            path = file_url_to_path(url)
        except ValueError as e:
            return _failure(url, FailureKind.IO_ERROR, f"cannot convert to a path: {e}")
        try:
            data = Path(path).read_bytes()
        except FileNotFoundError:
            return _failure(url, FailureKind.NOT_FOUND, f"file not found: {path}")
        except PermissionError:
            return _failure(url, FailureKind.PERMISSION_DENIED, f"permission denied: {path}")
        except (OSError, ValueError) as e:
            # ValueError: embedded NUL byte in the decoded path
            return _failure(url, FailureKind.IO_ERROR, f"cannot read {path!r}: {e}")
        logging.debug("read %s (%d bytes)", path, len(data))
        return FetchResult(url, data=data)

    def _fetch_remote(self, url: str) -> FetchResult:
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            return _failure(url, FailureKind.TIMEOUT, f"timed out after {self.timeout}s: {e}")
        except requests.RequestException as e:
            return _failure(url, FailureKind.NETWORK_ERROR, str(e))
        if r.status_code >= 400:
            kind = HTTP_STATUS_FAILURES.get(r.status_code, FailureKind.NETWORK_ERROR)
            message = f"HTTP {r.status_code} {r.reason or ''}".strip()
            return _failure(url, kind, message, r.status_code)
        content_type = r.headers.get("Content-Type")
        logging.debug(
            "fetched %s (status %s, %s, %d bytes)",
            url,
            r.status_code,
            content_type or "no content type",
            len(r.content),
        )
        return FetchResult(url, data=r.content, content_type=content_type)


# -------------------- Classification --------------------


def decode_utf8_lossless(data: bytes) -> Optional[str]:
    """Decode data as UTF-8, or return None if the bytes do not round-trip."""
    text = data.decode("utf-8", errors="replace")
    if text.encode("utf-8") != data:
        return None
    return text


def classify_content(
    data: bytes, kind: AssetKind, mime: str, embed: bool, url: str = ""
) -> Classification:
    if kind is AssetKind.CSS or kind is AssetKind.JS:
        text = decode_utf8_lossless(data)
        if text is not None:
            return Classification(
                content=text if embed else None,
                css_text=text if kind is AssetKind.CSS else None,
            )
        if kind is AssetKind.CSS:
            logging.warning(
                "could not decode css %s as utf-8; its nested references will not be scanned%s",
                url,
                ", embedding as base64" if embed else "",
            )
        else:
            logging.warning(
                "could not decode js %s as utf-8%s",
                url,
                ", embedding as base64" if embed else "",
            )
        return Classification(content=to_data_uri(mime, data) if embed else None, lossy=True)

    if kind in BINARY_KINDS:
        return Classification(content=to_data_uri(mime, data) if embed else None)

    # AssetKind.OTHER
    if not embed:
        return Classification()
    text = decode_utf8_lossless(data)
    if text is None:
        logging.warning(
            "unclassified asset %s is not valid utf-8, embedding as application/octet-stream",
            url,
        )
        return Classification(content=to_data_uri(DEFAULT_MIME[0], data), lossy=True)
    return Classification(content=text)


# -------------------- Extraction --------------------


class AssetExtractor:
    """Discovers, fetches and classifies every asset reachable from one document.

    An instance owns the queue, the seen set and the result map of a single
    run; create a new one per document.
    """

    def __init__(self, settings: Optional[Settings] = None, fetcher: Optional[ContentFetcher] = None):
        self.settings = settings or Settings()
        self.fetcher = fetcher or ContentFetcher(build_session(self.settings), self.settings.timeout)
        self.queue: List[Asset] = []
        self.seen: Set[str] = set()
        self.results: Dict[str, Asset] = {}
        self.issues: List[Issue] = []
        self.batches = 0
        self.aborted = False
        self._started = False

    def run(self, parsed: ParsedHTML, location: Optional[str] = None) -> ExtractionResult:
        if self._started:
            raise RuntimeError("AssetExtractor instances run once; create a new one")
        self._started = True
        logging.info(
            "starting asset extraction (embed=%s) for %s",
            self.settings.embed_assets,
            location or "(html content only)",
        )
        base = determine_base_url(location) if location else None
        if base:
            logging.debug("document base url: %s", base)
        self._seed(parsed.references, base, location)

        while self.queue:
            self.batches += 1
            if self.batches > self.settings.max_iterations:
                self._abort()
                break
            batch, self.queue = self.queue, []
            self._drain(batch)

        logging.info(
            "asset extraction complete: %d unique assets in %d batch(es)%s",
            len(self.results),
            min(self.batches, self.settings.max_iterations),
            " (aborted)" if self.aborted else "",
        )
        return ExtractionResult(
            html_content=parsed.html_content,
            assets=list(self.results.values()),
            issues=list(self.issues),
            aborted=self.aborted,
        )

    def _enqueue(self, asset: Asset) -> bool:
        if asset.url in self.seen:
            logging.debug("already seen: %s", asset.url)
            return False
        self.seen.add(asset.url)
        self.queue.append(asset)
        logging.debug("queued %s %s", asset.kind.value, asset.url)
        return True

    def _seed(
        self, references: Sequence[AssetReference], base: Optional[str], location: Optional[str]
    ) -> None:
        logging.debug("seeding queue with %d reference(s)", len(references))
        skipped = 0
        for ref in references:
            if base is None and is_relative_reference(ref.raw_url):
                skipped += 1
                continue
            url = resolve_reference(ref.raw_url, base)
            if url is None:
                continue
            kind = ref.kind or guess_mime_type(url)[1]
            self._enqueue(Asset(kind=kind, url=url, font_meta=ref.font_meta))
        if skipped:
            message = f"no base context; skipped {skipped} relative reference(s)"
            logging.warning("%s for %s", message, location or "(html content only)")
            self.issues.append(Issue(FailureKind.BASE_CONTEXT_UNRESOLVABLE, location or "", message))

    def _fetch_batch(self, assets: List[Asset]) -> Dict[str, FetchResult]:
        if not assets:
            return {}
        workers = max(1, min(self.settings.workers, len(assets)))
        urls = [a.url for a in assets]
        if workers == 1:
            return {u: self._fetch_one(u) for u in urls}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return dict(zip(urls, pool.map(self._fetch_one, urls)))

    def _fetch_one(self, url: str) -> FetchResult:
        try:
            return self.fetcher.fetch(url)
        except Exception as e:
            logging.exception("unexpected error fetching %s", url)
            return FetchResult(url, error=FetchError(FailureKind.IO_ERROR, f"unexpected error: {e}"))

    def _drain(self, batch: List[Asset]) -> None:
        logging.debug("processing batch %d: %d asset(s)", self.batches, len(batch))
        embed = self.settings.embed_assets
        wanted = [a for a in batch if embed or a.kind is AssetKind.CSS]
        fetched = self._fetch_batch(wanted)

        discovered: List[Asset] = []
        for asset in batch:
            result = fetched.get(asset.url)
            if result is None:
                self.results[asset.url] = asset
                continue
            if not result.ok:
                err = result.error
                self.issues.append(Issue(err.kind, asset.url, err.message))
                self.results[asset.url] = asset
                continue
            mime = effective_mime(asset.url, result.content_type)
            c = classify_content(result.data, asset.kind, mime, embed, asset.url)
            if c.lossy:
                self.issues.append(
                    Issue(FailureKind.LOSSY_DECODE, asset.url, "not valid utf-8 text")
                )
            self.results[asset.url] = replace(asset, content=c.content)
            if c.css_text is not None:
                discovered.extend(self._scan(asset.url, c.css_text))

        for asset in discovered:
            self._enqueue(asset)

    def _scan(self, css_url: str, css_text: str) -> List[Asset]:
        css_base = determine_base_url(css_url)
        if css_base is None:
            message = "no base context; nested references not resolved"
            logging.warning("%s for css %s", message, css_url)
            self.issues.append(Issue(FailureKind.BASE_CONTEXT_UNRESOLVABLE, css_url, message))
            return []
        found = scan_css_references(css_text, css_base)
        if found:
            logging.debug("found %d nested reference(s) in %s", len(found), css_url)
        return found

    def _abort(self) -> None:
        cap = self.settings.max_iterations
        stranded = self.queue
        sample = ", ".join(a.url for a in stranded[:10])
        message = f"iteration cap of {cap} batches exceeded; {len(stranded)} asset(s) left unprocessed"
        logging.error("%s: %s", message, sample)
        for asset in stranded:
            self.results.setdefault(asset.url, asset)
        self.issues.append(Issue(FailureKind.ITERATION_CAP_EXCEEDED, "", message))
        self.queue = []
        self.aborted = True


def extract_assets(
    parsed: ParsedHTML,
    settings: Optional[Settings] = None,
    location: Optional[str] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> ExtractionResult:
    return AssetExtractor(settings, fetcher).run(parsed, location)


# -------------------- HTML utils --------------------


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser")


def serialize_html(soup: BeautifulSoup) -> str:
    return soup.decode(formatter="html")


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag and tag.get("href"):
        return urljoin(fallback, tag["href"])
    return fallback


def link_rels(tag) -> Set[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    parts = [r.lower() for r in rel]
    rels = set(parts)
    rels.add(" ".join(parts))
    return rels


def parse_srcset(v: str) -> List[str]:
    urls: List[str] = []
    if not v:
        return urls
    for cand in SRCSET_SPLIT_RE.split(v.strip()):
        if not cand:
            continue
        parts = WS_RE.split(cand.strip())
        if parts and parts[0]:
            urls.append(parts[0])
    return urls


# -------------------- Parsing --------------------


def read_document(
    location: str, settings: Optional[Settings] = None, session: Optional[requests.Session] = None
) -> str:
    settings = settings or Settings()
    if is_remote(location):
        session = session if session is not None else build_session(settings)
        try:
            r = session.get(location, timeout=settings.timeout)
        except requests.RequestException as e:
            raise DocumentError(f"could not fetch {location}: {e}") from e
        if r.status_code >= 400:
            raise DocumentError(f"could not fetch {location}: HTTP {r.status_code}")
        ct = (r.headers.get("Content-Type") or "").lower()
        if not r.encoding or "charset" not in ct:
            r.encoding = r.apparent_encoding or "utf-8"
        return r.text
    path = file_url_to_path(location) if location.lower().startswith("file:") else location
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentError(f"could not read input html file {path}: {e}") from e
    logging.debug("read %s (%d chars)", path, len(text))
    return text


def parse_html(html_text: str) -> ParsedHTML:
    """List the asset references in a document, in document order."""
    soup = bs4_parse(html_text)
    refs: List[AssetReference] = []
    added: Set[str] = set()

    def add(url: Optional[str], kind: Optional[AssetKind] = None, font_meta: Optional[FontMeta] = None) -> None:
        url = (url or "").strip()
        if not url or url.startswith("#") or is_data_uri(url) or url in added:
            return
        added.add(url)
        refs.append(AssetReference(url, kind or guess_mime_type(url)[1], font_meta))

    for tag in soup.find_all(True):
        name = tag.name
        if name == "link" and tag.get("href"):
            rels = link_rels(tag)
            if "stylesheet" in rels:
                add(tag["href"], AssetKind.CSS)
            elif rels & ICON_RELS:
                add(tag["href"], AssetKind.IMAGE)
            elif "manifest" in rels:
                add(tag["href"])
            elif "preload" in rels and (tag.get("as") or "").lower() == "font":
                add(tag["href"], AssetKind.FONT, FontMeta(format=tag.get("type")))
        elif name == "script" and tag.get("src"):
            add(tag["src"], AssetKind.JS)
        elif name == "img":
            add(tag.get("src"), AssetKind.IMAGE)
            for u in parse_srcset(tag.get("srcset", "")):
                add(u, AssetKind.IMAGE)
        elif name == "input" and (tag.get("type") or "").lower() == "image":
            add(tag.get("src"), AssetKind.IMAGE)
        elif name == "video":
            add(tag.get("src"), AssetKind.VIDEO)
            add(tag.get("poster"), AssetKind.IMAGE)
        elif name == "audio":
            add(tag.get("src"), AssetKind.AUDIO)
        elif name == "source":
            parent = tag.parent.name if tag.parent is not None else None
            if parent == "video":
                add(tag.get("src"), AssetKind.VIDEO)
            elif parent == "audio":
                add(tag.get("src"), AssetKind.AUDIO)
            if parent == "picture" or tag.get("srcset"):
                for u in parse_srcset(tag.get("srcset", "")):
                    add(u, AssetKind.IMAGE)
        elif name == "style" and tag.string:
            for rule, raw in iter_css_references(tag.string):
                add(raw, AssetKind.CSS if rule == "@import" else None)
        if tag.get("style"):
            for rule, raw in iter_css_references(tag["style"]):
                add(raw, AssetKind.CSS if rule == "@import" else None)

    logging.info("html parsing complete: %d unique asset reference(s)", len(refs))
    return ParsedHTML(html_content=html_text, references=refs)


# -------------------- Minification --------------------


def minify_css(css: str) -> str:
    css = CSS_COMMENT_RE.sub("", css)
    css = WS_RE.sub(" ", css)
    css = re.sub(r"\s*([{};,>])\s*", r"\1", css)
    css = re.sub(r":\s+", ":", css)
    css = css.replace(";}", "}")
    return css.strip()


def minify_js(js: str) -> str:
    lines = (line.rstrip() for line in js.splitlines())
    return "\n".join(line for line in lines if line)


def _collapse_markup(fragment: str) -> str:
    fragment = HTML_COMMENT_RE.sub("", fragment)
    return WS_RE.sub(" ", fragment)


def minify_html(html: str) -> str:
    out: List[str] = []
    pos = 0
    for m in PROTECTED_BLOCK_RE.finditer(html):
        out.append(_collapse_markup(html[pos : m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(_collapse_markup(html[pos:]))
    return "".join(out).strip()


def minify_assets(extracted: ExtractionResult, settings: Optional[Settings] = None) -> ExtractionResult:
    settings = settings or Settings()
    assets: List[Asset] = []
    for asset in extracted.assets:
        content = asset.content
        if content and not is_data_uri(content):
            if asset.kind is AssetKind.CSS and settings.minify_css:
                content = minify_css(content)
            elif asset.kind is AssetKind.JS and settings.minify_js:
                content = minify_js(content)
            if content != asset.content:
                logging.debug(
                    "minified %s: %d -> %d chars", asset.url, len(asset.content), len(content)
                )
                asset = replace(asset, content=content)
        assets.append(asset)
    html = extracted.html_content
    if settings.minify_html and html:
        html = minify_html(html)
    return replace(extracted, html_content=html, assets=assets)


# -------------------- Packing --------------------


def escape_script_content(code: str) -> str:
    return SCRIPT_CLOSE_RE.sub(r"<\\/\1", code)


def asset_data_uri(asset: Asset) -> str:
    if is_data_uri(asset.content):
        return asset.content
    mime = guess_mime_type(asset.url)[0]
    if mime == DEFAULT_MIME[0]:
        mime = KIND_TEXT_MIME.get(asset.kind, "text/plain")
    return to_data_uri(mime, (asset.content or "").encode("utf-8"))


class AssetIndex:
    """Looks up fetched assets by the raw reference strings found in markup."""

    def __init__(self, assets: Iterable[Asset]):
        self.by_url: Dict[str, Asset] = {a.url: a for a in assets}

    def lookup(self, raw: Optional[str], base: Optional[str]) -> Optional[Asset]:
        if not raw or is_data_uri(raw.strip()):
            return None
        url = resolve_reference(raw, base)
        asset = self.by_url.get(url) if url else None
        if asset is None:
            asset = self.by_url.get(raw.strip())
        if asset is None or not asset.content:
            return None
        return asset


def rewrite_css_text(
    css_text: str, css_base: Optional[str], index: AssetIndex, stack: Set[str] = frozenset()
) -> str:
    """Replace url() targets with data URIs and inline @import'ed stylesheets."""

    def repl(m: re.Match) -> str:
        if m.group("iurl") is not None or m.group("istr") is not None:
            raw = (m.group("iurl") or m.group("istr") or "").strip()
            target = resolve_reference(raw, css_base)
            asset = index.lookup(raw, css_base)
            if asset is None or target in stack:
                return m.group(0)
            media = m.group("media").strip()
            if is_data_uri(asset.content):
                return f'@import url("{asset.content}"){" " + media if media else ""};'
            nested = rewrite_css_text(
                asset.content, determine_base_url(asset.url), index, stack | {asset.url}
            )
            return f"@media {media} {{\n{nested}\n}}" if media else nested
        raw = (m.group("url") or "").strip()
        asset = index.lookup(raw, css_base)
        if asset is None:
            return m.group(0)
        return f'url("{asset_data_uri(asset)}")'

    return CSS_REF_RE.sub(repl, css_text)


def ensure_base_tag(soup: BeautifulSoup) -> None:
    if soup.find("base", href=True) is not None:
        return
    head = soup.head
    if head is None:
        html_el = soup.html
        if html_el is None:
            logging.debug("no <html> element, wrapping content")
            html_el = soup.new_tag("html")
            body = soup.new_tag("body")
            for child in list(soup.contents):
                if isinstance(child, Doctype):
                    continue
                body.append(child.extract())
            html_el.append(body)
            soup.append(html_el)
        head = soup.new_tag("head")
        html_el.insert(0, head)
    head.insert(0, soup.new_tag("base", href="./"))


def _strip_inline_attrs(tag) -> None:
    for rm in STRIP_ON_INLINE:
        if rm in tag.attrs:
            del tag.attrs[rm]


def inline_assets(soup: BeautifulSoup, index: AssetIndex, base: Optional[str]) -> None:
    # document css first; stylesheets inlined below resolve against their own url
    for style in soup.find_all("style"):
        if style.string:
            new_text = rewrite_css_text(style.string, base, index)
            if new_text != style.string:
                style.string = new_text
    for tag in soup.find_all(style=True):
        new_css = rewrite_css_text(tag["style"], base, index)
        if new_css != tag["style"]:
            tag["style"] = new_css

    for link in soup.find_all("link", href=True):
        rels = link_rels(link)
        href = link["href"]
        if "stylesheet" in rels:
            asset = index.lookup(href, base)
            if asset is None:
                logging.debug("could not inline css %s: no content", href)
                continue
            style = soup.new_tag("style")
            if link.get("media"):
                style["media"] = link["media"]
            if is_data_uri(asset.content):
                style.string = f'@import url("{asset.content}");'
            else:
                style.string = rewrite_css_text(
                    asset.content, determine_base_url(asset.url), index, {asset.url}
                )
            link.replace_with(style)
        elif rels & ICON_RELS or "manifest" in rels:
            asset = index.lookup(href, base)
            if asset is not None:
                link["href"] = asset_data_uri(asset)
                _strip_inline_attrs(link)

    for script in soup.find_all("script", src=True):
        asset = index.lookup(script["src"], base)
        if asset is None:
            logging.debug("could not inline js %s: no content", script["src"])
            continue
        if is_data_uri(asset.content):
            script["src"] = asset.content
            _strip_inline_attrs(script)
            continue
        inline = soup.new_tag("script")
        for k, v in script.attrs.items():
            if k.lower() != "src" and k.lower() not in STRIP_ON_INLINE:
                inline[k] = v
        inline.string = escape_script_content(asset.content)
        script.replace_with(inline)

    attr_map = {
        "img": ["src"],
        "input": ["src"],
        "video": ["src", "poster"],
        "audio": ["src"],
        "source": ["src"],
    }
    for tag_name, attrs in attr_map.items():
        for tag in soup.find_all(tag_name):
            if tag_name == "input" and (tag.get("type") or "").lower() != "image":
                continue
            for a in attrs:
                asset = index.lookup(tag.get(a), base)
                if asset is not None:
                    tag[a] = asset_data_uri(asset)
                    _strip_inline_attrs(tag)

    for tag in soup.find_all(["img", "source"], srcset=True):
        parts = []
        changed = False
        for candidate in SRCSET_SPLIT_RE.split(tag["srcset"].strip()):
            if not candidate:
                continue
            comp = WS_RE.split(candidate.strip())
            asset = index.lookup(comp[0], base)
            url_out = comp[0]
            if asset is not None:
                url_out = asset_data_uri(asset)
                changed = True
            parts.append(" ".join([url_out, *comp[1:]]))
        if changed:
            tag["srcset"] = ", ".join(parts)


def pack_html(html_content: str, assets: Iterable[Asset], base: Optional[str] = None) -> str:
    """Splice asset content into the markup and return the packed document."""
    if not html_content or not html_content.strip():
        logging.warning("packer received an empty document, returning a minimal shell")
        return MINIMAL_SHELL
    soup = bs4_parse(html_content)
    ensure_base_tag(soup)
    assets = list(assets)
    logging.debug("inlining %d asset(s) with content", sum(1 for a in assets if a.content))
    inline_assets(soup, AssetIndex(assets), base)
    packed = serialize_html(soup)
    logging.debug("packing complete: %d bytes", len(packed.encode("utf-8")))
    return packed


# -------------------- Multi-page bundle --------------------

SLUG_EXT_RE = re.compile(r"\.(html?|php|aspx?|jsp)$", re.IGNORECASE)
SLUG_SEP_RE = re.compile(r"[\s/?=&\\]+")
SLUG_DROP_RE = re.compile(r"[^\w.\-]+", re.ASCII)

ROUTER_SCRIPT = """
document.addEventListener('DOMContentLoaded', function () {
  var container = document.getElementById('page-container');
  function navigateTo(slug) {
    var template = document.getElementById('page-' + slug);
    if (!template || !container) return;
    container.innerHTML = '';
    container.appendChild(template.content.cloneNode(true));
    document.querySelectorAll('#main-nav a').forEach(function (link) {
      link.classList.toggle('active', link.getAttribute('data-page') === slug);
    });
    if (window.location.hash.substring(1) !== slug) {
      history.pushState(null, '', '#' + slug);
    }
  }
  window.addEventListener('hashchange', function () {
    var slug = window.location.hash.substring(1);
    if (document.getElementById('page-' + slug)) navigateTo(slug);
  });
  document.querySelectorAll('#main-nav a').forEach(function (link) {
    link.addEventListener('click', function (e) {
      e.preventDefault();
      navigateTo(this.getAttribute('data-page'));
    });
  });
  var initial = window.location.hash.substring(1);
  navigateTo(document.getElementById('page-' + initial) ? initial : container.getAttribute('data-default-page'));
});
"""


def slugify(url: str) -> str:
    if not url or not isinstance(url, str):
        return "index"
    try:
        p = urlsplit(urljoin("https://placeholder.base/", url.strip()))
        path = p.path + (f"?{p.query}" if p.query else "")
    except ValueError:
        path = url.strip().split("#")[0]
    cleaned = unquote(path)
    cleaned = SLUG_EXT_RE.sub("", cleaned)
    cleaned = SLUG_SEP_RE.sub("-", cleaned)
    cleaned = SLUG_DROP_RE.sub("", cleaned)
    cleaned = re.sub(r"-+", "-", cleaned).strip("-").lower()
    return cleaned or "index"


def bundle_multi_page_html(pages: Sequence[PageEntry]) -> str:
    valid: List[PageEntry] = []
    for page in pages or []:
        if isinstance(page, PageEntry) and isinstance(page.url, str) and isinstance(page.html, str):
            valid.append(page)
        else:
            logging.warning("skipping invalid page entry: %r", page)
    if not valid:
        raise ValueError("no valid page entries to bundle")
    logging.info("bundling %d page(s) into a multi-page document", len(valid))

    slugs: List[str] = []
    used: Set[str] = set()
    for page in valid:
        base_slug = slugify(page.url)
        slug = base_slug
        counter = 1
        while slug in used:
            slug = f"{base_slug}-{counter}"
            counter += 1
            logging.warning("slug collision for %s, using %s", page.url, slug)
        used.add(slug)
        slugs.append(slug)

    nav = []
    templates = []
    for page, slug in zip(valid, slugs):
        label = page.url.rstrip("/").split("/")[-1].split(".")[0] or "Page"
        nav.append(
            f'<a href="#{slug}" data-page="{slug}">{html_lib.escape(label)}</a>'
        )
        templates.append(f'<template id="page-{slug}">{page.html}</template>')

    nav_html = "\n    ".join(nav)
    templates_html = "\n  ".join(templates)
    output = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Multi-Page Bundle</title>
</head>
<body>
  <nav id="main-nav">
    {nav_html}
  </nav>
  <div id="page-container" data-default-page="{slugs[0]}"></div>
  {templates_html}
  <script id="router-script">{ROUTER_SCRIPT}</script>
</body>
</html>
"""
    logging.info("multi-page bundle generated: %d bytes", len(output.encode("utf-8")))
    return output


# -------------------- Crawl --------------------


def extract_anchor_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    base = effective_base_url(soup, base_url)
    urls: Dict[str, None] = {}
    for a in soup.select("a[href]"):
        href = a.get("href")
        if not can_fetch_url(href):
            continue
        urls[urljoin(base, href.strip())] = None
    return list(urls)


def fetch_page_html(session: requests.Session, url: str, timeout: float) -> Optional[str]:
    try:
        r = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        logging.warning("failed to fetch page %s: %s", url, e)
        return None
    if r.status_code >= 400:
        logging.warning("failed to fetch page %s -> HTTP %s", url, r.status_code)
        return None
    ct = (r.headers.get("Content-Type") or "").lower()
    if "text/html" not in ct and "application/xhtml+xml" not in ct:
        logging.debug("skipping non-html page %s (%s)", url, ct or "no content type")
        return None
    if not r.encoding or "charset" not in ct:
        r.encoding = r.apparent_encoding or "utf-8"
    return r.text


def crawl_website(
    start_url: str,
    max_depth: int = 1,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> List[PageEntry]:
    """Breadth-first crawl of same-origin pages, depth 1 being the start page."""
    settings = settings or Settings()
    try:
        p = urlsplit(start_url)
    except ValueError as e:
        raise ValueError(f"invalid start url: {start_url}") from e
    if p.scheme.lower() not in ("http", "https") or not p.netloc:
        raise ValueError(f"invalid start url: {start_url}")
    if max_depth <= 0:
        logging.warning("max depth is %d, no pages will be crawled", max_depth)
        return []
    session = session if session is not None else build_session(settings)

    start = urldefrag(start_url)[0]
    frontier: deque = deque([(start, 1)])
    visited: Set[str] = {start}
    pages: List[PageEntry] = []
    while frontier:
        url, depth = frontier.popleft()
        logging.info("fetch page depth=%d: %s", depth, url)
        html_text = fetch_page_html(session, url, settings.timeout)
        if html_text is None:
            continue
        pages.append(PageEntry(url=url, html=html_text))
        if depth >= max_depth:
            continue
        added = 0
        for link in extract_anchor_links(bs4_parse(html_text), url):
            link = urldefrag(link)[0]
            if urlsplit(link).scheme not in ("http", "https"):
                continue
            if not is_same_origin(start, link) or link in visited:
                continue
            visited.add(link)
            frontier.append((link, depth + 1))
            added += 1
        logging.debug("queued %d new link(s) from %s", added, url)
    logging.info("crawl found %d page(s)", len(pages))
    return pages


def recursively_bundle_site(
    start_url: str,
    max_depth: int = 1,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> Tuple[str, int]:
    settings = settings or Settings()
    session = session if session is not None else build_session(settings)
    pages = crawl_website(start_url, max_depth, settings, session)
    if not pages:
        logging.warning("crawl of %s found no pages", start_url)
    packed: List[PageEntry] = []
    for page in pages:
        page_fetcher = fetcher or ContentFetcher(session, settings.timeout)
        html, _ = process_html(page.html, page.url, settings, page_fetcher)
        packed.append(PageEntry(url=page.url, html=html))
    return bundle_multi_page_html(packed), len(pages)


# -------------------- Pipeline --------------------


class BuildTimer:
    def __init__(self, input_location: str):
        self.start = time.perf_counter()
        self.input = input_location
        self.pages_bundled: Optional[int] = None
        self.errors: List[str] = []

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def set_page_count(self, count: int) -> None:
        self.pages_bundled = count

    def finish(
        self,
        html: str,
        asset_count: int = 0,
        pages_bundled: Optional[int] = None,
        errors: Optional[List[str]] = None,
    ) -> BundleMetadata:
        combined = list(dict.fromkeys([*self.errors, *(errors or [])]))
        return BundleMetadata(
            input=self.input,
            asset_count=asset_count,
            output_size=len((html or "").encode("utf-8")),
            build_time_ms=int((time.perf_counter() - self.start) * 1000),
            pages_bundled=pages_bundled if pages_bundled is not None else self.pages_bundled,
            errors=combined,
        )


def process_html(
    html_text: str,
    location: Optional[str],
    settings: Optional[Settings] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> Tuple[str, ExtractionResult]:
    """Parse, extract, minify and pack one document already in memory."""
    settings = settings or Settings()
    parsed = parse_html(html_text)
    extracted = extract_assets(parsed, settings, location, fetcher)
    minified = minify_assets(extracted, settings)
    base = determine_base_url(location) if location else None
    return pack_html(minified.html_content, minified.assets, base), minified


def generate_portable_html(
    input_location: str,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> BuildResult:
    settings = settings or Settings()
    timer = BuildTimer(input_location)
    if fetcher is None:
        session = session if session is not None else build_session(settings)
        fetcher = ContentFetcher(session, settings.timeout)
    elif session is None:
        session = fetcher.session
    logging.info("processing %s", input_location)
    html_text = read_document(input_location, settings, session)
    html, extracted = process_html(html_text, settings.base_url or input_location, settings, fetcher)
    for issue in extracted.issues:
        timer.add_error(issue.describe())
    metadata = timer.finish(html, asset_count=len(extracted.assets))
    return BuildResult(html=html, metadata=metadata)


def generate_recursive_portable_html(
    url: str,
    depth: int = 1,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    fetcher: Optional[ContentFetcher] = None,
) -> BuildResult:
    settings = settings or Settings()
    timer = BuildTimer(url)
    html, pages = recursively_bundle_site(url, depth, settings, session, fetcher)
    timer.set_page_count(pages)
    return BuildResult(html=html, metadata=timer.finish(html))


def pack(input_location: str, settings: Optional[Settings] = None) -> BuildResult:
    settings = settings or Settings()
    if is_remote(input_location) and settings.recursive_depth:
        return generate_recursive_portable_html(
            input_location, settings.recursive_depth, settings
        )
    return generate_portable_html(input_location, settings)


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Union[str, int, float, bool, List[str]]]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        try:
            import tomllib  # py311+
        except ImportError:
            import tomli as tomllib  # backport
        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise RuntimeError("Top-level YAML must be a mapping")
            return data
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")


# -------------------- CLI --------------------

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "silent": logging.CRITICAL + 10,
    "none": logging.CRITICAL + 10,
}


def parse_recursive_value(value: str) -> int:
    try:
        depth = int(value)
    except ValueError:
        return 1
    return depth if depth >= 0 else 1


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portapack",
        description="Bundle HTML and its dependencies into a portable file.",
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    p.add_argument("input", nargs="?", default=None, help="input HTML file or URL")
    p.add_argument("-o", "--output", type=str, default=None, help="output file path")
    p.add_argument("-b", "--base-url", type=str, default=None, help="base URL for resolving relative links")
    p.add_argument("-d", "--dry-run", action="store_true", help="run without writing output")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--log-level", choices=sorted(LOG_LEVELS), default=None, help="logging level")

    # embedding
    p.add_argument(
        "-e", "--embed-assets", dest="embed_assets", action="store_true",
        help="embed assets as text or data URIs (default)",
    )
    p.add_argument(
        "--no-embed-assets", dest="embed_assets", action="store_false",
        help="keep asset links, only discover them",
    )

    # minification
    p.add_argument("-m", "--minify", dest="minify", action="store_true", help="minify HTML, CSS and JS (default)")
    p.add_argument("--no-minify", dest="minify", action="store_false", help="disable all minification")
    p.add_argument("--no-minify-html", dest="minify_html", action="store_false", help="disable HTML minification")
    p.add_argument("--no-minify-css", dest="minify_css", action="store_false", help="disable CSS minification")
    p.add_argument("--no-minify-js", dest="minify_js", action="store_false", help="disable JS minification")

    # crawl
    p.add_argument(
        "-r", "--recursive", nargs="?", const=1, default=None, type=parse_recursive_value,
        help="crawl same-origin links of a remote page (optional depth)",
    )
    p.add_argument("--max-depth", type=int, default=None, help="crawl depth (alias for -r N)")

    # fetch
    p.add_argument("--timeout", type=float, default=10.0, help="per-request timeout seconds")
    p.add_argument("--workers", type=int, default=8, help="concurrent fetches per batch")
    p.add_argument(
        "--max-iterations", type=int, default=1000,
        help="maximum discovery batches before giving up",
    )
    p.add_argument("--user-agent", type=str, default=None, help="User-Agent header")
    p.add_argument(
        "--header", action="append", default=[], help="extra request header 'Name: value'"
    )
    p.set_defaults(embed_assets=True, minify=True, minify_html=True, minify_css=True, minify_js=True)
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        if isinstance(cfg, dict):
            flat = {k: v for k, v in cfg.items() if not isinstance(v, dict)}
            for g in ("fetch", "minify", "crawl", "general"):
                if isinstance(cfg.get(g), dict):
                    flat.update(cfg[g])
            parser.set_defaults(**{k.replace("-", "_"): v for k, v in flat.items()})
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    depth = args.recursive
    if args.max_depth is not None and args.max_depth >= 0:
        depth = args.max_depth
    headers = args.header
    if isinstance(headers, str):
        headers = [headers]
    return Settings(
        embed_assets=bool(args.embed_assets),
        timeout=max(0.1, float(args.timeout)),
        base_url=args.base_url,
        max_iterations=max(1, int(args.max_iterations)),
        workers=max(1, int(args.workers)),
        minify_html=bool(args.minify and args.minify_html),
        minify_css=bool(args.minify and args.minify_css),
        minify_js=bool(args.minify and args.minify_js),
        recursive_depth=depth,
        user_agent=args.user_agent,
        extra_headers=list(headers or []),
    )


def resolve_log_level(args: argparse.Namespace) -> int:
    if args.log_level:
        return LOG_LEVELS[args.log_level]
    return logging.DEBUG if args.verbose else logging.INFO


def default_output_path(input_location: str) -> str:
    name = os.path.basename(input_location.rstrip("/"))
    return f"{name.split('.')[0] or 'output'}.packed.html"


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=resolve_log_level(args), format="%(levelname)s: %(message)s")

    if args.verbose:
        print(f"PortaPack v{__version__}")
    if not args.input:
        print("Missing input file or URL", file=sys.stderr)
        return 1

    settings = settings_from_args(args)
    output = args.output or default_output_path(args.input)
    if args.verbose:
        print(f"Input: {args.input}")
        print(f"Output: {output}")
        print(f"  Recursive: {settings.recursive_depth or False}")
        print(f"  Embed assets: {settings.embed_assets}")
        print(f"  Minify HTML: {settings.minify_html}")
        print(f"  Minify CSS: {settings.minify_css}")
        print(f"  Minify JS: {settings.minify_js}")

    if args.dry_run:
        print("Dry run mode: no output will be written")
        return 0

    try:
        result = pack(args.input, settings)
        Path(output).write_text(result.html, encoding="utf-8")
    except (DocumentError, ValueError, OSError, RuntimeError, requests.RequestException) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            logging.exception("build failed")
        return 1

    meta = result.metadata
    print(f"Packed: {meta.input} -> {output}")
    print(f"Size: {meta.output_size / 1024:.2f} KB")
    print(f"Time: {meta.build_time_ms} ms")
    print(f"Assets: {meta.asset_count}")
    if meta.pages_bundled:
        print(f"Pages: {meta.pages_bundled}")
    if meta.errors:
        print(f"\n{len(meta.errors)} warning(s):", file=sys.stderr)
        for err in meta.errors:
            print(f"  - {err}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
