from __future__ import annotations

import argparse
import csv
import dataclasses
import io
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

try:
    import config  # type: ignore
except Exception:  # pragma: no cover
    config = None  # type: ignore


logger = logging.getLogger("image_crawler")

CSV_HEADER = ("ImageURL", "Width", "Height", "SizeKB", "SourcePage")
UNKNOWN_SIZE = "Unknown"
DEFAULT_START_URL = "https://jaslangdon.com/"
DEFAULT_OUTPUT_CSV = "image-detailsPlus.csv"
MAX_INTERNAL_LINKS = 10
PROBE_TIMEOUT_SECONDS = 5.0
NAV_TIMEOUT_SECONDS = 30
DEFAULT_PORTS = {"http": 80, "https": 443}
USER_AGENT = "image-crawler/1.0 (+https://example.local)"


class CrawlError(RuntimeError):
    """A failure that aborts the whole crawl."""


class NavigationError(CrawlError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


@dataclass(frozen=True)
class ImageRecord:
    url: str
    width: int
    height: int
    size_kb: Optional[int]
    source_page: str

    def csv_row(self) -> Tuple[str, int, int, Any, str]:
        size = self.size_kb if self.size_kb is not None else UNKNOWN_SIZE
        return (self.url, self.width, self.height, size, self.source_page)


@dataclass(frozen=True)
class PageImage:
    url: str
    width: int
    height: int


@dataclass(frozen=True)
class RenderedPage:
    requested_url: str
    final_url: str
    status_code: int
    html: str = ""
    images: Tuple[Dict[str, Any], ...] = tuple()


@dataclass
class CrawlStats:
    """Counters for items the crawl absorbed instead of failing on."""

    pages_visited: int = 0
    pages_failed: int = 0
    links_found: int = 0
    links_dropped: int = 0
    images_found: int = 0
    images_skipped: int = 0
    sizes_unknown: int = 0

    def summary(self) -> str:
        return ", ".join(f"{f.name}={getattr(self, f.name)}" for f in dataclasses.fields(self))


@dataclass
class CrawlResult:
    records: List[ImageRecord]
    pages: List[str]
    stats: CrawlStats


def _get_cfg(name: str, default: Any) -> Any:
    if config is not None and hasattr(config, name):
        value = getattr(config, name)
        if value not in (None, ""):
            return value
    return os.getenv(name, default)


# === URL HANDLING / LINK COLLECTOR ===


def origin_of(url: str) -> Optional[Tuple[str, str, int]]:
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()
    if not host:
        return None
    scheme = parsed.scheme.lower()
    if port is None:
        port = DEFAULT_PORTS.get(scheme, 0)
    return scheme, host, port


def _origin_base(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), "/", "", "", ""))


def normalize_root_url(raw: str) -> str:
    """Turn user input into an absolute root URL.

    Values that do not start with ``http`` get an ``https://`` prefix, and an
    empty path becomes ``/``. Scheme and host are lowercased so the root
    compares equal to a resolved ``/`` link on the same site.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("No URL provided")
    if not raw.startswith("http"):
        raw = f"https://{raw}"
    parsed = urlparse(raw)
    if origin_of(raw) is None:
        raise ValueError(f"Invalid root URL: {raw}")
    parsed = parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower(), path=parsed.path or "/")
    return urlunparse(parsed)


def normalize_and_filter_links(
    hrefs: Iterable[str],
    root_url: str,
    limit: int = MAX_INTERNAL_LINKS,
    stats: Optional[CrawlStats] = None,
) -> List[str]:
    """Resolve hrefs against the root's origin and keep same-origin ones.

    Order is first-seen, duplicates (exact string) are dropped and the result
    is truncated to ``limit`` entries.
    """
    root_origin = origin_of(root_url)
    if root_origin is None:
        raise ValueError(f"Invalid root URL: {root_url}")
    base = _origin_base(root_url)

    seen = set()
    out: List[str] = []
    for href in hrefs:
        if href is None:
            continue
        try:
            full = urljoin(base, href.strip())
        except ValueError:
            full = ""
        if not full or origin_of(full) != root_origin:
            if stats is not None:
                stats.links_dropped += 1
            continue
        parsed = urlparse(full)
        full = urlunparse(parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower(), path=parsed.path or "/"))
        if full in seen:
            continue
        seen.add(full)
        out.append(full)
    return out[: max(0, limit)]


def extract_links(html: str) -> List[str]:
    soup = BeautifulSoup(html or "", "html.parser")
    return [a["href"] for a in soup.find_all("a", href=True)]


def collect_internal_links(
    session: "BrowserSession",
    root_url: str,
    limit: int = MAX_INTERNAL_LINKS,
    stats: Optional[CrawlStats] = None,
) -> List[str]:
    rendered = session.render(root_url)
    hrefs = extract_links(rendered.html)
    if stats is not None:
        stats.links_found += len(hrefs)
    links = normalize_and_filter_links(hrefs, root_url, limit=limit, stats=stats)
    logger.info("Found %d internal link(s) on %s", len(links), root_url)
    return links


# === BROWSER SESSION / PAGE VISITOR ===


IMAGES_JS = """() => Array.from(document.querySelectorAll('img')).map((el) => ({
  src: el.src || '',
  data_src: el.getAttribute('data-src') || '',
  natural_width: el.naturalWidth || 0,
  natural_height: el.naturalHeight || 0,
}))"""


class BrowserSession:
    """One headless Chromium instance, owned by a single crawl run."""

    def __init__(self, timeout_seconds: float = NAV_TIMEOUT_SECONDS, headless: bool = True, wait_after_load: float = 0.0) -> None:
        self._timeout_ms = int(timeout_seconds * 1000)
        self._headless = headless
        self._wait_after_load_ms = int(wait_after_load * 1000)
        self._pw = None
        self._browser = None
        self._context = None

    def __enter__(self) -> "BrowserSession":
        try:
            from playwright.sync_api import sync_playwright  # type: ignore
        except Exception as e:  # pragma: no cover
            raise CrawlError(
                "Playwright is not available. Run: python -m pip install playwright "
                "and then: python -m playwright install chromium"
            ) from e

        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(
                headless=self._headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._context = self._browser.new_context(user_agent=USER_AGENT)
        except Exception as e:
            self.close()
            raise CrawlError(f"Failed to launch Chromium: {e}") from e
        logger.info("Browser launched")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
        finally:
            try:
                if self._browser is not None:
                    self._browser.close()
            finally:
                if self._pw is not None:
                    self._pw.stop()
                self._pw = self._browser = self._context = None
        logger.debug("Browser closed")

    def render(self, url: str) -> RenderedPage:
        if self._context is None:
            raise CrawlError("Browser session is not open")
        page = None
        try:
            page = self._context.new_page()
            resp = page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
            try:
                page.wait_for_load_state("networkidle", timeout=min(5000, self._timeout_ms))
            except Exception:
                logger.debug("Network did not go idle on %s", url)
            if self._wait_after_load_ms:
                page.wait_for_timeout(self._wait_after_load_ms)

            images = page.evaluate(IMAGES_JS)
            return RenderedPage(
                requested_url=url,
                final_url=page.url or url,
                status_code=int(resp.status) if resp is not None else 0,
                html=page.content(),
                images=tuple(images) if isinstance(images, list) else tuple(),
            )
        except Exception as e:
            raise NavigationError(url, str(e)) from e
        finally:
            if page is not None:
                try:
                    page.close()
                except Exception:
                    logger.debug("Could not close page for %s", url)


def extract_images(rendered: RenderedPage, stats: Optional[CrawlStats] = None) -> List[PageImage]:
    images: List[PageImage] = []
    for raw in rendered.images:
        src = str(raw.get("src") or "").strip()
        if not src:
            data_src = str(raw.get("data_src") or "").strip()
            src = urljoin(rendered.final_url, data_src) if data_src else ""
        if not src:
            if stats is not None:
                stats.images_skipped += 1
            continue
        images.append(
            PageImage(
                url=src,
                width=max(0, int(raw.get("natural_width") or 0)),
                height=max(0, int(raw.get("natural_height") or 0)),
            )
        )
    return images


# === SIZE PROBER ===


def _bytes_to_kb(num_bytes: int) -> int:
    # Half rounds up.
    return (num_bytes + 512) // 1024


def probe_size_kb(
    image_url: str,
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
    session: Optional[requests.Session] = None,
) -> Optional[int]:
    """HEAD the image and return its Content-Length in KB, or None if unknown."""
    http = session or requests
    try:
        r = http.head(
            image_url,
            timeout=timeout_seconds,
            allow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        cl = str(r.headers.get("Content-Length") or "").strip()
    except Exception as e:
        logger.debug("HEAD %s failed: %s", image_url, e)
        return None
    if not (cl.isascii() and cl.isdigit()):
        return None
    return _bytes_to_kb(int(cl))


class SizeProber:
    """Probes each distinct image URL at most once per run."""

    def __init__(self, timeout_seconds: float = PROBE_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds
        self._session = requests.Session()
        self._cache: Dict[str, Optional[int]] = {}

    def __call__(self, image_url: str) -> Optional[int]:
        if image_url not in self._cache:
            self._cache[image_url] = probe_size_kb(image_url, self.timeout_seconds, session=self._session)
        return self._cache[image_url]

    def close(self) -> None:
        self._session.close()


# === REPORTER ===


def to_csv(records: Iterable[ImageRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for rec in records:
        writer.writerow(rec.csv_row())
    return buf.getvalue()


def write_csv(path: str | os.PathLike, records: List[ImageRecord], skip_empty: bool = True) -> Optional[Path]:
    """Write records to ``path``.

    With ``skip_empty`` (the CLI policy) nothing is written when there are no
    records; otherwise a header-only file is written.
    """
    if not records and skip_empty:
        logger.warning("No image data to save")
        return None
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(to_csv(records), encoding="utf-8")
    logger.info("Saved data for %d image(s) to %s", len(records), out)
    return out


# === CRAWL ===


def crawl(
    session: BrowserSession,
    root_url: str,
    max_links: int = MAX_INTERNAL_LINKS,
    prober: Optional[Callable[[str], Optional[int]]] = None,
) -> CrawlResult:
    root_url = normalize_root_url(root_url)
    prober = prober or SizeProber()
    stats = CrawlStats()

    logger.info("Crawling from: %s", root_url)
    links = collect_internal_links(session, root_url, limit=max_links, stats=stats)
    pages = list(dict.fromkeys([root_url, *links]))

    records: List[ImageRecord] = []
    for page_url in pages:
        logger.info("Scraping page: %s", page_url)
        try:
            rendered = session.render(page_url)
        except NavigationError as e:
            if page_url == root_url:
                raise
            logger.warning("Skipping %s: %s", page_url, e.reason)
            stats.pages_failed += 1
            continue
        stats.pages_visited += 1

        for img in extract_images(rendered, stats=stats):
            size_kb = prober(img.url)
            if size_kb is None:
                stats.sizes_unknown += 1
            records.append(
                ImageRecord(
                    url=img.url,
                    width=img.width,
                    height=img.height,
                    size_kb=size_kb,
                    source_page=page_url,
                )
            )

    stats.images_found = len(records)
    logger.info("Crawl finished: %s", stats.summary())
    return CrawlResult(records=records, pages=pages, stats=stats)


def run_crawl(
    root_url: str,
    timeout_seconds: float = NAV_TIMEOUT_SECONDS,
    headless: bool = True,
    probe_timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
    max_links: int = MAX_INTERNAL_LINKS,
) -> CrawlResult:
    prober = SizeProber(timeout_seconds=probe_timeout_seconds)
    try:
        with BrowserSession(timeout_seconds=timeout_seconds, headless=headless) as session:
            return crawl(session, root_url, max_links=max_links, prober=prober)
    finally:
        prober.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Crawl a page and its internal links, exporting image URLs, dimensions and sizes as CSV."
    )
    parser.add_argument("--start", default=_get_cfg("START_URL", DEFAULT_START_URL))
    parser.add_argument("--out-csv", default=_get_cfg("OUTPUT_CSV", DEFAULT_OUTPUT_CSV))
    parser.add_argument("--timeout", type=float, default=float(_get_cfg("NAV_TIMEOUT_SECONDS", NAV_TIMEOUT_SECONDS)))
    parser.add_argument(
        "--probe-timeout",
        type=float,
        default=float(_get_cfg("PROBE_TIMEOUT_SECONDS", PROBE_TIMEOUT_SECONDS)),
        help="Timeout for each image HEAD request (seconds).",
    )
    parser.add_argument("--max-links", type=int, default=int(_get_cfg("MAX_LINKS", MAX_INTERNAL_LINKS)))
    parser.add_argument("--headed", action="store_true", help="Use visible Chromium window (debug).")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        result = run_crawl(
            args.start,
            timeout_seconds=args.timeout,
            headless=(not args.headed),
            probe_timeout_seconds=args.probe_timeout,
            max_links=args.max_links,
        )
    except (CrawlError, ValueError):
        logger.exception("Error during crawling")
        return 1

    out = write_csv(args.out_csv, result.records)
    print(f"Crawled {len(result.pages)} pages.")
    if out is not None:
        print(f"Wrote {len(result.records)} images to {out}")
    if result.stats.sizes_unknown:
        print(f"Note: size unknown for {result.stats.sizes_unknown} image(s).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
