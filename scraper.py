import asyncio
import os
import sys
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Protocol, Tuple

from dotenv import load_dotenv
from playwright.async_api import Browser, BrowserContext, Error as PWError, Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeout
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from errors import BlockedError, RenderError
from extract import (
    DEFAULT_SELECTORS,
    Selectors,
    extract_catalog_items,
    extract_detail,
    extract_listing_urls,
    is_blocked_title,
    page_title,
)
from models import CrawlFailure, CrawlResult, Product, Sku
from storage import JsonSink


console = Console()

#
# High-level overview
# - Configuration: explicit `Config` passed to the orchestrators, env overrides
# - Renderer: one Chromium per run, one fresh context per fetch
# - Detail profile (`crawl`): listing pages in order, detail pages through a
#   semaphore, Product + Sku records
# - Catalog profile (`crawl_catalog`): listing pages only, CatalogProduct
#   records, anti-bot title check
# - Sink: JSON arrays under `output_dir`
# - Entrypoint: `main` wires config, runs the profile, prints a summary


@dataclass
class Config:
    base_url: str = "https://havaianas.com.br/collections/todos"
    site_origin: str = "https://havaianas.com.br"
    total_pages: int = 5
    delay_ms: int = 2000
    wait_timeout_ms: int = 30000
    concurrency: int = 5
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/112.0.0.0 Safari/537.36"
    )
    viewport_width: int = 1280
    viewport_height: int = 720
    accept_language: str = "en-US,en;q=0.9"
    output_dir: str = "storage"
    profile: str = "detail"
    block_markers: Tuple[str, ...] = ("Attention Required", "blocked")
    headless: bool = True
    selectors: Selectors = field(default_factory=lambda: DEFAULT_SELECTORS)

    @classmethod
    def from_env(cls) -> "Config":
        d = cls()
        return cls(
            base_url=os.getenv("BASE_URL", d.base_url),
            site_origin=os.getenv("SITE_ORIGIN", d.site_origin),
            total_pages=int(os.getenv("TOTAL_PAGES", str(d.total_pages))),
            delay_ms=int(os.getenv("DELAY_MS", str(d.delay_ms))),
            wait_timeout_ms=int(os.getenv("WAIT_TIMEOUT_MS", str(d.wait_timeout_ms))),
            concurrency=int(os.getenv("CONCURRENCY", str(d.concurrency))),
            user_agent=os.getenv("USER_AGENT", d.user_agent),
            output_dir=os.getenv("OUTPUT_DIR", d.output_dir),
            profile=os.getenv("CRAWL_PROFILE", d.profile),
            headless=os.getenv("HEADLESS", "true").lower() == "true",
        )


class Renderer(Protocol):
    async def render(self, url: str, wait_selector: str, timeout_ms: int) -> str:
        ...


class PlaywrightRenderer:
    """Renders each URL in its own browser context, closed after use."""

    def __init__(self, browser: Browser, cfg: Config) -> None:
        self.browser = browser
        self.cfg = cfg

    def _context_args(self) -> Dict[str, Any]:
        return {
            "user_agent": self.cfg.user_agent,
            "viewport": {"width": self.cfg.viewport_width, "height": self.cfg.viewport_height},
            "extra_http_headers": {"Accept-Language": self.cfg.accept_language},
        }

    async def render(self, url: str, wait_selector: str, timeout_ms: int) -> str:
        context: BrowserContext = await self.browser.new_context(**self._context_args())
        try:
            page: Page = await context.new_page()
            try:
                await page.goto(url, wait_until="load", timeout=timeout_ms)
                title = await page.title()
                if is_blocked_title(title, self.cfg.block_markers):
                    raise BlockedError(f"blocked by anti-bot page (title: {title})")
                await page.wait_for_selector(wait_selector, timeout=timeout_ms)
                return await page.content()
            finally:
                await page.close()
        except PlaywrightTimeout as e:
            raise RenderError(f"timeout after {timeout_ms}ms rendering {url}: {e}") from e
        except PWError as e:
            raise RenderError(f"navigation failed for {url}: {e}") from e
        finally:
            await context.close()


def listing_url(base_url: str, page_number: int) -> str:
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}page={page_number}"


async def delay(ms: int) -> None:
    await asyncio.sleep(ms / 1000.0)


def _failure(scope: str, target: Any, exc: BaseException) -> CrawlFailure:
    return CrawlFailure(scope=scope, target=target, reason=type(exc).__name__, message=str(exc))


async def fetch_detail(
    href: str,
    cfg: Config,
    renderer: Renderer,
    limiter: asyncio.Semaphore,
    failures: List[CrawlFailure],
    out: Console = console,
) -> Optional[Tuple[Product, List[Sku]]]:
    """Render and extract one detail page while holding a limiter permit.

    Any failure is logged with the URL and yields None.
    """
    async with limiter:
        try:
            html = await renderer.render(href, cfg.selectors.detail_ready, cfg.wait_timeout_ms)
            product, skus = extract_detail(html, href, cfg.selectors)
        except Exception as e:
            out.log(f"Detail failed for {href}: {type(e).__name__}: {escape(str(e))}")
            failures.append(_failure("detail", href, e))
            return None
    out.log(f"Extracted product {product.code} with {len(skus)} skus from {href}")
    return product, skus


async def crawl(
    cfg: Config,
    renderer: Renderer,
    sink: Optional[JsonSink] = None,
    out: Console = console,
) -> CrawlResult:
    """Orchestrate the detail crawl: listing pages one after another, detail
    pages of each listing concurrently (bounded by `cfg.concurrency`), then
    write products and skus once at the end."""
    started = time.monotonic()
    result = CrawlResult()
    limiter = asyncio.Semaphore(cfg.concurrency)

    for page_number in range(1, cfg.total_pages + 1):
        url = listing_url(cfg.base_url, page_number)
        out.log(f"Fetching listing page {page_number}: {url}")
        try:
            html = await renderer.render(url, cfg.selectors.product_grid, cfg.wait_timeout_ms)
            hrefs = extract_listing_urls(html, cfg.site_origin, cfg.selectors)
        except Exception as e:
            out.log(f"Error fetching page {page_number}: {type(e).__name__}: {escape(str(e))}")
            result.failures.append(_failure("page", page_number, e))
        else:
            result.pages_processed += 1
            out.log(f"Page {page_number} listed {len(hrefs)} product links")
            units = [fetch_detail(h, cfg, renderer, limiter, result.failures, out) for h in hrefs]
            for outcome in await asyncio.gather(*units):
                if outcome is None:
                    continue
                product, skus = outcome
                result.products.append(product)
                result.skus.extend(skus)

        if page_number < cfg.total_pages:
            await delay(cfg.delay_ms)

    result.elapsed_seconds = time.monotonic() - started
    out.log(
        f"Crawl finished in {result.elapsed_seconds:.1f}s: "
        f"{len(result.products)} products, {len(result.skus)} skus, {len(result.failures)} failures"
    )
    if sink is not None:
        out.log(f"Saved {len(result.products)} products to {sink.write_products(result.products)}")
        out.log(f"Saved {len(result.skus)} skus to {sink.write_skus(result.skus)}")
    return result


async def crawl_catalog(
    cfg: Config,
    renderer: Renderer,
    sink: Optional[JsonSink] = None,
    out: Console = console,
) -> CrawlResult:
    """Enumerate products straight from the listing grid, skipping pages that
    come back as an anti-bot challenge."""
    started = time.monotonic()
    result = CrawlResult()

    for page_number in range(1, cfg.total_pages + 1):
        url = listing_url(cfg.base_url, page_number)
        out.log(f"Fetching catalog page {page_number}: {url}")
        try:
            html = await renderer.render(url, cfg.selectors.catalog_item, cfg.wait_timeout_ms)
            # renderers other than PlaywrightRenderer may hand back the challenge page itself
            title = page_title(html)
            if is_blocked_title(title, cfg.block_markers):
                raise BlockedError(f"blocked by anti-bot page (title: {title})")
            items = extract_catalog_items(html, cfg.selectors)
        except Exception as e:
            out.log(f"Error fetching page {page_number}: {type(e).__name__}: {escape(str(e))}")
            result.failures.append(_failure("page", page_number, e))
        else:
            result.pages_processed += 1
            out.log(f"Page {page_number} returned {len(items)} products")
            result.products.extend(items)

        if page_number < cfg.total_pages:
            await delay(cfg.delay_ms)

    result.elapsed_seconds = time.monotonic() - started
    out.log(f"Total products extracted: {len(result.products)} in {result.elapsed_seconds:.1f}s")
    if sink is not None:
        out.log(f"Saved {len(result.products)} products to {sink.write_products(result.products)}")
    return result


async def run(cfg: Config, out: Console = console) -> CrawlResult:
    """Launch the browser once and run the configured profile. A launch
    failure propagates and aborts the run."""
    sink = JsonSink(cfg.output_dir)
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=cfg.headless)
        try:
            renderer = PlaywrightRenderer(browser, cfg)
            if cfg.profile == "catalog":
                return await crawl_catalog(cfg, renderer, sink, out)
            return await crawl(cfg, renderer, sink, out)
        finally:
            await browser.close()


def summary_table(result: CrawlResult) -> Table:
    table = Table(title="Crawling concluído")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Pages processed", str(result.pages_processed))
    table.add_row("Products", str(len(result.products)))
    table.add_row("Skus", str(len(result.skus)))
    table.add_row("Failures", str(len(result.failures)))
    table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
    return table


def load_env() -> None:
    # Load from .env if present
    load_dotenv()


def parse_args(argv: List[str], cfg: Config) -> Config:
    """argv[1] selects the profile ("detail" or "catalog"), argv[2] the page count."""
    if len(argv) > 1:
        if argv[1] not in ("detail", "catalog"):
            raise SystemExit(f"unknown profile {argv[1]!r}; expected 'detail' or 'catalog'")
        cfg = replace(cfg, profile=argv[1])
    if len(argv) > 2 and argv[2].isdigit():
        cfg = replace(cfg, total_pages=int(argv[2]))
    return cfg


async def main() -> None:
    """Entrypoint: load configuration, run the crawl, print the summary."""
    load_env()
    cfg = parse_args(sys.argv, Config.from_env())
    result = await run(cfg)
    console.print(summary_table(result))
    for f in result.failures:
        console.print(f"[red]{f.scope} {escape(str(f.target))}[/red]: {f.reason}: {escape(f.message)}")


def cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.log("Interrupted by user")
    except Exception as e:
        console.log(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
