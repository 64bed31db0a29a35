import asyncio
import os
import re
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set
from urllib.parse import unquote, urljoin, urlparse

from dotenv import load_dotenv
from rich.console import Console
from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from export import output_path, print_preview, write_csv
from models import NOT_AVAILABLE, ListingItem, ProductRow, placeholder_row


console = Console()

#
# High-level overview
# - Configuration: runtime knobs via environment variables (`Config`)
# - Data model: `ListingItem` per list-page candidate, `ProductRow` per output line
# - List page: scroll to trigger lazy loading, collect `/item/` links
# - Detail page: brand and yen price via tolerant selectors
# - Orchestrator: `scrape_buyma` drives the browser session
# - Entrypoint: `main` wires config, the optional URL argument and the CSV sink

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ITEM_LINK_SELECTOR = 'a[href*="/item/"]'
BRAND_SELECTOR = '[class*="brand"] a, [class*="Brand"] a, .product_Brand a'
PRICE_SELECTOR = '[class*="price"], .product_price, [class*="Price"]'
YEN_PRICE_RE = re.compile(r"¥[\d,]+")

# Pulls the raw attributes we need for each anchor in one round trip.
ITEM_LINK_JS = """
els => els.map(a => {
  const img = a.querySelector('img');
  return {
    href: a.getAttribute('href') || '',
    src: img ? (img.getAttribute('src') || '') : '',
    dataSrc: img ? (img.getAttribute('data-src') || '') : '',
    alt: img ? (img.getAttribute('alt') || '') : '',
  };
})
"""


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() == "true"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


@dataclass
class Config:
    base_url: str = "https://www.buyma.com"
    list_url: str = "https://www.buyma.com/r/-C3260/"
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    proxy_url: str = ""
    max_items: int = 30
    list_timeout_ms: int = 30000
    detail_timeout_ms: int = 15000
    list_settle_ms: int = 3000
    scroll_step_px: int = 500
    scroll_interval_ms: int = 200
    scroll_max_px: int = 5000
    post_scroll_ms: int = 2000
    detail_delay_ms: int = 1000
    output_dir: str = "."
    output_csv: str = ""

    @classmethod
    def from_env(cls) -> "Config":
        """Read overrides from the environment; unset variables keep defaults."""
        d = cls()
        return cls(
            base_url=os.getenv("BUYMA_BASE_URL", d.base_url),
            list_url=os.getenv("BUYMA_LIST_URL", d.list_url),
            user_agent=os.getenv("USER_AGENT", d.user_agent),
            headless=_env_bool("HEADLESS", d.headless),
            proxy_url=os.getenv("PROXY_URL", d.proxy_url),
            max_items=_env_int("MAX_ITEMS", d.max_items),
            list_timeout_ms=_env_int("LIST_TIMEOUT_MS", d.list_timeout_ms),
            detail_timeout_ms=_env_int("DETAIL_TIMEOUT_MS", d.detail_timeout_ms),
            list_settle_ms=_env_int("LIST_SETTLE_MS", d.list_settle_ms),
            scroll_step_px=_env_int("SCROLL_STEP_PX", d.scroll_step_px, minimum=1),
            scroll_interval_ms=_env_int("SCROLL_INTERVAL_MS", d.scroll_interval_ms),
            scroll_max_px=_env_int("SCROLL_MAX_PX", d.scroll_max_px, minimum=1),
            post_scroll_ms=_env_int("POST_SCROLL_MS", d.post_scroll_ms),
            detail_delay_ms=_env_int("DETAIL_DELAY_MS", d.detail_delay_ms),
            output_dir=os.getenv("OUTPUT_DIR", d.output_dir),
            output_csv=os.getenv("OUTPUT_CSV", d.output_csv),
        )


def _build_playwright_proxy(proxy_url: str) -> Optional[Dict[str, Any]]:
    if not proxy_url:
        return None
    try:
        parsed = urlparse(proxy_url)
        if not parsed.scheme or not parsed.hostname or not parsed.port:
            return None
    except ValueError:
        return None
    proxy: Dict[str, Any] = {
        "server": f"{parsed.scheme}://{parsed.hostname}:{parsed.port}",
    }
    if parsed.username:
        proxy["username"] = unquote(parsed.username)
    if parsed.password:
        proxy["password"] = unquote(parsed.password)
    return proxy


def _normalize_image_url(src: str) -> str:
    src = src.strip()
    if src.startswith("//"):
        return f"https:{src}"
    return src


def to_absolute_url(href: str, base_url: str) -> str:
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return urljoin(base_url if base_url.endswith("/") else base_url + "/", href)


def build_listing_items(raw_links: List[Dict[str, str]], base_url: str) -> List[ListingItem]:
    """Turn raw anchor attributes into unique listing candidates.

    The first anchor seen for a URL decides it: if that anchor has neither
    an image nor an alt text the URL is dropped, even when a later anchor
    for the same item carries the picture.
    """
    items: List[ListingItem] = []
    seen: Set[str] = set()
    for raw in raw_links:
        href = (raw.get("href") or "").strip()
        if not href or "/item/" not in href:
            continue
        url = to_absolute_url(href, base_url)
        if url in seen:
            continue
        seen.add(url)

        image_url = _normalize_image_url(raw.get("src") or raw.get("dataSrc") or "")
        name = (raw.get("alt") or "").strip()
        if not image_url and not name:
            continue
        items.append(ListingItem(name=name or NOT_AVAILABLE, url=url, image_url=image_url))
    return items


def extract_price(text: str) -> str:
    """Keep just the yen amount when the price block has extra copy
    ("¥12,800 送料込" -> "¥12,800")."""
    text = (text or "").strip()
    m = YEN_PRICE_RE.search(text)
    return m.group(0) if m else text


async def read_first_text(page: Page, selector: str, timeout_ms: int) -> str:
    loc = page.locator(selector)
    if await loc.count() == 0:
        return ""
    txt = await loc.first.text_content(timeout=timeout_ms)
    return (txt or "").strip()


async def scroll_to_load(page: Page, cfg: Config) -> int:
    """Scroll down in fixed steps until the page bottom or the distance cap,
    giving lazy-loaded tiles time to render. Returns the distance scrolled."""
    step = max(cfg.scroll_step_px, 1)
    total = 0
    while True:
        await asyncio.sleep(cfg.scroll_interval_ms / 1000.0)
        await page.evaluate("step => window.scrollBy(0, step)", step)
        total += step
        height = await page.evaluate("document.body.scrollHeight")
        if total >= (height or 0) or total > cfg.scroll_max_px:
            return total


async def collect_listing_items(page: Page, url: str, cfg: Config) -> List[ListingItem]:
    """Load the list page, trigger lazy loading and return item candidates."""
    console.log(f"Navigating to list page: {url}")
    await page.goto(url, wait_until="networkidle", timeout=cfg.list_timeout_ms)
    await asyncio.sleep(cfg.list_settle_ms / 1000.0)

    scrolled = await scroll_to_load(page, cfg)
    console.log(f"Scrolled {scrolled}px to trigger lazy loading")
    await asyncio.sleep(cfg.post_scroll_ms / 1000.0)

    raw_links = await page.eval_on_selector_all(ITEM_LINK_SELECTOR, ITEM_LINK_JS)
    items = build_listing_items(raw_links or [], cfg.base_url)
    console.log(f"Discovered {len(items)} product links")
    return items


async def scrape_item_details(page: Page, item: ListingItem, cfg: Config) -> ProductRow:
    """Visit a detail page and read brand and price. Raises on navigation
    or extraction errors; the caller decides how to recover."""
    await page.goto(item.url, wait_until="domcontentloaded", timeout=cfg.detail_timeout_ms)
    await asyncio.sleep(cfg.detail_delay_ms / 1000.0)

    brand = await read_first_text(page, BRAND_SELECTOR, cfg.detail_timeout_ms)
    price = extract_price(await read_first_text(page, PRICE_SELECTOR, cfg.detail_timeout_ms))
    return ProductRow(
        name=item.name,
        brand=brand or NOT_AVAILABLE,
        price=price or NOT_AVAILABLE,
        url=item.url,
        image_url=item.image_url,
    )


async def scrape_items(page: Page, items: List[ListingItem], cfg: Config) -> List[ProductRow]:
    """Visit up to `cfg.max_items` detail pages in order. A failing page
    yields a placeholder row instead of stopping the run."""
    limit = min(len(items), max(cfg.max_items, 0))
    rows: List[ProductRow] = []
    for i, item in enumerate(items[:limit], start=1):
        console.log(f"Fetching details {i}/{limit}: {item.url}")
        try:
            row = await scrape_item_details(page, item, cfg)
        except Exception as e:
            console.log(f"Detail page failed for {item.url}: {e}")
            row = placeholder_row(item)
        rows.append(row)
    return rows


async def scrape_buyma(url: str, cfg: Config) -> List[ProductRow]:
    """Run one full pass: launch the browser, read the list page, then each
    detail page. The browser is closed even if the list page fails."""
    async with async_playwright() as p:
        launch_kwargs: Dict[str, Any] = {
            "headless": cfg.headless,
            "args": [
                "--no-sandbox",
                "--disable-setuid-sandbox",
                "--disable-blink-features=AutomationControlled",
            ],
        }
        proxy_conf = _build_playwright_proxy(cfg.proxy_url)
        if proxy_conf:
            launch_kwargs["proxy"] = proxy_conf
        console.log("Launching browser")
        browser: Browser = await p.chromium.launch(**launch_kwargs)
        try:
            context: BrowserContext = await browser.new_context(user_agent=cfg.user_agent)
            page: Page = await context.new_page()
            items = await collect_listing_items(page, url, cfg)
            rows = await scrape_items(page, items, cfg)
            await context.close()
        finally:
            await browser.close()
    return rows


def load_env() -> None:
    # Load from .env if present
    load_dotenv()


async def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint: load configuration, choose the list URL, scrape and write
    the CSV. Returns the process exit status."""
    load_env()
    try:
        cfg = Config.from_env()
    except ValueError as e:
        console.log(f"Invalid configuration: {e}")
        return 1

    args = sys.argv[1:] if argv is None else argv
    start_url = args[0] if args else cfg.list_url

    console.log("Starting BUYMA scrape")
    try:
        products = await scrape_buyma(start_url, cfg)
    except Exception as e:
        console.log(f"Fatal error: {e}")
        return 1

    if not products:
        console.print("No products found.")
        return 0

    console.log(f"Scraped {len(products)} products")
    csv_path = output_path(cfg.output_dir, cfg.output_csv)
    try:
        write_csv(csv_path, products)
    except OSError as e:
        console.log(f"Fatal error: could not write {csv_path}: {e}")
        return 1
    console.print(f"CSV written: {csv_path}")
    print_preview(products)
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        console.log("Interrupted by user")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    run()
