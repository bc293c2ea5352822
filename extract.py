"""HTML extraction for the catalog crawler.

Two independent profiles live here and never share selector logic:

- detail profile: listing grid -> detail URLs, detail page -> Product + Skus
  (data read from the inline ``var product = {...};`` script)
- catalog profile: listing grid -> CatalogProduct entries read from
  ``data-*`` attributes, no detail traversal
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from errors import ExtractionError
from models import CatalogProduct, Product, Sku, SkuSpecification, now_iso


@dataclass(frozen=True)
class Selectors:
    # detail profile
    product_grid: str = "#product-grid"
    grid_link: str = "a"
    detail_ready: str = "div.product__info-container"
    media: str = ".product__media-list"
    media_image: str = "img"
    accordion: str = ".product__accordion"
    accordion_title: str = ".accordion__title"
    accordion_content: str = ".accordion__content"
    # catalog profile
    catalog_item: str = "li.grid__item"
    catalog_card: str = "div.product-card"
    catalog_info: str = "div.product-info"
    catalog_sku: str = "[data-sku]"


DEFAULT_SELECTORS = Selectors()

PRODUCT_MARKER_RE = re.compile(r"var\s+product\s*=")
PRODUCT_ASSIGNMENT_RE = re.compile(r"var\s+product\s*=\s*(\{.*\})\s*;", re.DOTALL)
SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")

COLOR_SPEC = "Cor"
SIZE_SPEC = "Tamanho"
EXCLUDED_SPEC = "descrição"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _clean_text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return re.sub(r"\s+", " ", el.get_text(" ")).strip()


def absolutize(href: str, site_origin: str) -> str:
    """Prefix a relative href with the site origin; absolute hrefs pass through."""
    href = href.strip()
    if href.startswith("//"):
        return f"https:{href}"
    if SCHEME_RE.match(href):
        return href
    origin = site_origin.rstrip("/")
    if not href.startswith("/"):
        href = "/" + href
    return origin + href


def https_image_url(src: str) -> str:
    if src.startswith("//"):
        return f"https:{src}"
    return src


def strip_markup(html: Optional[str]) -> str:
    if not html:
        return ""
    return re.sub(r"\s+", " ", _soup(html).get_text(" ")).strip()


# --- detail profile -------------------------------------------------------


def extract_listing_urls(
    html: str,
    site_origin: str,
    selectors: Selectors = DEFAULT_SELECTORS,
) -> List[str]:
    """Return detail URLs linked from the product grid, in document order.

    Only anchors inside the grid container are considered; duplicates are
    kept as found.
    """
    soup = _soup(html)
    urls: List[str] = []
    for grid in soup.select(selectors.product_grid):
        for anchor in grid.select(selectors.grid_link):
            href = anchor.get("href")
            if not href or not href.strip():
                continue
            urls.append(absolutize(href, site_origin))
    return urls


def find_product_script(soup: BeautifulSoup) -> str:
    for script in soup.find_all("script"):
        text = script.string or script.get_text()
        if text and PRODUCT_MARKER_RE.search(text):
            return text
    raise ExtractionError("no inline script with 'var product =' found")


def decode_product_json(script_text: str) -> Dict[str, Any]:
    """Decode the object literal assigned to ``product`` in a script body."""
    m = PRODUCT_ASSIGNMENT_RE.search(script_text)
    if not m:
        raise ExtractionError("'var product =' assignment has no object literal")
    try:
        data, _ = json.JSONDecoder().raw_decode(m.group(1))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"embedded product JSON is invalid: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError("embedded product JSON is not an object")
    return data


def _image_src(img: Tag) -> str:
    src = img.get("src") or img.get("data-src") or ""
    if not src:
        srcset = img.get("srcset") or ""
        parts = [p.strip() for p in srcset.split(",") if p.strip()]
        if parts:
            src = parts[0].split(" ")[0]
    return src.strip()


def extract_images(soup: BeautifulSoup, selectors: Selectors = DEFAULT_SELECTORS) -> Tuple[str, ...]:
    images: List[str] = []
    for media in soup.select(selectors.media):
        for img in media.select(selectors.media_image):
            src = _image_src(img)
            if src:
                images.append(https_image_url(src))
    return tuple(images)


def extract_extra_specs(
    soup: BeautifulSoup,
    created_at: str,
    selectors: Selectors = DEFAULT_SELECTORS,
) -> List[SkuSpecification]:
    """Name/value pairs from the accordion sections, minus the description."""
    specs: List[SkuSpecification] = []
    for acc in soup.select(selectors.accordion):
        name = _clean_text(acc.select_one(selectors.accordion_title))
        value = _clean_text(acc.select_one(selectors.accordion_content))
        if not name or not value:
            continue
        if name.casefold() == EXCLUDED_SPEC.casefold():
            continue
        specs.append(SkuSpecification(name=name, values=[value], created_at=created_at, updated_at=created_at))
    return specs


def variant_link(source_url: str, variant_id: Any) -> str:
    parts = urlsplit(source_url)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    if variant_id in (None, ""):
        return base
    return f"{base}?variant={variant_id}"


def variant_name(title: str, option1: Optional[str], option2: Optional[str]) -> str:
    options = " / ".join(str(o) for o in (option1, option2) if o not in (None, ""))
    if not options:
        return title
    return f"{title} - {options}"


def extract_detail(
    html: str,
    source_url: str,
    selectors: Selectors = DEFAULT_SELECTORS,
) -> Tuple[Product, List[Sku]]:
    """Build one Product and its Skus from a rendered detail page.

    Raises ExtractionError when the embedded product data cannot be located
    or decoded; no partial Product is ever returned.
    """
    soup = _soup(html)
    data = decode_product_json(find_product_script(soup))
    if data.get("id") is None:
        raise ExtractionError("embedded product JSON has no id")
    try:
        return _assemble(data, soup, source_url, selectors)
    except ValidationError as e:
        raise ExtractionError(f"embedded product JSON has unexpected field types: {e}") from e


def _assemble(
    data: Dict[str, Any],
    soup: BeautifulSoup,
    source_url: str,
    selectors: Selectors,
) -> Tuple[Product, List[Sku]]:
    ts = now_iso()
    title = data.get("title") or ""
    product = Product(
        code=str(data["id"]),
        name=title,
        description=strip_markup(data.get("description")),
        category_tree=data.get("type") or "",
        created_at=ts,
        updated_at=ts,
    )

    images = extract_images(soup, selectors)
    extras = extract_extra_specs(soup, ts, selectors)

    variants = data.get("variants")
    if not isinstance(variants, list):
        return product, []

    skus: List[Sku] = []
    for variant in variants:
        if not isinstance(variant, dict):
            continue
        option1 = variant.get("option1")
        option2 = variant.get("option2")
        base_specs = [
            SkuSpecification(name=COLOR_SPEC, values=[str(option1 or "")], created_at=ts, updated_at=ts),
            SkuSpecification(name=SIZE_SPEC, values=[str(option2 or "")], created_at=ts, updated_at=ts),
        ]
        code = variant.get("sku")
        skus.append(
            Sku(
                link=variant_link(source_url, variant.get("id")),
                product_id=product.id,
                name=variant_name(title, option1, option2),
                code=str(code) if code not in (None, "") else None,
                images=images,
                sku_specifications=base_specs + extras,
                created_at=ts,
                updated_at=ts,
            )
        )
    return product, skus


# --- catalog profile ------------------------------------------------------


def is_blocked_title(title: Optional[str], markers: Tuple[str, ...]) -> bool:
    if not title:
        return False
    return any(marker in title for marker in markers)


def page_title(html: str) -> str:
    soup = _soup(html)
    return _clean_text(soup.title) if soup.title else ""


def extract_catalog_items(html: str, selectors: Selectors = DEFAULT_SELECTORS) -> List[CatalogProduct]:
    """Read product code and category from each grid item of a listing page.

    Items whose product-info block carries no ``data-sku`` are skipped.
    """
    soup = _soup(html)
    products: List[CatalogProduct] = []
    for item in soup.select(selectors.catalog_item):
        card = item.select_one(selectors.catalog_card)
        if card is None:
            continue
        category_tree = card.get("data-product-type") or ""
        info = item.select_one(selectors.catalog_info)
        sku_el = info.select_one(selectors.catalog_sku) if info is not None else None
        code = (sku_el.get("data-sku") if sku_el is not None else "") or ""
        if not code:
            continue
        ts = now_iso()
        products.append(CatalogProduct(code=code, category_tree=category_tree, created_at=ts, updated_at=ts))
    return products
