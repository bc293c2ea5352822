"""Shared fixtures: fixture HTML builders and a fake renderer."""
import asyncio
import io
import json
from typing import Dict, List, Optional, Tuple, Union

import pytest
from rich.console import Console

from errors import RenderError

SITE = "https://shop.example.com"


class FakeRenderer:
    """Serves canned HTML per URL; an Exception value is raised instead."""

    def __init__(self, pages: Dict[str, Union[str, Exception]], latency: float = 0.0):
        self.pages = pages
        self.latency = latency
        self.calls: List[Tuple[str, str, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def render(self, url: str, wait_selector: str, timeout_ms: int) -> str:
        self.calls.append((url, wait_selector, timeout_ms))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            page = self.pages.get(url)
            if page is None:
                raise RenderError(f"timeout waiting for {wait_selector} on {url}")
            if isinstance(page, Exception):
                raise page
            return page
        finally:
            self.in_flight -= 1


def _listing_html(hrefs: List[Optional[str]], outside: List[str] = ()) -> str:
    anchors = "".join(
        f'<li><a href="{h}">item</a></li>' if h is not None else "<li><a>no link</a></li>"
        for h in hrefs
    )
    extra = "".join(f'<a href="{h}">elsewhere</a>' for h in outside)
    return (
        "<html><head><title>Todos</title></head><body>"
        f"<nav>{extra}</nav>"
        f'<ul id="product-grid">{anchors}</ul>'
        f"<footer>{extra}</footer>"
        "</body></html>"
    )


def _detail_html(
    product: Optional[dict] = None,
    images: List[str] = (),
    accordions: List[Tuple[str, str]] = (),
    script: Optional[str] = None,
) -> str:
    if script is None:
        script = f"var product = {json.dumps(product)};\nvar other = 1;"
    imgs = "".join(f'<li><img src="{src}"></li>' for src in images)
    accs = "".join(
        '<div class="product__accordion"><details>'
        f'<summary><h2 class="accordion__title">{name}</h2></summary>'
        f'<div class="accordion__content"><p>{value}</p></div>'
        "</details></div>"
        for name, value in accordions
    )
    return (
        "<html><head><title>Produto</title>"
        '<script>window.theme = {"name": "Dawn"};</script>'
        f"<script>{script}</script>"
        "</head><body>"
        '<img src="//cdn.example.com/logo.png">'
        f'<ul class="product__media-list">{imgs}</ul>'
        f'<div class="product__info-container">{accs}</div>'
        "</body></html>"
    )


@pytest.fixture
def listing_html():
    return _listing_html


@pytest.fixture
def detail_html():
    return _detail_html


@pytest.fixture
def sample_product():
    return {
        "id": 7312345,
        "title": "Chinelo Havaianas Top",
        "description": "<p>O chinelo <strong>mais</strong> famoso.</p>",
        "type": "Chinelos",
        "variants": [
            {"id": 111, "option1": "Preto", "option2": "38", "sku": "4000029-0090-38"},
            {"id": 222, "option1": "Branco", "option2": "39", "sku": "4000029-0001-39"},
        ],
    }


@pytest.fixture
def fake_renderer():
    return FakeRenderer


@pytest.fixture
def captured_console():
    buf = io.StringIO()
    return Console(file=buf, width=200, force_terminal=False), buf
