class CrawlError(Exception):
    """Base class for failures that skip a page or a product during a crawl."""


class RenderError(CrawlError):
    """Navigation failed or the awaited selector never appeared."""


class BlockedError(RenderError):
    """The site answered with an anti-bot challenge instead of the page."""


class ExtractionError(CrawlError):
    """Embedded product data is missing or cannot be decoded."""
