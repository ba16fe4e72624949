"""Collection paging for Graph list responses.

Graph pages with ``@odata.nextLink``; the link is followed verbatim.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PageFetcher = Callable[[Optional[str]], Awaitable[Dict[str, Any]]]


async def fetch_odata_items(
    fetch_page: PageFetcher,
    *,
    max_items: int,
    max_pages: int = 20,
) -> List[Dict[str, Any]]:
    """Read a Graph collection page by page until ``max_items`` entries are held.

    ``fetch_page(None)`` loads the first page; later calls receive the previous
    page's ``@odata.nextLink``. No further page is requested once the cap is
    reached, and an empty page ends the walk even when a link is present.
    """
    items: List[Dict[str, Any]] = []
    url: Optional[str] = None
    for page_number in range(1, max_pages + 1):
        data = await fetch_page(url)
        page = data.get("value") or []
        items.extend(page[: max_items - len(items)])

        if len(items) >= max_items:
            logger.debug("Stopped paging at %d items (page %d)", len(items), page_number)
            break
        url = data.get("@odata.nextLink")
        if not url or not page:
            break
    else:
        logger.warning("Stopped paging after max_pages=%d; collection truncated", max_pages)
    return items
