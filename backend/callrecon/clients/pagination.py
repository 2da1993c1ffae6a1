"""Bounded pagination loop shared by the ledger fetchers."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from callrecon.errors import FetchError

logger = logging.getLogger("callrecon.pagination")

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total_pages: int | None = None
    total_count: int | None = None
    # Set by fetchers that can tell a short page is the final one.
    last: bool = False


async def collect_pages(
    fetch_page: Callable[[int], Awaitable[Page[T]]],
    source: str,
    max_pages: int = 100,
    empty_page_threshold: int = 3,
) -> list[T]:
    """Fetch pages 1..N sequentially and flatten their items.

    Stops at the known page count or item total, after ``empty_page_threshold``
    consecutive empty pages, or at ``max_pages``. A failure on the first page
    raises FetchError; a failure on a later page ends pagination with what was
    collected so far.
    """
    items: list[T] = []
    empty_streak = 0

    for page_number in range(1, max_pages + 1):
        try:
            page = await fetch_page(page_number)
        except FetchError:
            raise
        except Exception as e:
            if page_number == 1:
                raise FetchError(source, f"first page failed: {e}") from e
            logger.warning("%s: page %d failed, stopping pagination: %s", source, page_number, e)
            break

        items.extend(page.items)

        if page.last:
            break
        if page.total_pages is not None and page_number >= page.total_pages:
            break
        if page.total_count is not None and len(items) >= page.total_count:
            break

        if page.items:
            empty_streak = 0
        else:
            empty_streak += 1
            if empty_streak >= empty_page_threshold:
                logger.info("%s: %d consecutive empty pages, stopping", source, empty_streak)
                break
    else:
        logger.warning("%s: reached page ceiling (%d), results may be incomplete", source, max_pages)

    return items
