"""
Offset/limit pagination over OData collections.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .constants import MAX_PAGE_SIZE
from .models import PaginationOptions


FetchPage = Callable[[int, int], Awaitable[Optional[List[Any]]]]
Sleep = Callable[[int], Awaitable[None]]


async def sleep_ms(milliseconds: int):
    if milliseconds <= 0:
        return
    await asyncio.sleep(milliseconds / 1000)


async def paginate(fetch_page: FetchPage, desired_count: Union[int, str],
                   page_size: int = MAX_PAGE_SIZE, pages_per_batch: int = -1,
                   pagination_interval: int = 0, sleep: Sleep = sleep_ms) -> List[Any]:
    """
    Collect records page by page.

    ``fetch_page(skip, top)`` returns the page's records, or None when the
    response carried no list. ``desired_count`` is a positive int or "all".
    Pagination ends on a short page, on a non-list page, or once the desired
    count has been accumulated.
    """
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    unbounded = desired_count == "all"
    if not unbounded and int(desired_count) <= 0:
        return []

    throttled = pages_per_batch != -1 and pages_per_batch > 0 and pagination_interval > 0
    records: List[Any] = []
    skip = 0
    rounds = 0

    while True:
        remaining = None if unbounded else int(desired_count) - len(records)
        top = page_size if remaining is None else min(page_size, remaining)

        page = await fetch_page(skip, top)
        if not isinstance(page, list):
            break

        records.extend(page)
        rounds += 1

        if len(page) < top:
            break
        if not unbounded and len(records) >= int(desired_count):
            break

        skip += len(page)
        if throttled and rounds % pages_per_batch == 0:
            await sleep(pagination_interval)

    return records


async def paginate_with(fetch_page: FetchPage, desired_count: Union[int, str],
                        options: PaginationOptions, sleep: Sleep = sleep_ms) -> List[Any]:
    return await paginate(
        fetch_page,
        desired_count,
        page_size=options.page_size,
        pages_per_batch=options.pages_per_batch,
        pagination_interval=options.pagination_interval,
        sleep=sleep,
    )


def build_list_query(filter: Optional[str] = None, select: Optional[str] = None,
                     order_by_field: Optional[str] = None,
                     order_direction: str = "asc") -> Dict[str, str]:
    """Base OData query options for a list request ($top/$skip are added per page)."""
    query: Dict[str, str] = {}
    if filter:
        query['$filter'] = filter
    if select:
        query['$select'] = select
    if order_by_field:
        query['$orderby'] = f"{order_by_field} {order_direction}"
        # The service needs the sort key among the selected fields to page stably
        if query.get('$select'):
            selected = [field.strip() for field in query['$select'].split(',')]
            if order_by_field not in selected:
                query['$select'] += f",{order_by_field}"
    return query


def page_fetcher(client, path: str, query: Dict[str, Any]) -> FetchPage:
    """Bind a collection path and base query into a ``fetch_page(skip, top)`` callable."""
    async def fetch_page(skip: int, top: int) -> Optional[List[Any]]:
        params = dict(query)
        params['$skip'] = skip
        params['$top'] = top
        return await client.get_records(path, params)
    return fetch_page
