"""
Full-text search and saved search execution.
"""

from typing import Any, List, Optional

from ..constants import FULLTEXT_PAGE_SIZE, FULLTEXT_SEARCH_PATH
from ..context import ExecutionContext
from ..errors import PayloadValidationError
from ..models import ExecutionItem
from ..normalizer import shape_record
from ..pagination import build_list_query, page_fetcher, paginate, paginate_with
from . import BUSINESS_OBJECT, records_to_items, run_items


def parse_saved_search_id(value: str):
    """Split a ``"name|actionId"`` saved search reference."""
    if not value or '|' not in value:
        raise PayloadValidationError(f'Invalid saved search "{value}", expected "name|actionId"')
    name, action_id = value.split('|', 1)
    return name, action_id


async def _full_text_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    business_object = ctx.get_parameter('businessObject', index)
    text = ctx.get_parameter('searchText', index)
    limit = int(ctx.get_parameter('limit', index, 50))

    async def fetch_page(skip: int, top: int) -> Optional[List[Any]]:
        body = {'Text': text, 'ObjectType': business_object, 'Top': top, 'Skip': skip}
        response = await ctx.client.request('POST', FULLTEXT_SEARCH_PATH, json=body)
        if isinstance(response, dict) and isinstance(response.get('data'), list):
            return response['data']
        return None

    records = await paginate(fetch_page, limit, page_size=FULLTEXT_PAGE_SIZE, sleep=ctx.sleep)
    return records_to_items(records, index)


async def _saved_search_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=BUSINESS_OBJECT)
    name, action_id = parse_saved_search_id(ctx.get_parameter('savedSearchId', index))

    query = build_list_query(op.filter, None, op.order_by_field, op.order_direction)
    query['ActionId'] = action_id
    path = f"{ctx.client.collection_path(op.collection)}/{name}"

    records = await paginate_with(page_fetcher(ctx.client, path, query), op.desired_count,
                                  op.pagination, sleep=ctx.sleep)
    return records_to_items([shape_record(record, strip_null=op.strip_null) for record in records], index)


async def full_text_search(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _full_text_item)


async def execute_saved_search(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _saved_search_item)
