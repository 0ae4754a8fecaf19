"""
Create, read, update and delete business object records.
"""

from typing import Any, Dict, List

from ..coercion import coerce_assignments
from ..context import ExecutionContext, parse_json_parameter
from ..errors import NoDataFoundError
from ..models import Assignment, ExecutionItem
from ..normalizer import normalize_record, shape_record
from ..pagination import build_list_query, page_fetcher, paginate_with
from . import BUSINESS_OBJECT, RECORD, as_json, records_to_items, run_items


def build_payload(ctx: ExecutionContext, index: int) -> Dict[str, Any]:
    """Request body from raw JSON (mode "json") or from typed field assignments."""
    mode = ctx.get_parameter('mode', index, 'fields')
    if mode == 'json':
        return parse_json_parameter(ctx.get_parameter('body', index))

    raw = ctx.get_parameter('assignments', index, []) or []
    if isinstance(raw, dict):
        raw = raw.get('assignments', [])
    assignments = [a if isinstance(a, Assignment) else Assignment(**a) for a in raw]
    ignore_errors = bool(ctx.get_options(index).get('ignoreConversionErrors', False))
    return coerce_assignments(assignments, item_index=index, ignore_errors=ignore_errors)


async def _create_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=BUSINESS_OBJECT)
    body = build_payload(ctx, index)
    response = await ctx.client.request('POST', ctx.client.collection_path(op.collection), json=body)
    return [ExecutionItem(data=as_json(normalize_record(response)))]


async def _update_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=RECORD)
    body = build_payload(ctx, index)
    path = ctx.client.record_path(op.collection, op.rec_id)
    response = await ctx.client.request('PUT', path, json=body)
    return [ExecutionItem(data=as_json(normalize_record(response)))]


async def _get_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=RECORD)
    if not op.select:
        response = await ctx.client.request('GET', ctx.client.record_path(op.collection, op.rec_id))
        return [ExecutionItem(data=as_json(normalize_record(response)))]

    # A $select needs the collection endpoint, narrowed to the one record
    params = {'$select': op.select, '$filter': f"RecId eq '{op.rec_id}'"}
    records = await ctx.client.get_records(ctx.client.collection_path(op.collection), params)
    if not records:
        raise NoDataFoundError(f"Item with ID '{op.rec_id}' not found.")
    return [ExecutionItem(data=as_json(normalize_record(records[0])))]


async def _get_all_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=BUSINESS_OBJECT)
    query = build_list_query(op.filter, op.select, op.order_by_field, op.order_direction)
    fetch_page = page_fetcher(ctx.client, ctx.client.collection_path(op.collection), query)
    records = await paginate_with(fetch_page, op.desired_count, op.pagination, sleep=ctx.sleep)
    shaped = [shape_record(record, op.sort_output, op.strip_null) for record in records]
    return records_to_items(shaped, index)


async def _delete_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=RECORD)
    await ctx.client.request('DELETE', ctx.client.record_path(op.collection, op.rec_id))
    return [ExecutionItem(data={
        'success': True,
        'message': 'Successfully deleted the record',
        'recId': op.rec_id,
    })]


async def create(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _create_item)


async def get(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _get_item)


async def get_all(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _get_all_item)


async def update(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _update_item)


async def delete(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _delete_item)
