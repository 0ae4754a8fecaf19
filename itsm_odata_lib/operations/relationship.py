"""
Links between business object records.
"""

from typing import List

from ..context import ExecutionContext
from ..models import ExecutionItem, OperationContext
from ..normalizer import normalize_record
from . import LINK, RELATED, as_json, records_to_items, run_items


def _relationship_path(ctx: ExecutionContext, op: OperationContext) -> str:
    return f"{ctx.client.record_path(op.collection, op.rec_id)}/{op.relationship_name}"


def _reference_path(ctx: ExecutionContext, op: OperationContext) -> str:
    return f"{_relationship_path(ctx, op)}('{op.related_rec_id}')/$Ref"


async def _link_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=LINK)
    await ctx.client.request('PATCH', _reference_path(ctx, op), json={})
    return [ExecutionItem(data={
        'success': True,
        'message': 'Successfully created the link',
        'recId': op.rec_id,
        'relatedRecId': op.related_rec_id,
    })]


async def _unlink_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=LINK)
    await ctx.client.request('DELETE', _reference_path(ctx, op))
    return [ExecutionItem(data={
        'success': True,
        'message': 'Successfully deleted the link',
        'recId': op.rec_id,
        'relatedRecId': op.related_rec_id,
    })]


async def _get_related_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=RELATED)
    response = await ctx.client.request('GET', _relationship_path(ctx, op))
    if isinstance(response, dict) and isinstance(response.get('value'), list):
        return records_to_items([normalize_record(record) for record in response['value']], index)
    return [ExecutionItem(data=as_json(normalize_record(response)), paired_item=index)]


async def create(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _link_item)


async def delete(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _unlink_item)


async def get_related(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _get_related_item)
