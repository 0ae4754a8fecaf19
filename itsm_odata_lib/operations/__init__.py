"""
Operation handlers, one module per resource.

Every public handler takes an ExecutionContext and returns the output items.
The per-item work is a coroutine ``(ctx, index) -> List[ExecutionItem]`` that
is driven through the BatchIterator.
"""

from typing import Awaitable, Callable, List

from ..batching import BatchIterator
from ..context import ExecutionContext
from ..models import ExecutionItem, ItemResult


ItemCallback = Callable[[ExecutionContext, int], Awaitable[List[ExecutionItem]]]

# Parameters an item must carry before any request is sent
BUSINESS_OBJECT = ('businessObject',)
RECORD = ('businessObject', 'recId')
LINK = ('businessObject', 'recId', 'relationshipName', 'relatedRecId')
RELATED = ('businessObject', 'recId', 'relationshipName')


async def run_items(ctx: ExecutionContext, callback: ItemCallback,
                    concurrent: bool = False) -> List[ExecutionItem]:
    """Run ``callback`` once per input item with the invocation's batching options."""
    iterator = BatchIterator.from_options(ctx.batch_options(), sleep=ctx.sleep, verbose=ctx.verbose)

    async def handle(_item: ExecutionItem, index: int) -> ItemResult:
        try:
            produced = await callback(ctx, index)
        except Exception as e:
            return ItemResult.failure(e)
        return ItemResult.success(produced)

    return await iterator.run(ctx.items, handle, continue_on_fail=ctx.continue_on_fail,
                              concurrent=concurrent)


def records_to_items(records: list, index: int) -> List[ExecutionItem]:
    return [ExecutionItem(data=record, paired_item=index) for record in records]


def as_json(value) -> dict:
    """Output items carry objects; wrap anything else the service returned."""
    if isinstance(value, dict):
        return value
    return {'response': value}
