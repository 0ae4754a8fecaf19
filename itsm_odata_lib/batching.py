"""
Item-level execution with batch pacing and per-item failure handling.
"""

import asyncio
import sys
from datetime import datetime
from typing import Any, Awaitable, Callable, List

from .error_classifier import classify
from .errors import ItsmOperationError
from .models import BatchOptions, ExecutionItem, ItemResult
from .pagination import Sleep, sleep_ms


ItemHandler = Callable[[Any, int], Awaitable[ItemResult]]


class BatchIterator:
    """
    Walks input items through a handler, pausing ``batch_interval`` ms after
    every ``batch_size`` items while more items remain.
    """

    def __init__(self, batch_size: int = -1, batch_interval: int = 0,
                 sleep: Sleep = sleep_ms, verbose: bool = False):
        self.options = BatchOptions(batch_size=batch_size, batch_interval=batch_interval)
        self.sleep = sleep
        self.verbose = verbose

    @classmethod
    def from_options(cls, options: BatchOptions, sleep: Sleep = sleep_ms, verbose: bool = False) -> 'BatchIterator':
        return cls(options.batch_size, options.batch_interval, sleep=sleep, verbose=verbose)

    def _log_verbose(self, message: str):
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Batch VERBOSE] {message}", file=sys.stderr)

    async def _invoke(self, handler: ItemHandler, item: Any, index: int) -> ItemResult:
        try:
            return await handler(item, index)
        except Exception as e:
            return ItemResult.failure(e)

    def _collect(self, result: ItemResult, index: int, continue_on_fail: bool,
                 output: List[ExecutionItem]):
        if result.ok:
            for produced in result.items:
                if produced.paired_item is None:
                    produced.paired_item = index
                output.append(produced)
            return

        detail = classify(result.error)
        if continue_on_fail:
            self._log_verbose(f"Item {index} failed, continuing: {detail.message}")
            output.append(ExecutionItem(
                data={'error': detail.message, 'details': detail.description},
                paired_item=index,
            ))
            return

        print(f"ERROR: Item {index} failed: {detail.message}", file=sys.stderr)
        raise ItsmOperationError(detail, item_index=index, cause=result.error) from result.error

    async def _pause_after(self, processed: int, total: int, effective: int):
        interval = self.options.batch_interval
        if interval > 0 and processed % effective == 0 and processed < total:
            self._log_verbose(f"Pausing {interval}ms after {processed} of {total} items")
            await self.sleep(interval)

    async def run(self, items: List[Any], handler: ItemHandler,
                  continue_on_fail: bool = False, concurrent: bool = False) -> List[ExecutionItem]:
        """Execute ``handler`` for each item and return the flattened output items."""
        total = len(items)
        effective = self.options.effective_size(total)
        output: List[ExecutionItem] = []

        if not concurrent:
            for index, item in enumerate(items):
                result = await self._invoke(handler, item, index)
                self._collect(result, index, continue_on_fail, output)
                await self._pause_after(index + 1, total, effective)
            return output

        for start in range(0, total, effective):
            indices = range(start, min(start + effective, total))
            results = await asyncio.gather(*(self._invoke(handler, items[i], i) for i in indices))
            for index, result in zip(indices, results):
                self._collect(result, index, continue_on_fail, output)
            await self._pause_after(indices[-1] + 1, total, effective)
        return output
