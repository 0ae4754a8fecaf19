#!/usr/bin/env python3
"""
Tests for item batching: pacing, continue-on-fail and abort behaviour.
"""

import asyncio
import unittest

from itsm_odata_lib.batching import BatchIterator
from itsm_odata_lib.errors import ItsmOperationError, ItsmRequestError
from itsm_odata_lib.models import BatchOptions, ExecutionItem, ItemResult


class SleepRecorder:

    def __init__(self):
        self.pauses = []

    async def __call__(self, milliseconds):
        self.pauses.append(milliseconds)


async def echo(item, index):
    return ItemResult.success([ExecutionItem(data={"value": item})])


class TestBatchPacing(unittest.TestCase):

    def test_pauses_between_batches_only(self):
        sleep = SleepRecorder()
        iterator = BatchIterator(batch_size=2, batch_interval=100, sleep=sleep)
        output = asyncio.run(iterator.run(list(range(5)), echo))
        self.assertEqual(len(output), 5)
        self.assertEqual(sleep.pauses, [100, 100])

    def test_no_pause_after_final_batch(self):
        sleep = SleepRecorder()
        iterator = BatchIterator(batch_size=2, batch_interval=100, sleep=sleep)
        asyncio.run(iterator.run(list(range(4)), echo))
        self.assertEqual(sleep.pauses, [100])

    def test_disabled_batching_never_pauses(self):
        sleep = SleepRecorder()
        iterator = BatchIterator(batch_size=-1, batch_interval=100, sleep=sleep)
        asyncio.run(iterator.run(list(range(5)), echo))
        self.assertEqual(sleep.pauses, [])

    def test_zero_batch_size_treated_as_one(self):
        sleep = SleepRecorder()
        iterator = BatchIterator(batch_size=0, batch_interval=10, sleep=sleep)
        asyncio.run(iterator.run(list(range(3)), echo))
        self.assertEqual(sleep.pauses, [10, 10])

    def test_zero_interval_never_pauses(self):
        sleep = SleepRecorder()
        iterator = BatchIterator(batch_size=1, batch_interval=0, sleep=sleep)
        asyncio.run(iterator.run(list(range(3)), echo))
        self.assertEqual(sleep.pauses, [])

    def test_effective_size(self):
        self.assertEqual(BatchOptions(batch_size=-1).effective_size(7), 7)
        self.assertEqual(BatchOptions(batch_size=0).effective_size(7), 1)
        self.assertEqual(BatchOptions(batch_size=3).effective_size(7), 3)


class TestFailureHandling(unittest.TestCase):

    def setUp(self):
        self.calls = []

        async def handler(item, index):
            self.calls.append(index)
            if index == 1:
                raise ItsmRequestError("boom", status_code=400, response_body=b'{"Message": "bad input"}')
            return ItemResult.success([ExecutionItem(data={"index": index})])

        self.handler = handler

    def test_continue_on_fail_emits_error_item(self):
        output = asyncio.run(BatchIterator().run([{}, {}, {}], self.handler, continue_on_fail=True))
        self.assertEqual(self.calls, [0, 1, 2])
        self.assertEqual(len(output), 3)
        self.assertEqual(output[1].data, {"error": "Request failed", "details": "bad input"})
        self.assertEqual(output[1].paired_item, 1)
        self.assertEqual([item.paired_item for item in output], [0, 1, 2])

    def test_abort_raises_with_item_index(self):
        with self.assertRaises(ItsmOperationError) as cm:
            asyncio.run(BatchIterator().run([{}, {}, {}], self.handler))
        self.assertEqual(self.calls, [0, 1])
        self.assertEqual(cm.exception.item_index, 1)
        self.assertEqual(cm.exception.description, "bad input")
        self.assertIsInstance(cm.exception.cause, ItsmRequestError)

    def test_failure_result_is_treated_like_exception(self):
        async def handler(item, index):
            return ItemResult.failure(ValueError("explicit failure"))

        output = asyncio.run(BatchIterator().run([{}], handler, continue_on_fail=True))
        self.assertEqual(output[0].data["details"], "explicit failure")


class TestOutputItems(unittest.TestCase):

    def test_multiple_outputs_per_item_are_paired(self):
        async def handler(item, index):
            return ItemResult.success([ExecutionItem(data={"n": n}) for n in range(item)])

        output = asyncio.run(BatchIterator().run([2, 0, 1], handler))
        self.assertEqual([(item.paired_item, item.data["n"]) for item in output], [(0, 0), (0, 1), (2, 0)])

    def test_concurrent_mode_keeps_input_order(self):
        sleep = SleepRecorder()

        async def handler(item, index):
            await asyncio.sleep(0.01 * (3 - index))
            return ItemResult.success([ExecutionItem(data={"index": index})])

        iterator = BatchIterator(batch_size=2, batch_interval=50, sleep=sleep)
        output = asyncio.run(iterator.run([{}, {}, {}], handler, concurrent=True))
        self.assertEqual([item.data["index"] for item in output], [0, 1, 2])
        self.assertEqual(sleep.pauses, [50])


if __name__ == "__main__":
    unittest.main()
