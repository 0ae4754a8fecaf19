"""
Incremental polling for newly created or updated business object records.

A cursor (the last timestamp seen) is kept per trigger key. Continuous polls
ask for records strictly newer than the cursor and move it forward to the
newest record returned; manual polls fetch the single most recent record to
check the configuration and leave the cursor alone.
"""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .client import ItsmClient
from .constants import TRIGGER_DATE_FIELDS
from .error_classifier import classify
from .errors import ItsmError, NoDataFoundError, PayloadValidationError
from .models import PaginationOptions, PollCursor
from .normalizer import shape_record
from .pagination import Sleep, page_fetcher, paginate_with, sleep_ms


MANUAL = "manual"
CONTINUOUS = "continuous"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; values without an offset are taken as UTC."""
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Canonical cursor form: ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def to_utc_z(value: str) -> str:
    return format_timestamp(parse_timestamp(value))


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


class CursorStore:
    """Persists poll cursors between poll cycles."""

    def load(self, key: str) -> Optional[PollCursor]:
        raise NotImplementedError

    def save(self, key: str, cursor: PollCursor):
        raise NotImplementedError


class MemoryCursorStore(CursorStore):

    def __init__(self):
        self._cursors: Dict[str, PollCursor] = {}

    def load(self, key: str) -> Optional[PollCursor]:
        return self._cursors.get(key)

    def save(self, key: str, cursor: PollCursor):
        self._cursors[key] = cursor


class JsonFileCursorStore(CursorStore):
    """Cursors kept in one JSON document, ``{key: {"last_time_checked": ...}}``."""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            content = f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise PayloadValidationError(f"Cursor file {self.path} does not hold a JSON object")
        return data

    def load(self, key: str) -> Optional[PollCursor]:
        entry = self._read().get(key)
        if not entry:
            return None
        return PollCursor(**entry)

    def save(self, key: str, cursor: PollCursor):
        data = self._read()
        data[key] = cursor.model_dump()
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)


class PollEngine:
    """Detects new or changed records of one business object."""

    def __init__(self, client: ItsmClient, business_object: str, trigger_on: str = "objectCreated",
                 filter: Optional[str] = None, limit: Optional[int] = None, strip_null: bool = False,
                 store: Optional[CursorStore] = None, trigger_key: Optional[str] = None,
                 pagination: Optional[PaginationOptions] = None, sleep: Sleep = sleep_ms,
                 verbose: bool = False):
        if trigger_on not in TRIGGER_DATE_FIELDS:
            raise PayloadValidationError(
                f'Unknown trigger "{trigger_on}", expected one of {", ".join(TRIGGER_DATE_FIELDS)}')
        self.client = client
        self.business_object = business_object
        self.trigger_on = trigger_on
        self.date_field = TRIGGER_DATE_FIELDS[trigger_on]
        self.filter = filter
        self.limit = limit
        self.strip_null = strip_null
        self.store = store or MemoryCursorStore()
        self.trigger_key = trigger_key or f"{business_object}:{trigger_on}"
        self.pagination = pagination or PaginationOptions()
        self.sleep = sleep
        self.verbose = verbose

    def _log_verbose(self, message: str):
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Poller VERBOSE] {message}", file=sys.stderr)

    @property
    def collection_path(self) -> str:
        return self.client.collection_path(f"{self.business_object}s")

    def cursor(self) -> PollCursor:
        """Current cursor, seeded to now on first use."""
        cursor = self.store.load(self.trigger_key)
        if cursor is None or not cursor.last_time_checked:
            cursor = PollCursor(last_time_checked=utc_now())
            self.store.save(self.trigger_key, cursor)
            self._log_verbose(f"Seeded cursor for {self.trigger_key} at {cursor.last_time_checked}")
        return cursor

    def _shape(self, records: List[Any]) -> List[Any]:
        return [shape_record(record, strip_null=self.strip_null) for record in records]

    async def poll_manual(self) -> List[Dict[str, Any]]:
        params = {'$top': 1, '$orderby': f"{self.date_field} desc"}
        if self.filter:
            params['$filter'] = self.filter
        records = await self.client.get_records(self.collection_path, params)
        if not records:
            raise NoDataFoundError('No data with the current filter could be found')
        return self._shape(records[:1])

    async def poll_continuous(self) -> Optional[List[Dict[str, Any]]]:
        cursor = self.cursor()
        since = to_utc_z(cursor.last_time_checked)

        query_filter = f"{self.date_field} gt {since}"
        if self.filter:
            query_filter += f" and ({self.filter})"
        query = {'$filter': query_filter, '$orderby': f"{self.date_field} asc"}

        desired: Union[int, str] = self.limit if self.limit else "all"
        fetch_page = page_fetcher(self.client, self.collection_path, query)
        records = await paginate_with(fetch_page, desired, self.pagination, sleep=self.sleep)
        if not records:
            self._log_verbose(f"No new {self.business_object} records since {since}")
            return None

        last = records[-1]
        last_value = last.get(self.date_field) if isinstance(last, dict) else None
        if last_value:
            newest = to_utc_z(str(last_value))
            # Never move the cursor backwards
            if parse_timestamp(newest) > parse_timestamp(cursor.last_time_checked):
                self.store.save(self.trigger_key, PollCursor(last_time_checked=newest))
                self._log_verbose(f"Cursor for {self.trigger_key} advanced to {newest}")

        return self._shape(records)

    async def poll(self, mode: str = CONTINUOUS) -> Optional[List[Dict[str, Any]]]:
        """
        Run one poll cycle.

        Returns the shaped records, or None in continuous mode when nothing
        new arrived. Manual mode raises NoDataFoundError on an empty result.
        """
        if mode == MANUAL:
            self.cursor()
            return await self.poll_manual()
        return await self.poll_continuous()

    async def run(self, interval: float, on_records: Callable[[List[Dict[str, Any]]], Awaitable[None]],
                  cycles: Optional[int] = None):
        """
        Poll every ``interval`` seconds, handing non-empty results to ``on_records``.

        A failed cycle is reported on stderr and leaves the cursor where it was,
        so the next cycle asks for the same window again.
        """
        completed = 0
        while cycles is None or completed < cycles:
            try:
                records = await self.poll(CONTINUOUS)
            except ItsmError as e:
                detail = classify(e)
                print(f"ERROR: Poll cycle for {self.trigger_key} failed: {detail.message}", file=sys.stderr)
                description = detail.joined_description()
                if description:
                    print(f"ERROR: {description}", file=sys.stderr)
                records = None
            if records:
                await on_records(records)
            completed += 1
            if cycles is None or completed < cycles:
                await asyncio.sleep(interval)
