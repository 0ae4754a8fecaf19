"""
Introspection helpers: field names, saved searches, employees, subscriptions
and service request template schemas.
"""

import asyncio
import sys
from datetime import datetime
from typing import Dict, List, Optional

from lxml import etree

from .client import ItsmClient
from .constants import (
    EMPLOYEE_OBJECT, ODATA_METADATA_PATH, TEMPLATE_PARAMS_COLLECTION, TEMPLATE_SUBSCRIPTIONS_PATH,
)
from .models import Option, PaginationOptions, SavedSearch, TemplateParameter
from .pagination import Sleep, page_fetcher, paginate_with, sleep_ms


METADATA_ACCEPT = 'application/xml, text/xml, */*'


def _safe_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


async def get_object_fields(client: ItsmClient, business_object: str) -> List[str]:
    """Field names of a business object, taken from one sample record."""
    records = await client.get_records(client.collection_path(f"{business_object}s"), {'$top': 1})
    if not records:
        return []
    return sorted(records[0].keys())


def parse_saved_searches(metadata: bytes) -> List[SavedSearch]:
    """Every Function with an ActionId parameter carrying a DefaultValue annotation."""
    root = etree.fromstring(metadata, parser=_safe_parser())
    searches = []
    for func_elem in root.xpath("//*[local-name()='Function']"):
        name = func_elem.get('Name')
        if not name:
            continue
        action_ids = func_elem.xpath(
            "./*[local-name()='Parameter' and @Name='ActionId']"
            "//*[local-name()='PropertyValue' and @Property='DefaultValue']/@String"
        )
        if action_ids:
            searches.append(SavedSearch(name=name, action_id=action_ids[0]))
    return sorted(searches, key=lambda s: s.display_name.lower())


async def get_saved_searches(client: ItsmClient, business_object: str) -> List[SavedSearch]:
    path = ODATA_METADATA_PATH.format(collection=f"{business_object}s")
    text = await client.get_text(path, headers={'Accept': METADATA_ACCEPT})
    return parse_saved_searches(text.encode('utf-8'))


async def get_employees(client: ItsmClient, query: Optional[str] = None) -> List[Option]:
    params = {'$select': 'RecId,DisplayName', '$top': 20}
    if query:
        params['$search'] = query
    records = await client.get_records(client.collection_path(EMPLOYEE_OBJECT), params) or []
    return [Option(name=str(r.get('DisplayName') or r.get('RecId')), value=str(r.get('RecId')))
            for r in records]


async def get_subscriptions(client: ItsmClient, user_id: str, query: Optional[str] = None) -> List[Option]:
    """Request offerings the user may subscribe to, optionally narrowed by name."""
    if not user_id:
        return []
    response = await client.request('GET', TEMPLATE_SUBSCRIPTIONS_PATH.format(user_id=user_id))
    entries = response if isinstance(response, list) else []
    needle = (query or '').lower()
    options = [
        Option(name=entry['strName'], value=str(entry.get('strSubscriptionId')))
        for entry in entries
        if isinstance(entry, dict) and entry.get('strName')
        and (not needle or needle in entry['strName'].lower())
    ]
    return sorted(options, key=lambda o: o.name.lower())


class TemplateSchemaCache:
    """
    Parameter schemas of service request templates, keyed by subscription id.

    The cache lives for one invocation. It stores the pending fetch so that
    items processed concurrently share a single request per subscription.
    """

    def __init__(self, client: ItsmClient, sleep: Sleep = sleep_ms, verbose: bool = False):
        self.client = client
        self.sleep = sleep
        self.verbose = verbose
        self._pending: Dict[str, asyncio.Future] = {}

    def _log_verbose(self, message: str):
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Schema VERBOSE] {message}", file=sys.stderr)

    async def _fetch(self, subscription_id: str) -> Dict[str, TemplateParameter]:
        self._log_verbose(f"Loading template parameters for subscription {subscription_id}")
        query = {'$filter': f"ParentLink_RecID eq '{subscription_id}'"}
        fetch_page = page_fetcher(self.client, self.client.collection_path(TEMPLATE_PARAMS_COLLECTION), query)
        rows = await paginate_with(fetch_page, "all", PaginationOptions(), sleep=self.sleep)

        schema: Dict[str, TemplateParameter] = {}
        for row in rows:
            if not isinstance(row, dict) or not row.get('Name') or not row.get('RecId'):
                continue
            schema[row['Name']] = TemplateParameter(
                rec_id=str(row['RecId']), name=row['Name'], display_type=row.get('DisplayType'))
        return schema

    async def get(self, subscription_id: str) -> Dict[str, TemplateParameter]:
        pending = self._pending.get(subscription_id)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(subscription_id))
            self._pending[subscription_id] = pending
        try:
            return await pending
        except Exception:
            # Failed fetches are not kept so a later item can retry
            if self._pending.get(subscription_id) is pending:
                del self._pending[subscription_id]
            raise

    def __len__(self) -> int:
        return len(self._pending)
