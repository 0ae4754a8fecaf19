"""
Templated service request submission and request parameter listing.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..coercion import coerce_value
from ..constants import (
    SERVICE_REQUEST_PARAMS_COLLECTION, SERVICE_REQUEST_PATH, TEMPLATE_DISPLAY_TYPES,
    TEMPLATE_LIST_DISPLAY_TYPES,
)
from ..context import ExecutionContext
from ..discovery import TemplateSchemaCache
from ..errors import PayloadValidationError
from ..models import ExecutionItem, TemplateParameter
from ..normalizer import shape_record
from ..pagination import build_list_query, page_fetcher, paginate_with
from . import as_json, records_to_items, run_items


def _locator_value(value: Any) -> Any:
    """Resource locator parameters arrive either bare or as ``{"value": ...}``."""
    if isinstance(value, dict):
        return value.get('value')
    return value


def split_user_value(value: str) -> Tuple[str, Optional[str]]:
    """``"RecId|Location"`` -> (RecId, Location)."""
    if value and '|' in value:
        rec_id, location = value.split('|', 1)
        return rec_id, location or None
    return value, None


def resolve_template_parameters(schema: Dict[str, TemplateParameter], values: Dict[str, Any],
                                item_index: int, ignore_conversion_errors: bool = False,
                                ignore_unknown: bool = False) -> Dict[str, Any]:
    """Map field names to the ``par-{RecId}`` keys the service expects."""
    resolved: Dict[str, Any] = {}
    for name, value in values.items():
        parameter = schema.get(name)
        if parameter is None:
            if ignore_unknown:
                continue
            raise PayloadValidationError(f'Unknown parameter "{name}" for this request offering')

        display_type = (parameter.display_type or '').lower()
        key = f"par-{parameter.rec_id}"

        if display_type in TEMPLATE_LIST_DISPLAY_TYPES and isinstance(value, str) and '|' in value:
            validation_rec_id, text = value.split('|', 1)
            resolved[key] = text
            resolved[f"{key}-recId"] = validation_rec_id
            continue

        field_type = TEMPLATE_DISPLAY_TYPES.get(display_type, 'string')
        resolved[key] = coerce_value(name, field_type, value, item_index, ignore_conversion_errors)
    return resolved


async def build_request_body(ctx: ExecutionContext, index: int, cache: TemplateSchemaCache) -> Dict[str, Any]:
    raw_user = _locator_value(ctx.get_parameter('strUserId', index))
    if ctx.get_parameter('requestOnBehalf', index, False):
        raw_user = _locator_value(ctx.get_parameter('alternateRequesterId', index))
    user_id, location = split_user_value(raw_user)

    subscription_id = _locator_value(ctx.get_parameter('subscriptionId', index))
    options = ctx.get_options(index)

    service_req_data = {}
    subject = ctx.get_parameter('subject', index, None)
    symptom = ctx.get_parameter('symptom', index, None)
    if subject is not None or symptom is not None:
        service_req_data = {'Subject': subject or '', 'Symptom': symptom or ''}

    parameters = ctx.get_parameter('parameters', index, {}) or {}
    resolved = {}
    if parameters:
        schema = await cache.get(subscription_id)
        resolved = resolve_template_parameters(
            schema, parameters, index,
            ignore_conversion_errors=bool(options.get('ignoreConversionErrors', False)),
            ignore_unknown=bool(options.get('ignoreUnknownParameters', False)),
        )

    body: Dict[str, Any] = {
        'attachmentsToDelete': [],
        'attachmentsToUpload': [],
        'parameters': resolved,
        'delayedFulfill': bool(options.get('delayedFulfill', False)),
        'saveReqState': bool(options.get('saveReqState', False)),
        'serviceReqData': service_req_data,
        'strUserId': user_id,
        'subscriptionId': subscription_id,
        'localOffset': options.get('localOffset', 0) or 0,
    }
    if options.get('formName'):
        body['formName'] = options['formName']
    if location:
        body['strCustomerLocation'] = location
    return body


async def create(ctx: ExecutionContext) -> List[ExecutionItem]:
    cache = TemplateSchemaCache(ctx.client, sleep=ctx.sleep, verbose=ctx.verbose)

    async def create_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
        body = await build_request_body(ctx, index, cache)
        response = await ctx.client.request('POST', SERVICE_REQUEST_PATH, json=body)
        if isinstance(response, list):
            return records_to_items([as_json(entry) for entry in response], index)
        return [ExecutionItem(data=as_json(response), paired_item=index)]

    return await run_items(ctx, create_item, concurrent=True)


async def _get_all_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=('recId',))
    parent_filter = f"ParentLink_RecID eq '{op.rec_id}'"
    combined = f"({parent_filter}) and ({op.filter})" if op.filter else parent_filter

    query = build_list_query(combined, op.select, op.order_by_field, op.order_direction)
    fetch_page = page_fetcher(ctx.client, ctx.client.collection_path(SERVICE_REQUEST_PARAMS_COLLECTION), query)
    records = await paginate_with(fetch_page, "all", op.pagination, sleep=ctx.sleep)
    return records_to_items([shape_record(r, op.sort_output, op.strip_null) for r in records], index)


async def get_all(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _get_all_item)
