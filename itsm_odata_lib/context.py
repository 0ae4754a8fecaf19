"""
Execution context handed to every operation handler.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from .client import ItsmClient
from .constants import MAX_PAGE_SIZE
from .errors import PayloadValidationError
from .models import (
    BatchOptions, BinaryData, Credentials, ExecutionItem, OperationContext, PaginationOptions,
)
from .pagination import Sleep, sleep_ms


_MISSING = object()

# Values used when a throttling group is present but leaves a knob unset
DEFAULT_PAGES_PER_BATCH = 10
DEFAULT_PAGINATION_INTERVAL = 100
DEFAULT_BATCH_SIZE = 50
DEFAULT_BATCH_INTERVAL = 1000


class ExecutionContext:
    """
    Bundles everything a handler needs: credentials, the HTTP client, the
    input items with their parameters, the continue-on-fail flag and the
    pause function.

    Parameter values may be plain values or callables taking the item's json,
    which lets a host compute a parameter per item.
    """

    def __init__(self, credentials: Credentials, parameters: Optional[Dict[str, Any]] = None,
                 items: Optional[List[ExecutionItem]] = None, client: Optional[ItsmClient] = None,
                 continue_on_fail: bool = False, sleep: Sleep = sleep_ms, verbose: bool = False):
        self.credentials = credentials
        self.parameters = parameters or {}
        self.items = items or []
        self.client = client or ItsmClient(credentials, verbose=verbose)
        self.continue_on_fail = continue_on_fail
        self.sleep = sleep
        self.verbose = verbose

    def get_parameter(self, name: str, index: int = 0, default: Any = _MISSING) -> Any:
        """Resolve a parameter for item ``index``."""
        if name not in self.parameters:
            if default is _MISSING:
                raise PayloadValidationError(f'Missing required parameter "{name}"')
            return default
        value = self.parameters[name]
        if callable(value):
            item = self.items[index].data if index < len(self.items) else {}
            value = value(item)
        return value

    def get_options(self, index: int = 0) -> Dict[str, Any]:
        options = self.get_parameter('options', index, {})
        return options if isinstance(options, dict) else {}

    def get_binary(self, index: int, property_name: str) -> BinaryData:
        item = self.items[index] if index < len(self.items) else None
        if item is None or not item.binary:
            raise PayloadValidationError('No binary data exists on item!')
        binary = item.binary.get(property_name)
        if binary is None:
            raise PayloadValidationError(f'Item has no binary property called "{property_name}"')
        return binary

    def batch_options(self) -> BatchOptions:
        """Batching is configured once per invocation, from the first item."""
        return batch_options_from(self.get_options(0))

    def require(self, index: int, *names: str):
        """Raise PayloadValidationError unless every named parameter has a value."""
        for name in names:
            value = self.get_parameter(name, index)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise PayloadValidationError(f'Missing required parameter "{name}"')

    def operation_context(self, index: int, required: Tuple[str, ...] = ()) -> OperationContext:
        """Resolve the item's OperationContext after checking the ``required`` parameters."""
        self.require(index, *required)
        return resolve_operation_context(self, index)


def parse_json_parameter(value: Any, name: str = 'JSON') -> Dict[str, Any]:
    """Accept a dict or a JSON object string."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError as e:
            raise PayloadValidationError(f'Invalid JSON in "{name}" parameter') from e
        if isinstance(parsed, dict):
            return parsed
    raise PayloadValidationError(f'Invalid JSON in "{name}" parameter')


def _select_value(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        return ','.join(str(v) for v in value) or None
    return value or None


def pagination_options_from(options: Dict[str, Any]) -> PaginationOptions:
    group = options.get('pagination')
    if not isinstance(group, dict):
        return PaginationOptions()
    return PaginationOptions(
        page_size=min(int(group.get('pageSize', MAX_PAGE_SIZE)), MAX_PAGE_SIZE),
        pages_per_batch=int(group.get('pagesPerBatch', DEFAULT_PAGES_PER_BATCH)),
        pagination_interval=int(group.get('paginationInterval', DEFAULT_PAGINATION_INTERVAL)),
    )


def batch_options_from(options: Dict[str, Any]) -> BatchOptions:
    group = options.get('batching')
    if not isinstance(group, dict):
        return BatchOptions()
    return BatchOptions(
        batch_size=int(group.get('batchSize', DEFAULT_BATCH_SIZE)),
        batch_interval=int(group.get('batchInterval', DEFAULT_BATCH_INTERVAL)),
    )


def resolve_operation_context(ctx: ExecutionContext, index: int) -> OperationContext:
    """Read the item's parameters into an immutable OperationContext."""
    options = ctx.get_options(index)
    get = ctx.get_parameter
    return OperationContext(
        business_object=get('businessObject', index, None),
        rec_id=get('recId', index, None),
        related_rec_id=get('relatedRecId', index, None),
        relationship_name=get('relationshipName', index, None),
        filter=get('filter', index, None) or options.get('filter') or None,
        select=_select_value(get('select', index, None)),
        order_by_field=get('orderByField', index, None) or None,
        order_direction=get('orderDirection', index, 'asc'),
        return_all=bool(get('returnAll', index, False)),
        limit=int(get('limit', index, 50)),
        pagination=pagination_options_from(options),
        batching=batch_options_from(ctx.get_options(0)),
        strip_null=bool(options.get('stripNull', False)),
        sort_output=bool(options.get('sortOutput', True)),
        ignore_conversion_errors=bool(options.get('ignoreConversionErrors', False)),
    )
