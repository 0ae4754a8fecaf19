"""
Routes a (resource, operation) pair to its handler.
"""

import sys
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .context import ExecutionContext
from .models import ExecutionItem
from .operations import attachment, business_object, relationship, search, service_request


Handler = Callable[[ExecutionContext], Awaitable[List[ExecutionItem]]]


class Resource(str, Enum):
    BUSINESS_OBJECT = "businessObject"
    RELATIONSHIP = "relationship"
    ATTACHMENT = "attachment"
    SEARCH = "search"
    SERVICE_REQUEST = "serviceRequest"


class Operation(str, Enum):
    CREATE = "create"
    GET = "get"
    GET_ALL = "getAll"
    UPDATE = "update"
    DELETE = "delete"
    GET_RELATED = "getRelated"
    UPLOAD = "upload"
    FULL_TEXT_SEARCH = "fullTextSearch"
    EXECUTE_SAVED_SEARCH = "executeSavedSearch"


HANDLERS: Dict[Tuple[Resource, Operation], Handler] = {
    (Resource.BUSINESS_OBJECT, Operation.CREATE): business_object.create,
    (Resource.BUSINESS_OBJECT, Operation.GET): business_object.get,
    (Resource.BUSINESS_OBJECT, Operation.GET_ALL): business_object.get_all,
    (Resource.BUSINESS_OBJECT, Operation.UPDATE): business_object.update,
    (Resource.BUSINESS_OBJECT, Operation.DELETE): business_object.delete,
    (Resource.RELATIONSHIP, Operation.CREATE): relationship.create,
    (Resource.RELATIONSHIP, Operation.DELETE): relationship.delete,
    (Resource.RELATIONSHIP, Operation.GET_RELATED): relationship.get_related,
    (Resource.ATTACHMENT, Operation.UPLOAD): attachment.upload,
    (Resource.ATTACHMENT, Operation.GET): attachment.get,
    (Resource.ATTACHMENT, Operation.DELETE): attachment.delete,
    (Resource.SEARCH, Operation.FULL_TEXT_SEARCH): search.full_text_search,
    (Resource.SEARCH, Operation.EXECUTE_SAVED_SEARCH): search.execute_saved_search,
    (Resource.SERVICE_REQUEST, Operation.CREATE): service_request.create,
    (Resource.SERVICE_REQUEST, Operation.GET_ALL): service_request.get_all,
}


def _parse(enum_type, value):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        return None


def passthrough(resource: str, operation: str) -> Handler:
    """Handler for unmatched pairs: the input items come back with the pair merged in."""
    async def handle(ctx: ExecutionContext) -> List[ExecutionItem]:
        return [
            ExecutionItem(
                data={**item.data, 'resource': resource, 'operation': operation},
                binary=item.binary,
                paired_item=index,
            )
            for index, item in enumerate(ctx.items)
        ]
    handle.__name__ = 'passthrough'
    return handle


def dispatch(resource: Union[Resource, str], operation: Union[Operation, str]) -> Handler:
    """Look up the handler for a pair; unknown pairs get the passthrough handler."""
    key = (_parse(Resource, resource), _parse(Operation, operation))
    handler = HANDLERS.get(key)
    if handler is not None:
        return handler
    resource_name = resource.value if isinstance(resource, Resource) else str(resource)
    operation_name = operation.value if isinstance(operation, Operation) else str(operation)
    return passthrough(resource_name, operation_name)


def supported_operations() -> List[Tuple[str, str]]:
    return [(r.value, o.value) for r, o in HANDLERS]


def _log_verbose(verbose: bool, message: str):
    if verbose:
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        print(f"[{timestamp} Dispatcher VERBOSE] {message}", file=sys.stderr)


async def execute(ctx: ExecutionContext, resource: Union[Resource, str],
                  operation: Union[Operation, str],
                  items: Optional[List[Any]] = None) -> List[ExecutionItem]:
    """Run one operation over the input items (a single empty item when none are given)."""
    if items is not None:
        ctx.items = [item if isinstance(item, ExecutionItem) else ExecutionItem.from_dict(item)
                     for item in items]
    if not ctx.items:
        ctx.items = [ExecutionItem()]

    handler = dispatch(resource, operation)
    _log_verbose(ctx.verbose, f"Dispatching {resource}/{operation} to {handler.__name__} "
                              f"for {len(ctx.items)} item(s)")
    return await handler(ctx)
