"""
ITSM OData Library - batch execution, pagination and normalization for an
ITSM service's OData/REST API.
"""

from .models import (
    Credentials,
    OperationContext,
    ErrorDetail,
    ExecutionItem,
    PollCursor,
)
from .client import ItsmClient
from .context import ExecutionContext
from .dispatcher import Resource, Operation, dispatch, execute
from .error_classifier import classify
from .normalizer import normalize_record
from .poller import PollEngine, MemoryCursorStore, JsonFileCursorStore
from .bridge import ItsmMCPBridge

__all__ = [
    'Credentials',
    'OperationContext',
    'ErrorDetail',
    'ExecutionItem',
    'PollCursor',
    'ItsmClient',
    'ExecutionContext',
    'Resource',
    'Operation',
    'dispatch',
    'execute',
    'classify',
    'normalize_record',
    'PollEngine',
    'MemoryCursorStore',
    'JsonFileCursorStore',
    'ItsmMCPBridge',
]
