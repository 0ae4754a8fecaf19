"""
Exception types raised by the ITSM OData library.

Everything derives from ValueError so callers that already treat request
failures as ValueError keep working.
"""

from typing import Any, Dict, List, Optional, Union

from .models import ErrorDetail


class ItsmError(ValueError):
    """Base class for all library errors."""


class ItsmRequestError(ItsmError):
    """An HTTP request to the service failed (network error or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: Any = None, context: Optional[Dict[str, Any]] = None,
                 description: Optional[Union[str, List[str]]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.context = context
        self.description = description


class PayloadValidationError(ItsmError):
    """The request payload could not be built (bad JSON, missing binary data)."""


class FieldValidationError(ItsmError):
    """A field assignment does not match its declared type."""

    def __init__(self, field: str, expected_type: str, value_description: str, item_index: int):
        self.field = field
        self.expected_type = expected_type
        self.value_description = value_description
        self.item_index = item_index
        self.description = (
            f'To fix the error try to change the type for the field "{field}" or activate '
            f'the option "Ignore Type Conversion Errors" to apply a less strict type validation'
        )
        super().__init__(f"'{field}' expects a {expected_type} but we got {value_description} [item {item_index}]")


class NoDataFoundError(ItsmError):
    """A lookup that must return a record returned nothing."""


class ItsmOperationError(ItsmError):
    """Final error aborting an operation, carrying the classified failure."""

    def __init__(self, detail: ErrorDetail, item_index: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(detail.message)
        self.detail = detail
        self.item_index = item_index
        self.cause = cause

    @property
    def description(self) -> Optional[str]:
        return self.detail.joined_description()
