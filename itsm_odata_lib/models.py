"""
Data models for operation configuration, results and poll state.
"""

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict

from .constants import DEFAULT_ERROR_MESSAGE, MAX_PAGE_SIZE


FieldType = Literal["string", "number", "boolean", "array", "object"]


class Credentials(BaseModel):
    tenant_url: str
    api_key: str
    allow_unauthorized_certs: bool = False

    @property
    def base_url(self) -> str:
        return self.tenant_url.rstrip('/')


class BatchOptions(BaseModel):
    """Item-level throttling. batch_size -1 disables pauses, 0 is treated as 1."""
    model_config = ConfigDict(frozen=True)

    batch_size: int = -1
    batch_interval: int = 0  # milliseconds

    def effective_size(self, total_items: int) -> int:
        if self.batch_size == -1:
            return max(total_items, 1)
        return max(1, self.batch_size)


class PaginationOptions(BaseModel):
    """Page-level throttling, independent of item batching."""
    model_config = ConfigDict(frozen=True)

    page_size: int = MAX_PAGE_SIZE
    pages_per_batch: int = -1
    pagination_interval: int = 0  # milliseconds


class OperationContext(BaseModel):
    """Per-item configuration, resolved once and never mutated."""
    model_config = ConfigDict(frozen=True)

    business_object: Optional[str] = None
    rec_id: Optional[str] = None
    related_rec_id: Optional[str] = None
    relationship_name: Optional[str] = None
    filter: Optional[str] = None
    select: Optional[str] = None
    order_by_field: Optional[str] = None
    order_direction: str = "asc"
    return_all: bool = False
    limit: int = 50
    pagination: PaginationOptions = PaginationOptions()
    batching: BatchOptions = BatchOptions()
    strip_null: bool = False
    sort_output: bool = True
    ignore_conversion_errors: bool = False

    @property
    def collection(self) -> str:
        # The service pluralizes every business object by appending 's'
        return f"{self.business_object}s"

    @property
    def desired_count(self) -> Union[int, str]:
        return "all" if self.return_all else self.limit


class ErrorDetail(BaseModel):
    message: str = DEFAULT_ERROR_MESSAGE
    description: Optional[Union[str, List[str]]] = None

    def joined_description(self, separator: str = "\n") -> Optional[str]:
        if isinstance(self.description, list):
            return separator.join(self.description)
        return self.description


class Assignment(BaseModel):
    name: str
    value: Any = None
    type: Optional[FieldType] = None


class BinaryData(BaseModel):
    data: str  # base64
    mime_type: str = "application/octet-stream"
    file_name: Optional[str] = None


class ExecutionItem(BaseModel):
    data: Dict[str, Any] = {}
    binary: Optional[Dict[str, BinaryData]] = None
    paired_item: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ExecutionItem':
        """Accept ``{"json": ..., "binary": ...}`` envelopes as well as bare records."""
        if isinstance(raw, dict) and isinstance(raw.get("json"), dict):
            binary = raw.get("binary") or None
            if binary:
                binary = {key: BinaryData(**value) if isinstance(value, dict) else value
                          for key, value in binary.items()}
            return cls(data=raw["json"], binary=binary)
        return cls(data=dict(raw or {}))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"json": self.data}
        if self.binary:
            out["binary"] = {key: value.model_dump() for key, value in self.binary.items()}
        if self.paired_item is not None:
            out["pairedItem"] = {"item": self.paired_item}
        return out


class ItemResult(BaseModel):
    """Outcome of one item handler invocation: output items or the failure."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[ExecutionItem] = []
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, items: List[ExecutionItem]) -> 'ItemResult':
        return cls(items=items)

    @classmethod
    def failure(cls, error: BaseException) -> 'ItemResult':
        return cls(error=error)


class PollCursor(BaseModel):
    last_time_checked: Optional[str] = None  # ISO-8601 UTC instant


class SavedSearch(BaseModel):
    name: str
    action_id: str

    @property
    def display_name(self) -> str:
        return self.name.replace('_', ' ')

    @property
    def value(self) -> str:
        return f"{self.name}|{self.action_id}"


class TemplateParameter(BaseModel):
    rec_id: str
    name: str
    display_type: Optional[str] = None


class Option(BaseModel):
    """A name/value pair offered for selection, e.g. an employee or subscription."""
    name: str
    value: str
