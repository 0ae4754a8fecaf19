"""
Extracts a readable message/description pair from the many shapes a failure can take.

The service reports errors as OData envelopes, as its own
``{code, description, message}`` documents, or as a bare ``Message`` field, and
the payload may arrive as a parsed object, a JSON string, or raw bytes. Nothing
in here is allowed to raise: every decode attempt falls through to the next
strategy and ultimately to the error's own message.
"""

import json
from typing import Any, Callable, List, Optional, Union

from .constants import DEFAULT_ERROR_MESSAGE
from .models import ErrorDetail


Description = Optional[Union[str, List[str]]]


def _looks_like_byte_mapping(payload: dict) -> bool:
    """True for mappings keyed '0', '1', '2', ... (a serialized byte buffer)."""
    if not payload:
        return False
    return all(key == index or key == str(index) for index, key in enumerate(payload.keys()))


def _is_buffer_envelope(payload: dict) -> bool:
    return payload.get('type') == 'Buffer' and isinstance(payload.get('data'), list)


def decode_structured(payload: Any) -> Optional[dict]:
    """Strategy 1: the payload is already a plain JSON object."""
    if isinstance(payload, dict) and not _looks_like_byte_mapping(payload) and not _is_buffer_envelope(payload):
        return payload
    return None


def decode_byte_sequence(payload: Any) -> Optional[Any]:
    """Strategy 2: the payload is a byte sequence holding a JSON document."""
    if isinstance(payload, (bytes, bytearray)):
        values = payload
    elif isinstance(payload, dict) and _is_buffer_envelope(payload):
        values = payload['data']
    elif isinstance(payload, dict) and _looks_like_byte_mapping(payload):
        values = list(payload.values())
    elif isinstance(payload, list) and payload and all(
            isinstance(v, int) and not isinstance(v, bool) for v in payload):
        values = payload
    else:
        return None

    try:
        return json.loads(bytes(values).decode('utf-8'))
    except (ValueError, TypeError):
        return None


def decode_json_string(payload: Any) -> Optional[Any]:
    """Strategy 3: the payload is a JSON document serialized as text."""
    if not isinstance(payload, str):
        return None
    try:
        return json.loads(payload)
    except ValueError:
        return None


DECODE_STRATEGIES: List[Callable[[Any], Any]] = [decode_structured, decode_byte_sequence, decode_json_string]


def decode_payload(payload: Any) -> Any:
    """Apply the decode strategies in order; the raw payload is returned if none applies."""
    for strategy in DECODE_STRATEGIES:
        decoded = strategy(payload)
        if decoded is not None:
            return decoded
    return payload


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def _message_list(value: Any) -> Union[str, List[str]]:
    if isinstance(value, list):
        return [_to_text(entry) for entry in value]
    return _to_text(value)


def _field(source: Any, name: str) -> Any:
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def _response_body(error: Any) -> Any:
    body = _field(error, 'response_body')
    if body is not None:
        return body
    # requests.HTTPError and friends keep the response object instead
    response = _field(error, 'response')
    if isinstance(response, dict):
        return response.get('body')
    if response is not None:
        content = getattr(response, 'content', None)
        if isinstance(content, (bytes, bytearray)) and content:
            return content
    return None


def _own_message(error: Any) -> Optional[str]:
    if isinstance(error, BaseException):
        text = str(error)
        return text or None
    message = _field(error, 'message')
    return message if isinstance(message, str) and message else None


def _classify(error: Any) -> ErrorDetail:
    message = DEFAULT_ERROR_MESSAGE
    description: Description = None

    seeded = _field(error, 'description')
    if seeded:
        description = _message_list(seeded) if isinstance(seeded, list) else [_to_text(seeded)]

    context = _field(error, 'context')
    context_data = _field(context, 'data') if context is not None else None
    if context_data is not None:
        data = decode_payload(context_data)
        if isinstance(data, dict):
            if data.get('description'):
                message = _to_text(data['description'])
            elif data.get('code'):
                message = f"Error {data['code']}"
            if description is None and data.get('message'):
                description = _message_list(data['message'])

    body = _response_body(error)
    if body is not None:
        body = decode_payload(body)
        envelope = body.get('error') if isinstance(body, dict) else None
        if isinstance(envelope, dict) and isinstance(envelope.get('message'), dict) \
                and envelope['message'].get('value'):
            if description is None:
                description = _to_text(envelope['message']['value'])
            message = _to_text(envelope.get('code') or message)
        elif isinstance(envelope, dict) and envelope.get('message'):
            if description is None:
                description = _to_text(envelope['message'])
            message = _to_text(envelope.get('code') or message)
        elif isinstance(body, dict) and body.get('Message'):
            if description is None:
                description = _to_text(body['Message'])
        elif isinstance(body, dict) and (body.get('code') or body.get('description') or body.get('message')):
            if body.get('description'):
                message = _to_text(body['description'])
            elif body.get('code'):
                message = f"Error {body['code']}"
            if description is None and body.get('message'):
                description = _message_list(body['message'])
        elif isinstance(body, (dict, list)) and description is None:
            description = _to_text(body)

    if not description:
        description = _own_message(error)

    return ErrorDetail(message=message, description=description or None)


def classify(error: Any) -> ErrorDetail:
    """Derive an ErrorDetail from any failure object. Never raises."""
    try:
        return _classify(error)
    except Exception:
        try:
            fallback = _own_message(error)
        except Exception:
            fallback = None
        return ErrorDetail(description=fallback)


def error_message(error: Any) -> str:
    """Single-line form of the classified error."""
    detail = classify(error)
    if detail.description:
        return detail.joined_description("; ")
    return detail.message
