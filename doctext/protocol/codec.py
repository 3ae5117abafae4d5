"""Single decode/encode point for the JSON-lines worker protocol.

Every inbound payload is parsed once into the closed ``ProtocolMessage``
set. Anything that does not match a known tag or carries a malformed field
set raises ``ProtocolError``; nothing is silently ignored.
"""

import base64
import binascii
import json
from collections.abc import Callable
from typing import Any

from doctext.protocol.exceptions import ProtocolError
from doctext.protocol.messages import (
    ErrorReport,
    ExtractRequest,
    FullText,
    PageCount,
    PartialText,
    Progress,
    ProtocolMessage,
    Ready,
)

PROTOCOL_VERSION = 1
PAYLOAD_ENCODING = "base64"


def decode(raw: str | bytes) -> ProtocolMessage:
    """Decode one worker payload into a protocol message.

    Raises:
        ProtocolError: on invalid JSON, unknown tags or malformed fields.
    """
    data = _parse_object(raw)
    tag = data.get("type")
    decoder = _DECODERS.get(tag) if isinstance(tag, str) else None
    if decoder is None:
        raise ProtocolError(f"Unknown message type: {tag!r}")
    return decoder(data)


def encode(message: ProtocolMessage) -> str:
    """Serialize a protocol message into one JSON line (no trailing newline)."""
    if isinstance(message, PageCount):
        payload: dict[str, object] = {"totalPages": message.total_pages}
    elif isinstance(message, Progress):
        payload = {"currentPage": message.current_page, "totalPages": message.total_pages}
    elif isinstance(message, PartialText):
        payload = {"text": message.text, "isFinal": message.is_final}
    elif isinstance(message, FullText):
        payload = {"text": message.text}
    elif isinstance(message, ErrorReport):
        payload = {"error": message.message}
    elif isinstance(message, Ready):
        payload = {}
    else:
        raise ProtocolError(f"Cannot encode {type(message).__name__}")
    return json.dumps({"type": message.tag, **payload})


def encode_request(request: ExtractRequest) -> str:
    return json.dumps(
        {
            "type": request.tag,
            "version": PROTOCOL_VERSION,
            "encoding": PAYLOAD_ENCODING,
            "document": base64.b64encode(request.document).decode("ascii"),
            "mimeType": request.mime_type,
            "batchSize": request.batch_size,
            "streamPartial": request.stream_partial,
            "engine": request.engine,
        }
    )


def decode_request(raw: str | bytes) -> ExtractRequest:
    """Decode the worker's inbound request.

    Raises:
        ProtocolError: on unknown type, unsupported version/encoding or bad fields.
    """
    data = _parse_object(raw)
    if data.get("type") != ExtractRequest.tag:
        raise ProtocolError(f"Unknown request type: {data.get('type')!r}")
    version = data.get("version")
    if version != PROTOCOL_VERSION:
        raise ProtocolError(f"Unsupported protocol version: {version!r}")
    encoding = data.get("encoding")
    if encoding != PAYLOAD_ENCODING:
        raise ProtocolError(f"Unsupported payload encoding: {encoding!r}")
    try:
        document = base64.b64decode(_require_str(data, "document"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolError(f"'document' is not valid base64: {exc}") from exc
    return ExtractRequest(
        document=document,
        mime_type=_require_str(data, "mimeType"),
        batch_size=_require_positive_int(data, "batchSize"),
        stream_partial=_require_bool(data, "streamPartial"),
        engine=_require_str(data, "engine"),
    )


def _parse_object(raw: str | bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProtocolError("Payload must be a JSON object")
    return parsed


def _decode_page_count(data: dict[str, Any]) -> PageCount:
    return PageCount(total_pages=_require_positive_int(data, "totalPages"))


def _decode_progress(data: dict[str, Any]) -> Progress:
    current = _require_positive_int(data, "currentPage")
    total = _require_positive_int(data, "totalPages")
    if current > total:
        raise ProtocolError(f"'currentPage' {current} exceeds 'totalPages' {total}")
    return Progress(current_page=current, total_pages=total)


def _decode_partial_text(data: dict[str, Any]) -> PartialText:
    return PartialText(text=_require_str(data, "text"), is_final=_require_bool(data, "isFinal"))


def _decode_full_text(data: dict[str, Any]) -> FullText:
    return FullText(text=_require_str(data, "text"))


def _decode_error(data: dict[str, Any]) -> ErrorReport:
    return ErrorReport(message=_require_str(data, "error"))


def _decode_ready(data: dict[str, Any]) -> Ready:
    return Ready()


_DECODERS: dict[str, Callable[[dict[str, Any]], ProtocolMessage]] = {
    PageCount.tag: _decode_page_count,
    Progress.tag: _decode_progress,
    PartialText.tag: _decode_partial_text,
    FullText.tag: _decode_full_text,
    ErrorReport.tag: _decode_error,
    Ready.tag: _decode_ready,
}


def _require_positive_int(data: dict[str, Any], field: str) -> int:
    value = data.get(field)
    # bool is an int subclass and never a valid count
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ProtocolError(f"'{field}' must be a positive integer, got {value!r}")
    return value


def _require_str(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise ProtocolError(f"'{field}' must be a string, got {type(value).__name__}")
    return value


def _require_bool(data: dict[str, Any], field: str) -> bool:
    value = data.get(field)
    if not isinstance(value, bool):
        raise ProtocolError(f"'{field}' must be a boolean, got {value!r}")
    return value
