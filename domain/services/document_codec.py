from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import orjson
from pydantic import ValidationError

from domain.errors import MalformedDocumentError
from domain.models import DOCUMENT_FORMAT_VERSION, Document, ViewPan


def serialize_document(document: Document) -> dict[str, Any]:
    payload = document.model_dump(mode="json", by_alias=True, exclude_none=True)
    payload["version"] = DOCUMENT_FORMAT_VERSION
    return payload


def serialize_document_bytes(document: Document) -> bytes:
    return orjson.dumps(serialize_document(document), option=orjson.OPT_INDENT_2)


def deserialize_document(
    payload: object,
    *,
    current_pan: ViewPan | None = None,
    current_scale: float = 1.0,
) -> Document:
    """Build a document from either persisted shape.

    The versioned shape carries ``version`` and ``root``. A legacy payload is
    a bare root node (it has an ``id`` and no ``version``); it takes the
    caller's current pan and scale since it carries no view of its own.
    """
    if not isinstance(payload, Mapping):
        msg = "Unknown format"
        raise MalformedDocumentError(msg)

    if "version" in payload:
        if not isinstance(payload.get("root"), Mapping):
            msg = "Unknown format"
            raise MalformedDocumentError(msg)
        data = dict(payload)
    elif "id" in payload:
        pan = current_pan or ViewPan()
        data = {
            "root": dict(payload),
            "images": [],
            "pan": pan.model_dump(),
            "scale": current_scale,
        }
    else:
        msg = "Unknown format"
        raise MalformedDocumentError(msg)

    try:
        document = Document.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid document: {exc.error_count()} validation error(s)"
        raise MalformedDocumentError(msg) from exc
    document.version = DOCUMENT_FORMAT_VERSION
    return document


def parse_document_bytes(
    raw: bytes | str,
    *,
    current_pan: ViewPan | None = None,
    current_scale: float = 1.0,
) -> Document:
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        msg = f"Invalid JSON: {exc}"
        raise MalformedDocumentError(msg) from exc
    return deserialize_document(payload, current_pan=current_pan, current_scale=current_scale)
