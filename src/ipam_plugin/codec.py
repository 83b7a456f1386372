"""
JSON codec for the plugin protocol.

Responses are written the way the daemon's own encoder writes them: compact,
one value per line, HTML-sensitive characters escaped. Requests are read the
way its decoder reads them: the first JSON value in the body wins and
anything after it is ignored.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import RequestDecodeError
from .types import WireModel

CONTENT_TYPE = "application/vnd.docker.plugins.v1.1+json"

_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

M = TypeVar("M", bound=WireModel)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid character '{name[0]}' looking for beginning of value")


_decoder = json.JSONDecoder(parse_constant=_reject_constant)


def encode_response(value: BaseModel | dict[str, Any] | None) -> bytes:
    """Encode one response value as a compact JSON line."""
    if isinstance(value, WireModel):
        payload: Any = value.to_wire()
    elif isinstance(value, BaseModel):
        payload = value.model_dump(by_alias=True)
    else:
        payload = value
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return (text.translate(_ESCAPES) + "\n").encode("utf-8")


def decode_request(body: bytes, model: type[M], *, path: str | None = None) -> M:
    """
    Decode a request body into ``model``.

    Raises:
        RequestDecodeError: The body is empty, is not JSON, is a JSON value
            other than an object or ``null``, or carries a field of the
            wrong type.
    """
    text = body.decode("utf-8", errors="replace").lstrip(" \t\r\n")
    if not text:
        raise RequestDecodeError("EOF", path=path)

    try:
        value, _ = _decoder.raw_decode(text)
    except ValueError as exc:
        raise RequestDecodeError(str(exc), path=path, cause=exc) from exc

    if value is not None and not isinstance(value, dict):
        raise RequestDecodeError(
            f"json: cannot unmarshal {type(value).__name__} into {model.__name__}",
            path=path,
        )

    try:
        return model.from_wire(value)
    except ValidationError as exc:
        raise RequestDecodeError(
            f"json: invalid {model.__name__}: {exc.error_count()} field error(s)",
            path=path,
            cause=exc,
        ) from exc


__all__ = ["CONTENT_TYPE", "encode_response", "decode_request"]
