"""Canonical serialization for domain events.

canonical_bytes(obj) -> Result[bytes, str]: deterministic JSON bytes.
content_hash(obj) -> Result[str, str]: SHA-256 hex of canonical bytes.

Integers are emitted as JSON integers of arbitrary size; token amounts are
never rounded through float.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from datetime import timedelta
from enum import Enum
from typing import Any

from fractor.core.identifiers import Address
from fractor.core.result import Err, Ok
from fractor.core.types import NonEmptyStr, UtcDatetime


def _to_serializable(obj: object) -> Any:  # noqa: PLR0911
    """Recursively convert a domain object to a JSON-compatible value."""
    if obj is None:
        return None
    # bool before int (bool is subclass of int)
    if isinstance(obj, bool | int | str):
        return obj
    if isinstance(obj, Address):
        return obj.value
    if isinstance(obj, NonEmptyStr):
        return obj.value
    if isinstance(obj, UtcDatetime):
        return obj.value.isoformat()
    if isinstance(obj, timedelta):
        return int(obj.total_seconds())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (tuple, list)):
        return [_to_serializable(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _to_serializable(v) for k, v in sorted(obj.items())}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        result: dict[str, Any] = {"_type": type(obj).__name__}
        for name in sorted(f.name for f in dataclasses.fields(obj)):
            result[name] = _to_serializable(getattr(obj, name))
        return result
    msg = f"Cannot serialize {type(obj).__name__}"
    raise TypeError(msg)


def canonical_bytes(obj: object) -> Ok[bytes] | Err[str]:
    """Convert a domain value to canonical JSON bytes. Never raises."""
    try:
        serializable = _to_serializable(obj)
    except TypeError as e:
        return Err(f"Unsupported type in canonical serialization: {e}")
    return Ok(
        json.dumps(serializable, sort_keys=True, separators=(",", ":")).encode("utf-8")
    )


def content_hash(obj: object) -> Ok[str] | Err[str]:
    """SHA-256 hex digest of canonical_bytes(obj)."""
    match canonical_bytes(obj):
        case Err() as e:
            return e
        case Ok(b):
            return Ok(hashlib.sha256(b).hexdigest())
