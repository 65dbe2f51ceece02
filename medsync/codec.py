"""
Snapshot Codec

Wire format: one UTF-8 JSON object
    { "<table_name>": [ {column: value, ...}, ... ], ... }
No length prefix, version field, compression or checksum. The message
boundary is the sender's half-close, handled by the client and listener, so
only this module knows how a snapshot looks as bytes.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional, Union

import aiofiles
from pydantic import AllowInfNan, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

from medsync.errors import ErrorType, MalformedSnapshot
from medsync.models import Snapshot

logger = logging.getLogger(__name__)

ENCODING = "utf-8"

# Strict scalars: no coercion of "1" -> 1, and booleans are rejected.
# NaN and Infinity parse as JSON here but encode_snapshot refuses them.
_FiniteFloat = Annotated[StrictFloat, AllowInfNan(False)]
_SnapshotShape = Dict[str, List[Dict[str, Optional[Union[StrictInt, _FiniteFloat, StrictStr]]]]]
_snapshot_adapter: TypeAdapter = TypeAdapter(_SnapshotShape)


def encode_snapshot(snapshot: Snapshot, indent: Optional[int] = None) -> bytes:
    """
    Serialize a snapshot to bytes.

    Raises:
        MalformedSnapshot: if a value is not a JSON scalar (e.g. a BLOB column)
    """
    try:
        text = json.dumps(snapshot, ensure_ascii=False, allow_nan=False, indent=indent)
    except (TypeError, ValueError) as e:
        raise MalformedSnapshot(
            f"Snapshot contains a value that cannot be encoded: {e}",
            error_type=ErrorType.UNSUPPORTED_VALUE
        ) from e

    return text.encode(ENCODING)


def decode_snapshot(data: bytes) -> Snapshot:
    """
    Parse bytes into a snapshot.

    All-or-nothing: either a fully validated snapshot is returned or
    MalformedSnapshot is raised.
    """
    try:
        text = data.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise MalformedSnapshot(
            f"Snapshot is not valid {ENCODING}: {e}",
            error_type=ErrorType.INVALID_ENCODING,
            details={"bytes": len(data)}
        ) from e

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedSnapshot(
            f"Snapshot is not valid JSON: {e.msg} at position {e.pos}",
            error_type=ErrorType.INVALID_ENCODING,
            details={"bytes": len(data)}
        ) from e

    try:
        return _snapshot_adapter.validate_python(parsed)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise MalformedSnapshot(
            f"Snapshot does not match table -> rows shape ({e.error_count()} errors, first at '{location}')",
            error_type=ErrorType.INVALID_SHAPE,
            details={"error_count": e.error_count(), "first_error": location}
        ) from e


async def write_snapshot_file(path: Union[str, Path], snapshot: Snapshot) -> Path:
    """Write a snapshot as pretty-printed JSON (indent 2)"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = encode_snapshot(snapshot, indent=2)
    async with aiofiles.open(path, "wb") as f:
        await f.write(payload)

    logger.info(f"Snapshot written to {path} ({len(payload)} bytes)")
    return path


async def read_snapshot_file(path: Union[str, Path]) -> Snapshot:
    """Load a snapshot previously written by write_snapshot_file"""
    async with aiofiles.open(Path(path), "rb") as f:
        data = await f.read()

    return decode_snapshot(data)
