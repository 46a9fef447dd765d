from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, Tuple

from .contracts import FileMetadata, UploadRequest

_UNITS = ("Bytes", "KB", "MB")
_K = 1024


class ClockPort(Protocol):
    def now(self) -> datetime: ...


class SystemClock(ClockPort):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def format_bytes(size: int) -> str:
    """
    Human-readable size. The quotient is rounded up so a 1536 byte file
    reads "2 KB" and nothing below a full unit shows as "0 KB".
    Sizes past the MB range stay in MB.
    """
    if size < 0:
        raise ValueError("size must be >= 0")
    if size == 0:
        return "0 Bytes"
    i = 0
    while i < len(_UNITS) - 1 and size >= _K ** (i + 1):
        i += 1
    quotient = -(-size // _K ** i)  # ceil
    return f"{quotient} {_UNITS[i]}"


def split_filename(filename: str) -> Tuple[str, str]:
    idx = filename.rfind(".")
    if idx == -1:
        return filename, ""
    return filename[:idx], filename[idx + 1:]


def iso_timestamp(ts: datetime) -> str:
    # matches JS Date.toISOString(): millisecond precision, 'Z' suffix
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def derive_metadata(req: UploadRequest, owner: str, clock: ClockPort) -> FileMetadata:
    name, extension = split_filename(req.filename)
    size = len(req.data)
    return FileMetadata(
        name=name,
        extension=extension,
        content_type=req.content_type,
        true_size=size,
        formatted_size=format_bytes(size),
        last_modified=iso_timestamp(clock.now()),
        owner=owner or None,
    )
