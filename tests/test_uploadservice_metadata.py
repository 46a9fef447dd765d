from datetime import datetime, timedelta, timezone

import pytest

from filedrop.uploadservice.contracts import Credentials, UploadRequest
from filedrop.uploadservice.metadata import derive_metadata, format_bytes, iso_timestamp, split_filename


class FixedClock:
    def __init__(self, ts: datetime) -> None:
        self.ts = ts

    def now(self) -> datetime:
        return self.ts


@pytest.mark.parametrize(
    "size,expected",
    [
        (0, "0 Bytes"),
        (1, "1 Bytes"),
        (1023, "1023 Bytes"),
        (1024, "1 KB"),
        (1025, "2 KB"),
        (1536, "2 KB"),
        (1048575, "1024 KB"),
        (1048576, "1 MB"),
        (5 * 1024 ** 3, "5120 MB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_format_bytes_rejects_negative():
    with pytest.raises(ValueError):
        format_bytes(-1)


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("report.pdf", ("report", "pdf")),
        ("README", ("README", "")),
        ("archive.tar.gz", ("archive.tar", "gz")),
        (".env", ("", "env")),
        ("trailing.", ("trailing", "")),
    ],
)
def test_split_filename(filename, expected):
    assert split_filename(filename) == expected


def test_iso_timestamp_uses_millis_and_z_suffix():
    ts = datetime(2024, 5, 1, 14, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
    assert iso_timestamp(ts) == "2024-05-01T12:00:00.123Z"


def test_derive_metadata():
    req = UploadRequest(
        data=b"x" * 2048,
        filename="photo.png",
        content_type="image/png",
        credentials=Credentials(username="alice", secret="pw"),
    )
    clock = FixedClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))

    meta = derive_metadata(req, owner="alice", clock=clock)

    assert meta.name == "photo"
    assert meta.extension == "png"
    assert meta.content_type == "image/png"
    assert meta.true_size == 2048
    assert meta.formatted_size == "2 KB"
    assert meta.last_modified == "2024-05-01T12:00:00.000Z"
    assert meta.owner == "alice"

    wire = meta.model_dump(by_alias=True)
    assert wire["type"] == "image/png"
    assert wire["trueSize"] == 2048
    assert wire["formatedSize"] == "2 KB"
    assert wire["lastModified"] == "2024-05-01T12:00:00.000Z"


def test_metadata_is_frozen():
    req = UploadRequest(data=b"abc", filename="a.txt", credentials=Credentials(username="bob", secret="s"))
    meta = derive_metadata(req, owner="bob", clock=FixedClock(datetime.now(timezone.utc)))
    with pytest.raises(Exception):
        meta.name = "other"
