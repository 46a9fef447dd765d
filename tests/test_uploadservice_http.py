import json

import httpx
import pytest

from filedrop.uploadservice.adapters.http import HttpAccountDirectory, HttpAuthClient, HttpMetadataRegistry
from filedrop.uploadservice.adapters.inmemory import InMemoryObjectStore
from filedrop.uploadservice.contracts import Credentials, ErrorKind, FileRecord, UploadRequest
from filedrop.uploadservice.errors import (
    AccountDirectoryUnavailable,
    AccountNotFound,
    AuthRejected,
    AuthUnavailable,
    RegistrationError,
)
from filedrop.uploadservice.service import UploadOrchestrator

BASE_URL = "http://nginx"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)


def make_record() -> FileRecord:
    return FileRecord(
        etag="abc123",
        name="photo",
        file_type="png",
        size=2048,
        last_modify="2024-05-01T12:00:00.000Z",
        owner_id="42",
        location_uri="http://minio:9000/alice/photo.png",
    )


# ---- Auth ----
@pytest.mark.asyncio
async def test_auth_ok_posts_credentials():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"success": True})

    async with HttpAuthClient(BASE_URL, client=mock_client(handler)) as auth:
        await auth.authenticate("alice", "pw")

    assert seen == [("POST", "/authUser", {"username": "alice", "password": "pw"})]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [
        (400, AuthRejected),
        (401, AuthRejected),
        (403, AuthRejected),
        (404, AuthRejected),
        (500, AuthUnavailable),
        (503, AuthUnavailable),
    ],
)
async def test_auth_status_mapping(status, error):
    auth = HttpAuthClient(BASE_URL, client=mock_client(lambda request: httpx.Response(status)))
    with pytest.raises(error):
        await auth.authenticate("alice", "bad")


@pytest.mark.asyncio
async def test_auth_transport_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    auth = HttpAuthClient(BASE_URL, client=mock_client(handler))
    with pytest.raises(AuthUnavailable):
        await auth.authenticate("alice", "pw")


# ---- Account directory ----
@pytest.mark.asyncio
async def test_resolve_account_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, request.url.params.get("username")))
        return httpx.Response(200, json={"account_id": 42})

    directory = HttpAccountDirectory(BASE_URL, client=mock_client(handler))
    assert await directory.resolve("alice") == "42"
    assert seen == [("/getAccountIdByUsername", "alice")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response,error",
    [
        (httpx.Response(404), AccountNotFound),
        (httpx.Response(200, json={}), AccountNotFound),
        (httpx.Response(200, text="not json"), AccountNotFound),
        (httpx.Response(500), AccountDirectoryUnavailable),
    ],
)
async def test_resolve_failures(response, error):
    directory = HttpAccountDirectory(BASE_URL, client=mock_client(lambda request: response))
    with pytest.raises(error):
        await directory.resolve("alice")


# ---- Metadata registry ----
@pytest.mark.asyncio
async def test_insert_posts_wire_record():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"id": 7})

    registry = HttpMetadataRegistry(BASE_URL, client=mock_client(handler))
    assert await registry.insert(make_record()) == "7"

    path, body = seen[0]
    assert path == "/addFile"
    assert body == {
        "etag": "abc123",
        "name": "photo",
        "file_type": "png",
        "size": 2048,
        "last_modify": "2024-05-01T12:00:00.000Z",
        "owner_id": "42",
        "minIOServer": "http://minio:9000/alice/photo.png",
    }


@pytest.mark.asyncio
async def test_insert_failure_raises_registration_error():
    registry = HttpMetadataRegistry(BASE_URL, client=mock_client(lambda request: httpx.Response(500)))
    with pytest.raises(RegistrationError):
        await registry.insert(make_record())


@pytest.mark.asyncio
async def test_insert_accepts_created_status():
    registry = HttpMetadataRegistry(BASE_URL, client=mock_client(lambda request: httpx.Response(201, json={"file_id": 9})))
    assert await registry.insert(make_record()) == "9"


# ---- Wired together ----
@pytest.mark.asyncio
async def test_orchestrator_over_http_adapters_compensates_on_registry_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/authUser":
            return httpx.Response(200)
        if request.url.path == "/getAccountIdByUsername":
            return httpx.Response(200, json={"account_id": 42})
        if request.url.path == "/addFile":
            return httpx.Response(500, json={"error": "db down"})
        return httpx.Response(404)

    client = mock_client(handler)
    store = InMemoryObjectStore(scheme="http", host="minio", port=9000)
    svc = UploadOrchestrator(
        auth=HttpAuthClient(BASE_URL, client=client),
        accounts=HttpAccountDirectory(BASE_URL, client=client),
        store=store,
        registry=HttpMetadataRegistry(BASE_URL, client=client),
    )
    req = UploadRequest(
        data=b"x" * 2048,
        filename="photo.png",
        content_type="image/png",
        credentials=Credentials(username="alice", secret="pw"),
    )

    outcome = await svc.submit_upload(req)
    await client.aclose()

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.REGISTRATION_ERROR
    assert store.containers() == ["alice"]
    assert store.get("alice", "photo.png") is None
