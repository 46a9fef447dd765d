"""HTTP adapters for the auth service, account directory and metadata registry."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..contracts import FileRecord
from ..errors import (
    AccountDirectoryUnavailable,
    AccountNotFound,
    AuthRejected,
    AuthUnavailable,
    RegistrationError,
)
from ..ports import AccountDirectoryPort, AuthPort, MetadataRegistryPort

log = logging.getLogger("filedrop.uploadservice.http")

_REJECTED_STATUSES = {400, 401, 403, 404}


class _ServiceClient:
    """
    Holds one httpx.AsyncClient per adapter.

    Usage:
        async with HttpAuthClient("http://nginx") as auth:
            await auth.authenticate("alice", "pw")
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self._base_url = base_url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def __aenter__(self):
        self._http()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _json(resp: httpx.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


class HttpAuthClient(_ServiceClient, AuthPort):
    async def authenticate(self, username: str, secret: str) -> None:
        try:
            resp = await self._http().post("/authUser", json={"username": username, "password": secret})
        except httpx.HTTPError as e:
            raise AuthUnavailable(f"auth request failed: {e!r}")

        if resp.status_code == 200:
            return
        log.info("auth.rejected username=%s status=%s", username, resp.status_code)
        if resp.status_code in _REJECTED_STATUSES:
            raise AuthRejected(details={"status": resp.status_code})
        raise AuthUnavailable(f"auth service answered {resp.status_code}", details={"status": resp.status_code})


class HttpAccountDirectory(_ServiceClient, AccountDirectoryPort):
    async def resolve(self, username: str) -> str:
        try:
            resp = await self._http().get("/getAccountIdByUsername", params={"username": username})
        except httpx.HTTPError as e:
            raise AccountDirectoryUnavailable(f"account lookup failed: {e!r}")

        if resp.status_code == 404:
            raise AccountNotFound(details={"username": username})
        if resp.status_code != 200:
            raise AccountDirectoryUnavailable(
                f"account directory answered {resp.status_code}", details={"status": resp.status_code}
            )
        account_id = self._json(resp).get("account_id")
        if account_id is None or account_id == "":
            raise AccountNotFound(details={"username": username})
        return str(account_id)


class HttpMetadataRegistry(_ServiceClient, MetadataRegistryPort):
    async def insert(self, record: FileRecord) -> str:
        try:
            resp = await self._http().post("/addFile", json=record.to_wire())
        except httpx.HTTPError as e:
            raise RegistrationError(f"registry request failed: {e!r}")

        if not resp.is_success:
            raise RegistrationError(
                f"registry answered {resp.status_code}", details={"status": resp.status_code}
            )
        body = self._json(resp)
        record_id = body.get("id", body.get("file_id", ""))
        return str(record_id)
