from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .contracts import FileRecord, OrphanRecord


class AuthPort(ABC):
    @abstractmethod
    async def authenticate(self, username: str, secret: str) -> None:
        """
        Confirm the credentials. Raises AuthRejected for bad credentials and
        AuthUnavailable when the service cannot answer.
        """


class AccountDirectoryPort(ABC):
    @abstractmethod
    async def resolve(self, username: str) -> str:
        """
        Map a username to its account identifier.
        Raises AccountNotFound / AccountDirectoryUnavailable.
        """


class ObjectStorePort(ABC):
    @abstractmethod
    async def ensure_container(self, name: str) -> None:
        """
        Create the container if absent. Must not fail when it already exists,
        including when concurrent callers race to create it.
        """

    @abstractmethod
    async def put(self, container: str, key: str, data: bytes, size: int, content_type: str) -> str:
        """Write one object and return its integrity tag (etag)."""

    @abstractmethod
    async def delete(self, container: str, key: str) -> None:
        """Remove an object. Already-absent objects are not an error."""

    @abstractmethod
    def object_uri(self, container: str, key: str) -> str:
        """Fully-qualified 'scheme://host:port/container/key' for an object."""


class MetadataRegistryPort(ABC):
    @abstractmethod
    async def insert(self, record: FileRecord) -> str:
        """Persist a file record and return its id. Raises RegistrationError."""


class OrphanLedgerPort(ABC):
    """Where objects left behind by a failed compensation are reported."""

    @abstractmethod
    def record(self, orphan: OrphanRecord) -> None: ...

    @abstractmethod
    def list(self) -> List[OrphanRecord]: ...
