from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from typing import Dict, List, Optional, Tuple

from ..contracts import FileRecord
from ..errors import AccountNotFound, AuthRejected, StorageWriteError
from ..ports import AccountDirectoryPort, AuthPort, MetadataRegistryPort, ObjectStorePort

log = logging.getLogger("filedrop.uploadservice.adapters")


# ------------------------
# Auth + account directory
# ------------------------
class InMemoryAuth(AuthPort):
    def __init__(self, users: Optional[Dict[str, str]] = None) -> None:
        self._users = dict(users or {})

    async def authenticate(self, username: str, secret: str) -> None:
        if self._users.get(username) != secret:
            raise AuthRejected()


class InMemoryAccountDirectory(AccountDirectoryPort):
    def __init__(self, accounts: Optional[Dict[str, str]] = None) -> None:
        self._accounts = dict(accounts or {})

    async def resolve(self, username: str) -> str:
        # exact match only; casing differences are the directory's contract, not ours
        if username not in self._accounts:
            raise AccountNotFound(details={"username": username})
        return self._accounts[username]


# ------------------------
# Object store
# ------------------------
class InMemoryObjectStore(ObjectStorePort):
    """
    Containers of objects keyed by name. Etags are md5 hex digests, the same
    value S3/MinIO report for single-part uploads.
    """

    def __init__(self, scheme: str = "memory", host: str = "localhost", port: int = 0) -> None:
        self._lock = threading.RLock()
        self._containers: Dict[str, Dict[str, Tuple[bytes, str]]] = {}
        self._base = f"{scheme}://{host}:{port}"

    async def ensure_container(self, name: str) -> None:
        with self._lock:
            self._containers.setdefault(name, {})

    async def put(self, container: str, key: str, data: bytes, size: int, content_type: str) -> str:
        if len(data) != size:
            raise StorageWriteError("size does not match payload length")
        with self._lock:
            if container not in self._containers:
                raise StorageWriteError(f"container does not exist: {container}")
            etag = hashlib.md5(data).hexdigest()
            self._containers[container][key] = (bytes(data), content_type)
        return etag

    async def delete(self, container: str, key: str) -> None:
        with self._lock:
            self._containers.get(container, {}).pop(key, None)

    def object_uri(self, container: str, key: str) -> str:
        return f"{self._base}/{container}/{key}"

    # inspection helpers
    def containers(self) -> List[str]:
        with self._lock:
            return sorted(self._containers)

    def get(self, container: str, key: str) -> Optional[bytes]:
        with self._lock:
            obj = self._containers.get(container, {}).get(key)
            return obj[0] if obj else None


# ------------------------
# Metadata registry
# ------------------------
class InMemoryMetadataRegistry(MetadataRegistryPort):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, FileRecord] = {}

    async def insert(self, record: FileRecord) -> str:
        record_id = f"file_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._records[record_id] = record
        log.debug("registry.insert id=%s owner_id=%s etag=%s", record_id, record.owner_id, record.etag)
        return record_id

    def records(self) -> List[FileRecord]:
        with self._lock:
            return list(self._records.values())
