from __future__ import annotations
from typing import Optional

from .contracts import *
from .errors import *
from .config import UploadSettings, UploadTimeouts
from .ledger import InMemoryOrphanLedger
from .metadata import SystemClock, derive_metadata, format_bytes, split_filename
from .ports import AccountDirectoryPort, AuthPort, MetadataRegistryPort, ObjectStorePort, OrphanLedgerPort
from .service import UploadOrchestrator
from .adapters import (
    HttpAccountDirectory, HttpAuthClient, HttpMetadataRegistry,
    InMemoryAccountDirectory, InMemoryAuth, InMemoryMetadataRegistry, InMemoryObjectStore,
    S3ObjectStore,
)

def make_orchestrator_from_env(cfg: Optional[UploadSettings] = None):
    # The orchestrator owns the adapters built here; release them with `await orchestrator.aclose()`.
    cfg = cfg or UploadSettings()
    timeouts = UploadTimeouts.from_settings(cfg)
    if cfg.UPLOAD_ADAPTER.lower() == "memory":
        return UploadOrchestrator(
            auth=InMemoryAuth(),
            accounts=InMemoryAccountDirectory(),
            store=InMemoryObjectStore(),
            registry=InMemoryMetadataRegistry(),
            timeouts=timeouts,
        ), "memory"
    elif cfg.UPLOAD_ADAPTER.lower() == "remote":
        if not cfg.OBJECT_STORE_ACCESS_KEY or not cfg.OBJECT_STORE_SECRET_KEY:
            raise RuntimeError("OBJECT_STORE_ACCESS_KEY and OBJECT_STORE_SECRET_KEY are required for the remote adapters")
        return UploadOrchestrator(
            auth=HttpAuthClient(cfg.SERVICES_BASE_URL, timeout=cfg.AUTH_TIMEOUT_S),
            accounts=HttpAccountDirectory(cfg.SERVICES_BASE_URL, timeout=cfg.ACCOUNT_TIMEOUT_S),
            store=S3ObjectStore(
                endpoint_url=cfg.OBJECT_STORE_ENDPOINT,
                access_key=cfg.OBJECT_STORE_ACCESS_KEY,
                secret_key=cfg.OBJECT_STORE_SECRET_KEY,
                region=cfg.OBJECT_STORE_REGION,
                read_timeout=cfg.STORAGE_TIMEOUT_S,
            ),
            registry=HttpMetadataRegistry(cfg.SERVICES_BASE_URL, timeout=cfg.REGISTRY_TIMEOUT_S),
            timeouts=timeouts,
        ), "remote"
    else:
        raise RuntimeError(f"Unknown UPLOAD_ADAPTER: {cfg.UPLOAD_ADAPTER}")
