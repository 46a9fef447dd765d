from __future__ import annotations
from dataclasses import dataclass
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class UploadSettings(BaseSettings):
    UPLOAD_ADAPTER: str = Field(default="memory")  # "memory" | "remote"
    # Auth / account directory / metadata registry (behind one gateway)
    SERVICES_BASE_URL: str = Field(default="http://nginx")
    # Object store (S3 API, MinIO in deployment)
    OBJECT_STORE_ENDPOINT: str = Field(default="http://minio:9000")
    OBJECT_STORE_ACCESS_KEY: Optional[str] = None
    OBJECT_STORE_SECRET_KEY: Optional[str] = None
    OBJECT_STORE_REGION: str = Field(default="us-east-1")
    # Per-call timeouts, seconds
    AUTH_TIMEOUT_S: float = 5.0
    ACCOUNT_TIMEOUT_S: float = 5.0
    REGISTRY_TIMEOUT_S: float = 5.0
    STORAGE_TIMEOUT_S: float = 30.0
    COMPENSATION_TIMEOUT_S: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = False


@dataclass
class UploadTimeouts:
    """Per external call bound, in seconds. None disables the bound."""
    auth: Optional[float] = 5.0
    account: Optional[float] = 5.0
    registry: Optional[float] = 5.0
    storage: Optional[float] = 30.0  # ensure_container only; the write itself is bounded by the store client
    compensation: Optional[float] = 10.0

    @classmethod
    def from_settings(cls, cfg: UploadSettings) -> "UploadTimeouts":
        return cls(
            auth=cfg.AUTH_TIMEOUT_S,
            account=cfg.ACCOUNT_TIMEOUT_S,
            registry=cfg.REGISTRY_TIMEOUT_S,
            storage=cfg.STORAGE_TIMEOUT_S,
            compensation=cfg.COMPENSATION_TIMEOUT_S,
        )
