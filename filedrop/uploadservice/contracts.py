from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class UploadStage(str, Enum):
    RECEIVED = "RECEIVED"
    AUTHENTICATING = "AUTHENTICATING"
    CONTAINER_READY = "CONTAINER_READY"
    STORED = "STORED"
    METADATA_DERIVED = "METADATA_DERIVED"
    ACCOUNT_RESOLVED = "ACCOUNT_RESOLVED"
    REGISTERED = "REGISTERED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "MalformedInput"
    AUTH_REJECTED = "AuthRejected"
    AUTH_UNAVAILABLE = "AuthUnavailable"
    STORAGE_UNAVAILABLE = "StorageUnavailable"
    STORAGE_WRITE_ERROR = "StorageWriteError"
    ACCOUNT_RESOLUTION_ERROR = "AccountResolutionError"
    REGISTRATION_ERROR = "RegistrationError"
    # internal only: logged and recorded in the orphan ledger, never returned
    COMPENSATION_FAILED = "CompensationFailed"


# ---------- Input ----------

class Credentials(BaseModel):
    username: str = ""
    secret: SecretStr = SecretStr("")


class UploadRequest(BaseModel):
    data: bytes = b""
    filename: str = ""
    content_type: str = "application/octet-stream"
    credentials: Credentials = Field(default_factory=Credentials)


# ---------- Workflow state ----------

class Principal(BaseModel):
    username: str
    account_id: Optional[str] = None


class StorageLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    container: str
    key: str


class FileMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    extension: str
    content_type: str = Field(alias="type")
    true_size: int = Field(alias="trueSize")
    formatted_size: str = Field(alias="formatedSize")
    last_modified: str = Field(alias="lastModified")
    owner: Optional[str] = None


class FileRecord(BaseModel):
    """Registry entry linking an account to a stored object."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    etag: str
    name: str
    file_type: str
    size: int
    last_modify: str
    owner_id: str
    location_uri: str = Field(alias="minIOServer")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class OrphanRecord(BaseModel):
    location: StorageLocation
    location_uri: str
    etag: Optional[str] = None
    reason: ErrorKind
    error: str
    recorded_at: datetime


# ---------- Outcome ----------

class UploadSucceeded(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    etag: str
    metadata: FileMetadata


class UploadFailed(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[False] = False
    error_kind: ErrorKind = Field(alias="errorKind")
    message: str
    stage: UploadStage


UploadOutcome = Union[UploadSucceeded, UploadFailed]
