from __future__ import annotations

from typing import Any, Dict, Optional

from .contracts import ErrorKind


class UploadServiceError(Exception):
    """Base error for the upload workflow and its port adapters."""

    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE
    code: str = "upload.internal_error"
    system: str = "uploadservice"
    message: str = "Upload failed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.message)
        self.details = details or {}


class MalformedInput(UploadServiceError):
    kind = ErrorKind.MALFORMED_INPUT
    code = "upload.malformed_input"
    message = "File data is missing or malformed"


# ---- AuthPort ----
class AuthRejected(UploadServiceError):
    kind = ErrorKind.AUTH_REJECTED
    code = "auth.rejected"
    system = "auth"
    message = "Login failed"


class AuthUnavailable(UploadServiceError):
    kind = ErrorKind.AUTH_UNAVAILABLE
    code = "auth.unavailable"
    system = "auth"
    message = "Authentication service unavailable"


# ---- AccountDirectoryPort ----
class AccountResolutionError(UploadServiceError):
    kind = ErrorKind.ACCOUNT_RESOLUTION_ERROR
    code = "account.resolution_failed"
    system = "account_directory"
    message = "Could not resolve account"


class AccountNotFound(AccountResolutionError):
    code = "account.not_found"
    message = "Account not found"


class AccountDirectoryUnavailable(AccountResolutionError):
    code = "account.unavailable"
    message = "Account directory unavailable"


# ---- ObjectStorePort ----
class ObjectStoreError(UploadServiceError):
    system = "object_store"
    code = "storage.error"


class StorageUnavailable(ObjectStoreError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    code = "storage.unavailable"
    message = "Object store unavailable"


class StorageWriteError(ObjectStoreError):
    kind = ErrorKind.STORAGE_WRITE_ERROR
    code = "storage.write_failed"
    message = "Error writing file to object store"


# ---- MetadataRegistryPort ----
class RegistrationError(UploadServiceError):
    kind = ErrorKind.REGISTRATION_ERROR
    code = "registry.insert_failed"
    system = "metadata_registry"
    message = "Error inserting metadata into the database"
