from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Set

from opentelemetry import trace

from .config import UploadTimeouts
from .contracts import (
    ErrorKind,
    FileMetadata,
    FileRecord,
    OrphanRecord,
    Principal,
    StorageLocation,
    UploadFailed,
    UploadOutcome,
    UploadRequest,
    UploadStage,
    UploadSucceeded,
)
from .errors import (
    AccountResolutionError,
    AuthRejected,
    AuthUnavailable,
    MalformedInput,
    RegistrationError,
    StorageUnavailable,
    StorageWriteError,
    UploadServiceError,
)
from .ledger import InMemoryOrphanLedger
from .metadata import ClockPort, SystemClock, derive_metadata
from .ports import (
    AccountDirectoryPort,
    AuthPort,
    MetadataRegistryPort,
    ObjectStorePort,
    OrphanLedgerPort,
)

log = logging.getLogger("filedrop.uploadservice")
tracer = trace.get_tracer("filedrop.uploadservice")

# Caller-facing text per failure kind. Collaborator error text stays in the logs.
_FAILURE_MESSAGES = {
    err.kind: err.message
    for err in (
        MalformedInput,
        AuthRejected,
        AuthUnavailable,
        StorageUnavailable,
        StorageWriteError,
        AccountResolutionError,
        RegistrationError,
    )
}

# stage -> (kind reported when the call fails, kinds an adapter error may report itself)
_STAGE_FAILURES = {
    UploadStage.AUTHENTICATING: (ErrorKind.AUTH_UNAVAILABLE, {ErrorKind.AUTH_REJECTED, ErrorKind.AUTH_UNAVAILABLE}),
    UploadStage.CONTAINER_READY: (ErrorKind.STORAGE_UNAVAILABLE, set()),
    UploadStage.STORED: (ErrorKind.STORAGE_WRITE_ERROR, set()),
    UploadStage.ACCOUNT_RESOLVED: (ErrorKind.ACCOUNT_RESOLUTION_ERROR, set()),
    UploadStage.REGISTERED: (ErrorKind.REGISTRATION_ERROR, set()),
}


@contextmanager
def _span(name: str, **attrs):
    with tracer.start_as_current_span(name) as span:
        for k, v in attrs.items():
            if v is not None:
                span.set_attribute(f"upload.{k}", v)
        yield span


class _StageFailed(Exception):
    def __init__(self, stage: UploadStage, kind: ErrorKind, cause: Optional[BaseException] = None):
        super().__init__(f"{stage.value}: {kind.value}")
        self.stage = stage
        self.kind = kind
        self.cause = cause


@dataclass
class _UploadRun:
    """Explicit per-request state; never shared between requests."""
    stage: UploadStage = UploadStage.RECEIVED
    principal: Optional[Principal] = None
    location: Optional[StorageLocation] = None
    etag: Optional[str] = None
    metadata: Optional[FileMetadata] = None

    @property
    def stored(self) -> bool:
        return self.etag is not None


class UploadOrchestrator:
    """
    Orchestrates one upload: validate -> authenticate -> ensure container ->
    store bytes -> derive metadata -> resolve account -> register record.

    Success requires both the object write and the registry insert. If the
    workflow fails after the object was written, the object is deleted before
    the failure is returned; when that delete fails too, the object is
    recorded in the orphan ledger and the caller still sees the original
    failure.
    """

    def __init__(
        self,
        *,
        auth: AuthPort,
        accounts: AccountDirectoryPort,
        store: ObjectStorePort,
        registry: MetadataRegistryPort,
        ledger: Optional[OrphanLedgerPort] = None,
        timeouts: Optional[UploadTimeouts] = None,
        clock: Optional[ClockPort] = None,
    ) -> None:
        self.auth = auth
        self.accounts = accounts
        self.store = store
        self.registry = registry
        self.ledger = ledger if ledger is not None else InMemoryOrphanLedger()
        self.timeouts = timeouts or UploadTimeouts()
        self.clock = clock or SystemClock()
        self._inflight: Set[asyncio.Task] = set()

    # ------------------------
    # API
    # ------------------------
    async def submit_upload(self, req: UploadRequest) -> UploadOutcome:
        # The workflow runs in its own task: a caller that goes away must not
        # abandon a write mid-flight or skip the compensating delete.
        task = asyncio.ensure_future(self._run(req))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def wait_inflight(self) -> None:
        """Wait for workflows whose callers were cancelled to reach a terminal state."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain in-flight workflows, then close adapters that hold connections."""
        await self.wait_inflight()
        for adapter in (self.auth, self.accounts, self.store, self.registry):
            close = getattr(adapter, "aclose", None)
            if close is not None:
                await close()

    # ------------------------
    # Workflow
    # ------------------------
    async def _run(self, req: UploadRequest) -> UploadOutcome:
        t0 = time.time()
        run = _UploadRun()
        username = req.credentials.username
        try:
            # 1) Input
            self._validate(req)

            # 2) Authenticate; nothing is persisted before this succeeds
            self._advance(run, UploadStage.AUTHENTICATING, username=username)
            with _span("upload.authenticate", username=username):
                await self._call(
                    run.stage,
                    self.auth.authenticate(username, req.credentials.secret.get_secret_value()),
                    self.timeouts.auth,
                )
            run.principal = Principal(username=username)

            # 3) Container
            location = StorageLocation(container=username.lower(), key=req.filename)
            self._advance(run, UploadStage.CONTAINER_READY, container=location.container)
            with _span("upload.ensure_container", container=location.container):
                await self._call(run.stage, self.store.ensure_container(location.container), self.timeouts.storage)
            run.location = location

            # 4) Bytes. First externally visible side effect.
            size = len(req.data)
            self._advance(run, UploadStage.STORED, container=location.container, key=location.key, size=size)
            with _span("upload.put", container=location.container, key=location.key, size=size):
                run.etag = await self._call(
                    run.stage,
                    self.store.put(location.container, location.key, req.data, size, req.content_type),
                    None,
                )
            log.info("upload.stored container=%s key=%s size=%s etag=%s", location.container, location.key, size, run.etag)

            # 5) Metadata (pure)
            self._advance(run, UploadStage.METADATA_DERIVED)
            run.metadata = derive_metadata(req, owner=username, clock=self.clock)

            # 6) Account id
            self._advance(run, UploadStage.ACCOUNT_RESOLVED, username=username)
            with _span("upload.resolve_account", username=username):
                account_id = await self._call(
                    run.stage, self.accounts.resolve(username), self.timeouts.account
                )
            if account_id is None or str(account_id) == "":
                log.warning("upload.account_missing user=%s", username)
                raise _StageFailed(run.stage, ErrorKind.ACCOUNT_RESOLUTION_ERROR)
            # directories may hand back numeric ids; the registry wants the opaque string
            run.principal.account_id = str(account_id)

            # 7) Registry
            self._advance(run, UploadStage.REGISTERED, account_id=run.principal.account_id)
            record = self._build_record(run)
            with _span("upload.register", account_id=run.principal.account_id, etag=run.etag):
                record_id = await self._call(run.stage, self.registry.insert(record), self.timeouts.registry)

        except _StageFailed as failure:
            compensated = None
            if run.stored:
                compensated = await self._compensate(run, failure)
            return self._fail(run, failure, t0, compensated)

        run.stage = UploadStage.COMPLETED
        log.info(
            "upload.completed user=%s container=%s key=%s etag=%s record_id=%s size=%s dur_ms=%s",
            username, run.location.container, run.location.key, run.etag, record_id,
            run.metadata.true_size, int((time.time() - t0) * 1000),
        )
        return UploadSucceeded(etag=run.etag, metadata=run.metadata)

    # ------------------------
    # Helpers
    # ------------------------
    def _validate(self, req: UploadRequest) -> None:
        problems = []
        if not req.data:
            problems.append("data")
        if not req.filename or not req.filename.strip():
            problems.append("filename")
        if not req.credentials.username:
            problems.append("username")
        if not req.credentials.secret.get_secret_value():
            problems.append("secret")
        if problems:
            log.warning("upload.malformed missing=%s", ",".join(problems))
            raise _StageFailed(UploadStage.RECEIVED, ErrorKind.MALFORMED_INPUT, MalformedInput(details={"missing": problems}))

    def _build_record(self, run: _UploadRun) -> FileRecord:
        loc = run.location
        try:
            return FileRecord(
                etag=run.etag,
                name=run.metadata.name,
                file_type=run.metadata.extension,
                size=run.metadata.true_size,
                last_modify=run.metadata.last_modified,
                owner_id=run.principal.account_id,
                location_uri=self.store.object_uri(loc.container, loc.key),
            )
        except Exception as e:
            log.exception("upload.record_error container=%s key=%s", loc.container, loc.key)
            raise _StageFailed(UploadStage.REGISTERED, ErrorKind.REGISTRATION_ERROR, e)

    def _object_uri(self, loc: StorageLocation) -> str:
        try:
            return self.store.object_uri(loc.container, loc.key)
        except Exception as e:
            log.error("upload.object_uri_failed container=%s key=%s error=%r", loc.container, loc.key, e)
            return f"{loc.container}/{loc.key}"

    def _advance(self, run: _UploadRun, stage: UploadStage, **ctx: Any) -> None:
        run.stage = stage
        log.debug("upload.stage stage=%s %s", stage.value, " ".join(f"{k}={v}" for k, v in ctx.items()))

    async def _call(self, stage: UploadStage, op: Awaitable[Any], timeout: Optional[float]) -> Any:
        default_kind, own_kinds = _STAGE_FAILURES[stage]
        try:
            if timeout is None:
                return await op
            return await asyncio.wait_for(op, timeout)
        except asyncio.TimeoutError as e:
            log.warning("upload.timeout stage=%s timeout_s=%s", stage.value, timeout)
            raise _StageFailed(stage, default_kind, e)
        except UploadServiceError as e:
            kind = e.kind if e.kind in own_kinds else default_kind
            log.warning("upload.stage_failed stage=%s kind=%s code=%s system=%s error=%s",
                        stage.value, kind.value, e.code, e.system, e)
            raise _StageFailed(stage, kind, e)
        except Exception as e:
            log.exception("upload.stage_error stage=%s kind=%s", stage.value, default_kind.value)
            raise _StageFailed(stage, default_kind, e)

    async def _compensate(self, run: _UploadRun, failure: _StageFailed) -> bool:
        loc = run.location
        with _span("upload.compensate", container=loc.container, key=loc.key, reason=failure.kind.value):
            try:
                op = self.store.delete(loc.container, loc.key)
                if self.timeouts.compensation is None:
                    await op
                else:
                    await asyncio.wait_for(op, self.timeouts.compensation)
            except Exception as e:
                # fail-soft: the caller gets the original failure, the orphan goes to the ledger
                log.error("upload.compensation_failed container=%s key=%s etag=%s reason=%s error=%r",
                          loc.container, loc.key, run.etag, failure.kind.value, e)
                self.ledger.record(
                    OrphanRecord(
                        location=loc,
                        location_uri=self._object_uri(loc),
                        etag=run.etag,
                        reason=failure.kind,
                        error=f"{ErrorKind.COMPENSATION_FAILED.value}: {e!r}",
                        recorded_at=self.clock.now(),
                    )
                )
                return False
        log.warning("upload.compensated container=%s key=%s etag=%s reason=%s",
                    loc.container, loc.key, run.etag, failure.kind.value)
        return True

    def _fail(
        self, run: _UploadRun, failure: _StageFailed, t0: float, compensated: Optional[bool] = None
    ) -> UploadFailed:
        run.stage = UploadStage.FAILED
        log.info("upload.failed stage=%s kind=%s compensated=%s dur_ms=%s",
                 failure.stage.value, failure.kind.value, compensated, int((time.time() - t0) * 1000))
        return UploadFailed(
            error_kind=failure.kind,
            message=_FAILURE_MESSAGES[failure.kind],
            stage=failure.stage,
        )
