from __future__ import annotations

import logging
import threading
from typing import List

from .contracts import OrphanRecord
from .ports import OrphanLedgerPort

log = logging.getLogger("filedrop.uploadservice.ledger")


class InMemoryOrphanLedger(OrphanLedgerPort):
    """
    Objects whose compensating delete failed, kept for out-of-band
    reconciliation. Process-local; adequate for tests + a single worker.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._orphans: List[OrphanRecord] = []

    def record(self, orphan: OrphanRecord) -> None:
        with self._lock:
            self._orphans.append(orphan)
        log.error(
            "orphan.recorded container=%s key=%s etag=%s reason=%s",
            orphan.location.container, orphan.location.key, orphan.etag, orphan.reason.value,
        )

    def list(self) -> List[OrphanRecord]:
        with self._lock:
            return list(self._orphans)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orphans)
