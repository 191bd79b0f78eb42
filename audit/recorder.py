"""
audit/recorder.py -- Best-effort audit emission for the session state machine.

The recorder sits between the auth core and AuditStore. It never raises:
auditing is not transactional with the state change it describes, so a
broken audit database must not turn a successful login into a failed one.
Failures are written to the diagnostic log with the full traceback instead.

Callers emit only after the state change has completed. A missing entry
therefore never implies a completed transition; a present entry does not
prove the response reached the client.
"""

from __future__ import annotations

import logging

from audit.models import LOCATION_UNKNOWN, AuditLogEntry
from audit.store import AuditStore

logger = logging.getLogger("vaultguard.audit")


class AuditRecorder:
    def __init__(self, store: AuditStore) -> None:
        self.store = store

    def record(
        self,
        event: str,
        severity: str,
        *,
        user_id: str,
        user_email: str,
        ip: str,
        location: str = LOCATION_UNKNOWN,
        meta: dict | None = None,
    ) -> AuditLogEntry | None:
        """Append one entry. Returns the stored entry, or None if the sink failed."""
        entry = AuditLogEntry(
            event=event,
            user_id=user_id,
            user_email=user_email,
            ip=ip,
            location=location or LOCATION_UNKNOWN,
            severity=severity,
            meta=meta,
        )
        try:
            return self.store.append(entry)
        except Exception:
            logger.exception("Audit sink rejected %s event (severity=%s, user_id=%s)", event, severity, user_id)
            return None
