"""
audit/export.py -- CSV and JSON renderings of the audit trail.

CSV output is meant to be opened in a spreadsheet, so two details matter:
  - A UTF-8 byte order mark leads the document so Excel picks the right
    encoding.
  - Cells that begin with =, +, - or @ are prefixed with a tab. Spreadsheet
    applications treat such cells as formulas (CWE-1236); user_email and meta
    carry attacker-controlled text from failed logins, so every cell is
    neutralised.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone

from audit.models import AuditLogEntry

CSV_HEADERS = [
    "ID",
    "Timestamp (UTC)",
    "Event",
    "User Email",
    "User ID",
    "IP Address",
    "Location",
    "Severity",
    "Meta",
]

_FORMULA_PREFIXES = ("=", "+", "-", "@")

EXPORT_FORMATS = ("csv", "json")


def _sanitize_csv_cell(value: object) -> str:
    text = "" if value is None else str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "\t" + text
    return text


def to_csv(entries: list[AuditLogEntry]) -> str:
    """Render entries as a BOM-prefixed CSV document with CRLF line endings."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerow(CSV_HEADERS)
    for e in entries:
        writer.writerow(
            [
                _sanitize_csv_cell(v)
                for v in (
                    e.id,
                    e.timestamp,
                    e.event,
                    e.user_email,
                    e.user_id,
                    e.ip,
                    e.location,
                    e.severity,
                    json.dumps(e.meta) if e.meta else "",
                )
            ]
        )
    return "\ufeff" + buf.getvalue()


def to_json(entries: list[AuditLogEntry]) -> str:
    """Render entries as an indented JSON array."""
    return json.dumps([e.to_dict() for e in entries], indent=2)


def export_filename(fmt: str, now: datetime | None = None) -> str:
    """Return the attachment name, e.g. audit_log_2026-02-20T08-38-33.csv."""
    now = now or datetime.now(timezone.utc)
    return f"audit_log_{now.strftime('%Y-%m-%dT%H-%M-%S')}.{fmt}"


def render(entries: list[AuditLogEntry], fmt: str) -> tuple[str, str]:
    """Return (body, media_type) for the requested export format."""
    if fmt == "json":
        return to_json(entries), "application/json"
    if fmt == "csv":
        return to_csv(entries), "text/csv; charset=utf-8"
    raise ValueError(f"Unsupported export format: {fmt!r}")
