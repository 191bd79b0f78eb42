"""
api/routes/v1/audit.py -- Audit trail viewing and export (admin only).

Routes:
  GET /api/v1/audit                    -- newest-first entries, optional ?limit=
  GET /api/v1/audit/export?format=csv  -- file download (csv or json)

The audit store has no update or delete path, so neither does this router.
Refused requests are themselves audited as admin_action_denied by the
session service.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from api.models import AuditEntryResponse, ExportFormatEnum
from auth.dependencies import get_access_token, get_auth_service, get_source_ip

router = APIRouter()


@router.get("/audit", response_model=list[AuditEntryResponse])
def list_audit(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
) -> list[AuditEntryResponse]:
    service = get_auth_service(request)
    entries = service.list_audit_log(get_access_token(request), get_source_ip(request), limit=limit)
    return [AuditEntryResponse.from_entry(e) for e in entries]


@router.get("/audit/export")
def export_audit(
    request: Request,
    format: ExportFormatEnum = Query(default=ExportFormatEnum.csv),
) -> Response:
    """Download the full audit log as an attachment.

    CSV output carries a UTF-8 BOM so spreadsheet tools detect the encoding,
    and cells that could be read as formulas are neutralised.
    """
    service = get_auth_service(request)
    body, media_type, filename = service.export_audit_log(
        get_access_token(request), get_source_ip(request), format.value
    )
    return Response(
        content=body,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )
