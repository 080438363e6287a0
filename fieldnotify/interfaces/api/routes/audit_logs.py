"""Routes for inspecting notification audit entries."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fieldnotify.application.use_cases.audit_logs import (
    list_audit_entries as list_audit_entries_uc,
    summarize_audit_outcomes as summarize_audit_outcomes_uc,
)
from fieldnotify.application.use_cases.notifications.ports import AuditSink
from fieldnotify.domain.entities import AuditEntry, AuditOutcome
from fieldnotify.domain.errors import AuditUnavailableError
from fieldnotify.interfaces.api.dependencies import get_audit_log
from fieldnotify.interfaces.api.schemas import AuditEntryRead

router = APIRouter(prefix="/audit-logs", tags=["audit_logs"])


def _audit_entry_to_read_model(entry: AuditEntry) -> AuditEntryRead:
    return AuditEntryRead.model_validate(entry)


@router.get("/", response_model=list[AuditEntryRead])
def list_audit_entries(
    job_id: str | None = None,
    recipient_id: str | None = None,
    outcome: AuditOutcome | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    audit_log: AuditSink = Depends(get_audit_log),
) -> list[AuditEntryRead]:
    """Return audit entries, newest first, optionally filtered."""

    try:
        entries = list_audit_entries_uc(
            audit_log, job_id=job_id, recipient_id=recipient_id, outcome=outcome, limit=limit
        )
    except AuditUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason
        ) from exc
    return [_audit_entry_to_read_model(entry) for entry in entries]


@router.get("/summary", response_model=dict[str, int])
def summarize_audit_outcomes(audit_log: AuditSink = Depends(get_audit_log)) -> dict[str, int]:
    """Return the number of audit entries per outcome."""

    try:
        return summarize_audit_outcomes_uc(audit_log)
    except AuditUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason
        ) from exc


__all__ = ["router"]
