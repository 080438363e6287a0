"""Use cases for inspecting notification audit entries."""

from fieldnotify.domain.entities import AuditEntry, AuditOutcome

from .notifications.ports import AuditSink


def list_audit_entries(
    audit_log: AuditSink,
    *,
    job_id: str | None = None,
    recipient_id: str | None = None,
    outcome: AuditOutcome | str | None = None,
    limit: int | None = 100,
) -> list[AuditEntry]:
    """Return audit entries, newest first, optionally filtered."""

    outcome_value = AuditOutcome(outcome).value if outcome is not None else None
    return audit_log.list(
        job_id=job_id, recipient_id=recipient_id, outcome=outcome_value, limit=limit
    )


def summarize_audit_outcomes(audit_log: AuditSink) -> dict[str, int]:
    """Return the number of audit entries per outcome, including empty outcomes."""

    counts = audit_log.count_by_outcome()
    return {outcome.value: counts.get(outcome.value, 0) for outcome in AuditOutcome}


__all__ = ["list_audit_entries", "summarize_audit_outcomes"]
