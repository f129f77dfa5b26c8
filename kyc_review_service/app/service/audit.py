# Audit pipeline: best-effort, append-only recording of privileged actions
import logging
from typing import Any, Dict, Optional

from kyc_review_service.app.models import AuditEntry, AuditResult
from kyc_review_service.app.observability import MetricsRecorder
from kyc_review_service.app.service.interfaces.audit_log_store import AbstractAuditLogStore
from kyc_review_service.app.service.review.models import ReviewContext

logger = logging.getLogger(__name__)

CRITICAL_PREFIX = "CRITICAL: "


class AuditPipeline:
    def __init__(self, audit_log_store: AbstractAuditLogStore, metrics: MetricsRecorder):
        self.audit_log_store = audit_log_store
        self.metrics = metrics

    def record(self, entry: AuditEntry) -> bool:
        """Writes one entry. Never raises; returns False when the entry could not be stored."""
        try:
            self.audit_log_store.append(entry.to_item())
            log = logger.critical if entry.critical_error else logger.info
            log(
                f"Audit: {entry.actor_id} {entry.action} {entry.resource} -> {entry.result.value}",
                extra={"audit_entry_id": entry.entry_id, "request_id": entry.details.get("request_id")},
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {entry.action} for {entry.resource}: {e}",
                exc_info=True,
            )
            self.metrics.increment("AuditLogWriteError", dimensions={"action": entry.action})
            return False

    def _build(
        self,
        context: ReviewContext,
        action: str,
        resource: str,
        result: AuditResult,
        details: Optional[Dict[str, Any]],
        error_message: Optional[str] = None,
        critical_error: bool = False,
    ) -> AuditEntry:
        return AuditEntry(
            actor_id=context.actor_id,
            action=action,
            resource=resource,
            result=result,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
            error_message=error_message,
            details={"request_id": context.request_id, **(details or {})},
            critical_error=critical_error,
        )

    def record_attempt(self, context: ReviewContext, action: str, resource: str, details: Optional[Dict[str, Any]] = None) -> bool:
        return self.record(self._build(context, action, resource, AuditResult.SUCCESS, details))

    def record_success(self, context: ReviewContext, action: str, resource: str, details: Optional[Dict[str, Any]] = None) -> bool:
        return self.record(self._build(context, action, resource, AuditResult.SUCCESS, details))

    def record_failure(
        self,
        context: ReviewContext,
        action: str,
        resource: str,
        error_message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return self.record(self._build(context, action, resource, AuditResult.FAILURE, details, error_message))

    def record_critical(
        self,
        context: ReviewContext,
        action: str,
        resource: str,
        error_message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return self.record(self._build(
            context,
            action,
            resource,
            AuditResult.FAILURE,
            {**(details or {}), "critical_error": True},
            error_message=f"{CRITICAL_PREFIX}{error_message}",
            critical_error=True,
        ))
