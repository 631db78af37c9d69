# Overview: Error taxonomy for tire transitions, audits and storage failures.

from __future__ import annotations


class TransitionError(ValueError):
    """
    A state-machine precondition was violated.

    Reported synchronously, never retried, never partially applied.
    `code` is stable and safe to hand to clients.
    """
    code = "transition_error"
    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": str(self), "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(TransitionError):
    code = "not_found"
    http_status = 404


class DuplicateBarcode(TransitionError):
    code = "duplicate_barcode"
    http_status = 409


class NotAvailable(TransitionError):
    code = "not_available"
    http_status = 409


class NotWithOperator(TransitionError):
    code = "not_with_operator"
    http_status = 409


class CapacityExceeded(TransitionError):
    code = "capacity_exceeded"
    http_status = 409


class BlockedOperatorUnitToDisposal(TransitionError):
    code = "blocked_operator_unit_to_disposal"
    http_status = 409


class MissingDestination(TransitionError):
    """A reusable tire must always land in a concrete container."""
    code = "missing_destination"


class InvalidCommand(TransitionError):
    code = "invalid_command"


class StorageUnavailable(RuntimeError):
    """
    Transient storage failure (lock timeout, connection loss).

    The only retryable class; callers re-run the whole command.
    """
    code = "storage_unavailable"
    http_status = 503


class Inconsistent(RuntimeError):
    """
    Rollback after a failed write itself failed.

    Fatal: the registry and the ledger may disagree.
    """
    code = "inconsistent"
    http_status = 500


class LedgerIntegrityError(RuntimeError):
    """Replaying the history does not reproduce a coherent status chain."""
    code = "ledger_integrity"
    http_status = 500


class AuditError(ValueError):
    """Raised when audit session operations fail. The session stays usable."""
    code = "audit_error"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class AlreadyScanned(AuditError):
    code = "already_scanned"
    http_status = 409


class UnknownUnit(AuditError):
    code = "unknown_unit"
    http_status = 404


class EmptyAudit(AuditError):
    code = "empty_audit"


class AuditClosed(AuditError):
    code = "audit_closed"
    http_status = 409


class AuditNotFound(AuditError):
    code = "audit_not_found"
    http_status = 404
