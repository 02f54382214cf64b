from .audit_log import AuditLog, get_audit_log, redact_secrets

__all__ = ["AuditLog", "get_audit_log", "redact_secrets"]
