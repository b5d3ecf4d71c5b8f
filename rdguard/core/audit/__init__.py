"""
Audit Layer — Encrypted append-only security event log.

Classes:
- AuditLogger: Per-day JSON-lines log with field encryption, metrics, search
"""

from rdguard.core.audit.logger import AuditLogger, RISK_LOG_LEVELS

__all__ = ['AuditLogger', 'RISK_LOG_LEVELS']
