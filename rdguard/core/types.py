"""
rdguard Core Types — Shared enums, dataclasses, and exceptions.

This module centralizes all type definitions used across the rdguard codebase.
All layers (core, proxy) import types from here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from rdguard.core.constants import (
    SANDBOX_MAX_MEMORY_MB, SANDBOX_MAX_OUTPUT_BYTES, SANDBOX_RUNTIME_OVERHEAD_MB,
    SANDBOX_TIMEOUT_MS,
)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class SecurityError(Exception):
    """Base exception for all rdguard security errors."""
    pass


class RequestValidationError(SecurityError):
    """Raised when a request is malformed, before any classification."""
    pass


class PolicyBlock(SecurityError):
    """Raised when a classified command is disallowed by the active policy."""

    def __init__(self, message: str, risk_level: 'RiskLevel'):
        super().__init__(message)
        self.risk_level = risk_level


class SandboxFailure(SecurityError):
    """Raised when trial code is rejected, times out, or throws."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class PersistenceFailure(SecurityError):
    """Raised when an audit entry cannot be written."""
    pass


class DecryptionFailure(SecurityError):
    """Raised when stored ciphertext cannot be decrypted."""
    pass


class SecurityLevelError(SecurityError):
    """Raised when a security level change is not permitted."""
    pass


# =============================================================================
# ENUMS
# =============================================================================

class SecurityLevel(Enum):
    """Process-wide security level. Selects one SecurityProfile."""
    STRICT = "strict"            # Maximum security - blocks most function calls
    BALANCED = "balanced"        # Default - allows safe UI interactions
    PERMISSIVE = "permissive"    # Minimal restrictions - allows more operations
    DEVELOPMENT = "development"  # Least restrictive - local testing only

    @classmethod
    def parse(cls, value: str) -> 'SecurityLevel':
        """Case-insensitive lookup by value. Raises ValueError if unknown."""
        return cls(value.strip().lower())


class RiskLevel(Enum):
    """Ordinal risk classification of a command.

    Ordered by danger: LOW < MEDIUM < HIGH < CRITICAL.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


# =============================================================================
# DATACLASSES — Policy
# =============================================================================

@dataclass(frozen=True)
class SecurityProfile:
    """Capability set and risk threshold for one security level.

    Frozen: changing behaviour means changing the active level, never
    editing a profile.
    """
    level: SecurityLevel
    allow_ui_interactions: bool
    allow_dom_queries: bool
    allow_property_access: bool
    allow_assignments: bool
    allowed_function_names: FrozenSet[str]
    risk_threshold: RiskLevel

    @property
    def allows_all_functions(self) -> bool:
        return '*' in self.allowed_function_names


@dataclass(frozen=True)
class SecuritySettings:
    """Pipeline switches derived from a security level."""
    default_risk_threshold: RiskLevel
    enable_input_validation: bool
    enable_audit_log: bool
    enable_sandbox: bool
    enable_screenshot_encryption: bool


# =============================================================================
# DATACLASSES — Classification and sandbox
# =============================================================================

@dataclass
class ValidationVerdict:
    """Result of classifying one command. Produced fresh per request."""
    is_valid: bool
    errors: List[str]
    risk_level: RiskLevel
    sanitized_command: str
    risk_factors: List[str] = field(default_factory=list)
    safe_shape: bool = False  # Evaluation content matched a read-only shape


@dataclass
class SandboxLimits:
    """Resource ceilings for one sandbox trial."""
    timeout_ms: int = SANDBOX_TIMEOUT_MS
    max_memory_mb: int = SANDBOX_MAX_MEMORY_MB
    runtime_overhead_mb: int = SANDBOX_RUNTIME_OVERHEAD_MB
    max_output_size_bytes: int = SANDBOX_MAX_OUTPUT_BYTES

    @property
    def rss_limit_bytes(self) -> int:
        """Resident-memory ceiling for the child: heap plus runtime allowance."""
        return (self.max_memory_mb + self.runtime_overhead_mb) * 1024 * 1024


@dataclass
class SandboxResult:
    """Outcome of one sandbox trial execution."""
    success: bool
    execution_time_ms: float
    value: Any = None
    error: Optional[str] = None
    timed_out: bool = False
    memory_used_bytes: Optional[int] = None


# =============================================================================
# DATACLASSES — Audit
# =============================================================================

@dataclass
class AuditLogEntry:
    """One append-only record of a security decision."""
    timestamp: str
    session_id: str
    action: str
    risk_level: RiskLevel
    success: bool
    execution_time_ms: float
    command: Optional[str] = None
    error: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            'timestamp': self.timestamp,
            'session_id': self.session_id,
            'action': self.action,
            'command': self.command,
            'risk_level': self.risk_level.value,
            'success': self.success,
            'error': self.error,
            'execution_time_ms': self.execution_time_ms,
            'source_ip': self.source_ip,
            'user_agent': self.user_agent,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'AuditLogEntry':
        """Deserialize from dictionary. Raises KeyError/ValueError if malformed."""
        return cls(
            timestamp=d['timestamp'],
            session_id=d['session_id'],
            action=d['action'],
            risk_level=RiskLevel(d['risk_level']),
            success=bool(d['success']),
            execution_time_ms=float(d.get('execution_time_ms', 0)),
            command=d.get('command'),
            error=d.get('error'),
            source_ip=d.get('source_ip'),
            user_agent=d.get('user_agent'),
        )


@dataclass
class CommandCount:
    command: str
    count: int


@dataclass
class SecurityMetrics:
    """Aggregate view over a window of audit entries."""
    total_requests: int = 0
    blocked_requests: int = 0
    high_risk_requests: int = 0
    critical_risk_requests: int = 0
    average_execution_time_ms: float = 0.0
    top_commands: List[CommandCount] = field(default_factory=list)
    block_rate: float = 0.0


@dataclass
class SearchCriteria:
    """Filters for audit log search. All fields optional."""
    action: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    since: Optional[Any] = None   # datetime
    until: Optional[Any] = None   # datetime
    limit: Optional[int] = None


# =============================================================================
# DATACLASSES — Requests
# =============================================================================

@dataclass
class SecureCommandRequest:
    """A command submitted by the agent-facing command surface."""
    command: Any
    args: Any = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    operation_type: str = "command"


@dataclass
class SecureCommandResult:
    """Verdict returned by SecurityManager.execute_securely()."""
    blocked: bool
    success: bool
    risk_level: RiskLevel
    session_id: str
    execution_time_ms: float
    error: Optional[str] = None
    sandboxed: bool = False
    sandbox_result: Optional[SandboxResult] = None
    sanitized_command: Optional[str] = None  # Handed to the target when allowed

    @property
    def allowed(self) -> bool:
        return not self.blocked and self.success


__all__ = [
    # Exceptions
    'SecurityError',
    'RequestValidationError',
    'PolicyBlock',
    'SandboxFailure',
    'PersistenceFailure',
    'DecryptionFailure',
    'SecurityLevelError',

    # Enums
    'SecurityLevel',
    'RiskLevel',

    # Policy
    'SecurityProfile',
    'SecuritySettings',

    # Classification and sandbox
    'ValidationVerdict',
    'SandboxLimits',
    'SandboxResult',

    # Audit
    'AuditLogEntry',
    'CommandCount',
    'SecurityMetrics',
    'SearchCriteria',

    # Requests
    'SecureCommandRequest',
    'SecureCommandResult',
]
