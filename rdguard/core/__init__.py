"""
rdguard Core — Policy, classification and audit primitives

Submodules:
- version   : Version constants (single source of truth)
- types     : Shared enums, dataclasses, exceptions
- constants : Limits, sizes, command vocabulary
- patterns  : Keyword lists and regex tables
- config    : Configuration management
- access/   : Security profiles, command classification
- analysis/ : Obfuscation heuristics
- audit/    : Encrypted append-only audit log, metrics, search
- crypto/   : Audit field encryption and key management
- resources/: Sandbox child resource limits

Quick imports:
    from rdguard.core import CommandValidator, profile_for
    from rdguard.core import SecurityLevel, RiskLevel
    from rdguard.core.version import __version__
"""

from rdguard.core.version import __version__

from rdguard.core.types import (
    # Exceptions
    SecurityError,
    RequestValidationError,
    PolicyBlock,
    SandboxFailure,
    PersistenceFailure,
    DecryptionFailure,
    SecurityLevelError,
    # Enums
    SecurityLevel,
    RiskLevel,
    # Dataclasses
    SecurityProfile,
    SecuritySettings,
    ValidationVerdict,
    SandboxLimits,
    SandboxResult,
    AuditLogEntry,
    CommandCount,
    SecurityMetrics,
    SearchCriteria,
    SecureCommandRequest,
    SecureCommandResult,
)

from rdguard.core.access import (
    SECURITY_PROFILES,
    profile_for,
    security_settings_for,
    CommandValidator,
)
from rdguard.core.config import UnifiedConfig, configure_logging, load_config_file
from rdguard.core.audit import AuditLogger
from rdguard.core.crypto import FieldCipher, load_or_create_key

__all__ = [
    '__version__',

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

    # Dataclasses
    'SecurityProfile',
    'SecuritySettings',
    'ValidationVerdict',
    'SandboxLimits',
    'SandboxResult',
    'AuditLogEntry',
    'CommandCount',
    'SecurityMetrics',
    'SearchCriteria',
    'SecureCommandRequest',
    'SecureCommandResult',

    # Components
    'SECURITY_PROFILES',
    'profile_for',
    'security_settings_for',
    'CommandValidator',
    'UnifiedConfig',
    'configure_logging',
    'load_config_file',
    'AuditLogger',
    'FieldCipher',
    'load_or_create_key',
]
