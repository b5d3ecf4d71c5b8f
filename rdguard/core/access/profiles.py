"""
rdguard Core Access — Security Profiles
=========================================
Immutable table mapping each SecurityLevel to its capability set and risk
threshold, plus the pipeline switches derived from a level.

Profiles are frozen dataclasses held in a read-only mapping. Changing
behaviour means selecting another level, never editing a profile.

Import from: rdguard.core.access.profiles
"""

from types import MappingProxyType

from rdguard.core.types import RiskLevel, SecurityLevel, SecurityProfile, SecuritySettings


# =============================================================================
# FUNCTION ALLOWLISTS
# =============================================================================

_BALANCED_FUNCTIONS = frozenset({
    'querySelector',
    'querySelectorAll',
    'getElementById',
    'getElementsByClassName',
    'getElementsByTagName',
    'getComputedStyle',
    'getBoundingClientRect',
    'focus',
    'blur',
    'scrollIntoView',
    'dispatchEvent',
})

_PERMISSIVE_FUNCTIONS = _BALANCED_FUNCTIONS | frozenset({
    'click',
    'submit',
    'addEventListener',
    'removeEventListener',
})

# =============================================================================
# PROFILE TABLE
# =============================================================================

SECURITY_PROFILES = MappingProxyType({
    SecurityLevel.STRICT: SecurityProfile(
        level=SecurityLevel.STRICT,
        allow_ui_interactions=False,
        allow_dom_queries=False,
        allow_property_access=True,
        allow_assignments=False,
        allowed_function_names=frozenset(),
        risk_threshold=RiskLevel.LOW,
    ),
    SecurityLevel.BALANCED: SecurityProfile(
        level=SecurityLevel.BALANCED,
        allow_ui_interactions=True,
        allow_dom_queries=True,
        allow_property_access=True,
        allow_assignments=False,
        allowed_function_names=_BALANCED_FUNCTIONS,
        risk_threshold=RiskLevel.MEDIUM,
    ),
    SecurityLevel.PERMISSIVE: SecurityProfile(
        level=SecurityLevel.PERMISSIVE,
        allow_ui_interactions=True,
        allow_dom_queries=True,
        allow_property_access=True,
        allow_assignments=True,
        allowed_function_names=_PERMISSIVE_FUNCTIONS,
        risk_threshold=RiskLevel.HIGH,
    ),
    SecurityLevel.DEVELOPMENT: SecurityProfile(
        level=SecurityLevel.DEVELOPMENT,
        allow_ui_interactions=True,
        allow_dom_queries=True,
        allow_property_access=True,
        allow_assignments=True,
        allowed_function_names=frozenset({'*'}),
        risk_threshold=RiskLevel.CRITICAL,
    ),
})


def profile_for(level: SecurityLevel) -> SecurityProfile:
    """Return the profile for a level. Total over SecurityLevel."""
    return SECURITY_PROFILES[level]


def security_settings_for(level: SecurityLevel) -> SecuritySettings:
    """Derive pipeline switches from a level.

    Development is the only level that turns off sandbox trials and
    field encryption.
    """
    hardened = level is not SecurityLevel.DEVELOPMENT
    return SecuritySettings(
        default_risk_threshold=profile_for(level).risk_threshold,
        enable_input_validation=True,
        enable_audit_log=True,
        enable_sandbox=hardened,
        enable_screenshot_encryption=hardened,
    )


__all__ = ['SECURITY_PROFILES', 'profile_for', 'security_settings_for']
