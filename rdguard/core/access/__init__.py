"""
Access Control — Security profiles and command classification.

Submodules:
- profiles: Immutable level -> profile table and derived settings
- command_validator: Risk classification with evaluation-content mode

Classes:
- CommandValidator: Classifies commands against the active profile
"""

from rdguard.core.access.profiles import (
    SECURITY_PROFILES,
    profile_for,
    security_settings_for,
)

from rdguard.core.access.command_validator import (
    CommandValidator,
    extract_eval_code,
    is_evaluation_command,
)

__all__ = [
    # Profiles
    'SECURITY_PROFILES',
    'profile_for',
    'security_settings_for',

    # Command classification
    'CommandValidator',
    'extract_eval_code',
    'is_evaluation_command',
]
