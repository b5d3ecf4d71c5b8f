"""
rdguard Core — Version Constants

Single source of truth for the package version.
Import from here instead of hardcoding versions elsewhere.

Usage:
    from rdguard.core.version import __version__
"""

# =============================================================================
# PACKAGE VERSION
# =============================================================================

# Update this when releasing new versions
__version__ = "1.0.0"


__all__ = ['__version__']
