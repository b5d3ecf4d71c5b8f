"""
rdguard — Security decision pipeline for AI-driven remote debugging

A layered architecture for letting an AI agent drive a live desktop
(Electron) application without handing it arbitrary code execution:

- core/  : Profiles, risk classification, audit log, field encryption
- proxy/ : Sandbox executor and the Security Manager orchestrator

Usage:
    from rdguard.proxy import SecurityManager
    python -m rdguard check get_window_info
"""

from rdguard.core.version import __version__

__all__ = ['__version__']
