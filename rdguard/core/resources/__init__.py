"""
Resource Management — Sandbox child bounds.

Classes:
- ProcessMemoryLimiter: psutil RSS watcher for one sandbox child
"""

from rdguard.core.resources.limiter import (
    ProcessMemoryLimiter,
    SandboxLimits,
    truncate_output,
)

__all__ = ['ProcessMemoryLimiter', 'SandboxLimits', 'truncate_output']
