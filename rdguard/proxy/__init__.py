"""
rdguard Proxy — Enforcement layer between the agent and the live target.

Classes:
- SecurityManager: Per-request orchestration (classify, sandbox, log, verdict)
- SandboxExecutor: Isolated Node.js trial execution of evaluation code
- ExecutionTarget: Protocol for the live debugging target
"""

from rdguard.proxy.executor import SandboxExecutor
from rdguard.proxy.orchestrator import SecurityManager, ExecutionTarget

__all__ = [
    'SecurityManager',
    'SandboxExecutor',
    'ExecutionTarget',
]
