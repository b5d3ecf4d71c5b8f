#!/usr/bin/env python3
"""
rdguard Core Resources — Sandbox Resource Limiter
===================================================
Bounds one sandbox child process:
- Resident memory sampling (via psutil) against the configured ceiling
- Peak memory tracking for reporting
- Output truncation for anything echoed back to callers

Import from: rdguard.core.resources.limiter
"""

import asyncio
import logging
from typing import Dict, Optional

import psutil

from rdguard.core.types import SandboxLimits
from rdguard.core.constants import SANDBOX_MEMORY_POLL_INTERVAL

logger = logging.getLogger("rdguard.core.resources.limiter")


class ProcessMemoryLimiter:
    """Samples a child's RSS until it exits or crosses the ceiling."""

    def __init__(self, pid: int, limits: SandboxLimits = None,
                 interval: float = SANDBOX_MEMORY_POLL_INTERVAL):
        self.limits = limits or SandboxLimits()
        self.interval = interval
        self.peak_rss = 0
        self.exceeded = False
        try:
            self.process: Optional[psutil.Process] = psutil.Process(pid)
        except psutil.NoSuchProcess:
            self.process = None

    def check_memory(self) -> Dict:
        if not self.process:
            return {'ok': True, 'memory_mb': 0}

        try:
            rss = self.process.memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return {'ok': True, 'memory_mb': 0}
        self.peak_rss = max(self.peak_rss, rss)
        return {
            'ok': rss <= self.limits.rss_limit_bytes,
            'memory_mb': round(rss / (1024 * 1024), 2),
            'limit_mb': self.limits.max_memory_mb + self.limits.runtime_overhead_mb,
        }

    async def watch(self) -> bool:
        """Poll until the process is gone or over the ceiling.

        Returns True if the ceiling was exceeded.
        """
        while self.process and self.process.is_running():
            mem = self.check_memory()
            if not mem['ok']:
                self.exceeded = True
                logger.warning("Sandbox child %d over memory ceiling: %sMB > %sMB",
                               self.process.pid, mem['memory_mb'], mem['limit_mb'])
                return True
            await asyncio.sleep(self.interval)
        return False


def truncate_output(output: str, limits: SandboxLimits = None) -> str:
    limits = limits or SandboxLimits()
    encoded = output.encode('utf-8')
    if len(encoded) > limits.max_output_size_bytes:
        max_chars = limits.max_output_size_bytes // 4
        return output[:max_chars] + "\n... [OUTPUT TRUNCATED]"
    return output


__all__ = ['ProcessMemoryLimiter', 'truncate_output', 'SandboxLimits']
