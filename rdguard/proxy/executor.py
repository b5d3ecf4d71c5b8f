#!/usr/bin/env python3
"""
Sandbox Executor — Isolated trial execution of evaluation code.

Runs a candidate code fragment before it is trusted:
- Static pre-check against a stricter blacklist than the classifier's
- A Node.js vm context exposing only side-effect-free globals
- A separate OS process with a minimal environment in a private temp dir
- Wall-clock timeout and resident-memory ceiling, both enforced by kill
- Temp artifacts removed on every exit path; stack traces never returned
"""

import re
import json
import time
import uuid
import shutil
import asyncio
import logging
import tempfile
from pathlib import Path
from collections import defaultdict
from typing import Any, Iterable, List, Optional, Tuple

from rdguard.core.types import SandboxFailure, SandboxLimits, SandboxResult
from rdguard.core.constants import SANDBOX_ENV, SANDBOX_SCRIPT_NAME, SANDBOX_TEMP_PREFIX
from rdguard.core.patterns import (
    SANDBOX_BLACKLISTED_FUNCTIONS, SANDBOX_BLACKLISTED_OBJECTS, SANDBOX_DANGEROUS_PATTERNS,
    STACK_FRAME_PATTERN,
)
from rdguard.core.resources.limiter import ProcessMemoryLimiter, truncate_output

__all__ = ['SandboxExecutor', 'build_wrapper']

logger = logging.getLogger("rdguard.proxy.executor")

_STACK_FRAME = re.compile(STACK_FRAME_PATTERN, re.M)

# Console output goes to stderr, the result object alone to stdout.
WRAPPER_TEMPLATE = r'''"use strict";

const vm = require('vm');

const resultChannel = process.stdout;
const consoleChannel = process.stderr;

const format = (args) => args.map((a) => {
  if (typeof a === 'string') return a;
  try { return JSON.stringify(a); } catch (e) { return String(a); }
}).join(' ');

const safeConsole = {};
for (const method of ['log', 'error', 'warn', 'info', 'debug']) {
  safeConsole[method] = (...args) => consoleChannel.write('[SANDBOX] ' + format(args) + '\n');
}

const sandboxContext = vm.createContext({
  console: safeConsole,
  Math: Math,
  Date: Date,
  JSON: JSON,
  parseInt: parseInt,
  parseFloat: parseFloat,
  isNaN: isNaN,
  isFinite: isFinite,
  String: String,
  Number: Number,
  Boolean: Boolean,
  Array: Array,
  Object: Object,
  RegExp: RegExp,
  Error: Error,
  TypeError: TypeError,
  RangeError: RangeError,
  SyntaxError: SyntaxError,
  setTimeout: (fn, delay) => {
    if (typeof fn === 'function' && delay === 0) {
      return fn();
    }
    throw new Error('setTimeout not available in sandbox');
  }
});

let payload;
try {
  const result = vm.runInContext(__USER_CODE__, sandboxContext, {
    timeout: __TIMEOUT_MS__,
    displayErrors: false,
    breakOnSigint: true
  });
  payload = JSON.stringify({
    success: true,
    result: result,
    memoryUsed: process.memoryUsage().heapUsed
  });
} catch (error) {
  payload = JSON.stringify({
    success: false,
    error: error && error.message !== undefined ? String(error.message) : String(error),
    timedOut: !!(error && error.code === 'ERR_SCRIPT_EXECUTION_TIMEOUT')
  });
}
resultChannel.write(payload);
'''


def build_wrapper(code: str, timeout_ms: int) -> str:
    """Embed code as a JSON string literal in the vm wrapper program."""
    return (WRAPPER_TEMPLATE
            .replace('__TIMEOUT_MS__', str(int(timeout_ms)))
            .replace('__USER_CODE__', json.dumps(code)))


def scrub_error(message: str) -> str:
    """Drop stack frame lines and bound the length of an error message."""
    scrubbed = _STACK_FRAME.sub('', message)
    scrubbed = '\n'.join(line for line in scrubbed.splitlines() if line.strip())
    return truncate_output(scrubbed.strip())


class SandboxExecutor:
    """Trial-runs evaluation code in a bounded, capability-stripped child process."""

    def __init__(self, limits: SandboxLimits = None, blacklist_extra: Iterable[str] = (),
                 node_executable: str = "node", temp_root: Optional[Path] = None):
        self.limits = limits or SandboxLimits()
        # Resolved against the caller's PATH; the child runs with a scrubbed one
        self.node_executable = shutil.which(node_executable) or node_executable
        self.temp_root = temp_root
        functions = list(SANDBOX_BLACKLISTED_FUNCTIONS) + [n for n in blacklist_extra if n]
        self.function_patterns = [
            (name, re.compile(rf'\b{re.escape(name)}\s*\(')) for name in functions
        ]
        self.object_patterns = [
            (name, re.compile(rf'\b{re.escape(name)}\b')) for name in SANDBOX_BLACKLISTED_OBJECTS
        ]
        self.dangerous_patterns = [re.compile(p) for p in SANDBOX_DANGEROUS_PATTERNS]
        self.stats = defaultdict(int)

    def precheck(self, code: str) -> List[str]:
        errors = []
        for name, pattern in self.function_patterns:
            if pattern.search(code):
                errors.append(f"Forbidden function: {name}")
        for name, pattern in self.object_patterns:
            if pattern.search(code):
                errors.append(f"Forbidden module/object: {name}")
        for pattern in self.dangerous_patterns:
            if pattern.search(code):
                errors.append(f"Dangerous pattern detected: {pattern.pattern}")
        return errors

    async def run(self, code: str) -> SandboxResult:
        """Execute code in isolation. Never raises for sandbox failures."""
        trial_id = uuid.uuid4().hex[:12]
        self.stats['runs'] += 1

        errors = self.precheck(code)
        if errors:
            self.stats['rejected'] += 1
            logger.info("Sandbox pre-check rejected trial [%s]: %d finding(s)", trial_id, len(errors))
            return SandboxResult(
                success=False,
                error=f"Code validation failed: {', '.join(errors)}",
                execution_time_ms=0,
            )

        logger.info("Starting sandboxed execution [%s]", trial_id)
        start = time.monotonic()
        try:
            value, memory_used = await self._execute_isolated(code)
        except SandboxFailure as e:
            elapsed = (time.monotonic() - start) * 1000
            self.stats['timeouts' if e.timed_out else 'failed'] += 1
            logger.warning("Sandboxed execution failed [%s] after %.0fms: %s", trial_id, elapsed, e)
            return SandboxResult(
                success=False,
                error=str(e),
                execution_time_ms=elapsed,
                timed_out=e.timed_out,
            )

        elapsed = (time.monotonic() - start) * 1000
        logger.info("Sandboxed execution completed [%s] in %.0fms", trial_id, elapsed)
        return SandboxResult(
            success=True,
            value=value,
            execution_time_ms=elapsed,
            memory_used_bytes=memory_used,
        )

    async def _execute_isolated(self, code: str) -> Tuple[Any, Optional[int]]:
        temp_dir = Path(tempfile.mkdtemp(prefix=SANDBOX_TEMP_PREFIX, dir=self.temp_root))
        try:
            script_path = temp_dir / SANDBOX_SCRIPT_NAME
            script_path.write_text(build_wrapper(code, self.limits.timeout_ms), encoding='utf-8')
            return await self._run_process(script_path)
        except OSError as e:
            raise SandboxFailure(f"Sandbox setup failed: {e.strerror or e}") from e
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    async def _run_process(self, script_path: Path) -> Tuple[Any, Optional[int]]:
        cmd = [
            self.node_executable,
            f'--max-old-space-size={self.limits.max_memory_mb}',
            str(script_path),
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(script_path.parent),
                env=dict(SANDBOX_ENV),
            )
        except OSError as e:
            raise SandboxFailure(f"Sandbox runtime unavailable: {self.node_executable}") from e

        limiter = ProcessMemoryLimiter(proc.pid, self.limits)
        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(proc, limiter),
                timeout=self.limits.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise SandboxFailure(
                f"Sandbox execution timed out after {self.limits.timeout_ms}ms", timed_out=True)
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass  # exited between the check and the kill
                await proc.wait()

        return self._parse_output(proc.returncode, stdout, stderr, limiter)

    async def _communicate(self, proc, limiter: ProcessMemoryLimiter) -> Tuple[bytes, bytes]:
        comm = asyncio.ensure_future(proc.communicate())
        watch = asyncio.ensure_future(limiter.watch())
        try:
            done, _ = await asyncio.wait({comm, watch}, return_when=asyncio.FIRST_COMPLETED)
            if watch in done and watch.result():
                raise SandboxFailure(
                    f"Sandbox memory limit exceeded ({self.limits.max_memory_mb}MB)")
            return await comm
        finally:
            watch.cancel()
            if not comm.done():
                comm.cancel()

    def _parse_output(self, returncode: int, stdout: bytes, stderr: bytes,
                      limiter: ProcessMemoryLimiter) -> Tuple[Any, Optional[int]]:
        err_text = stderr.decode('utf-8', 'replace')
        try:
            payload = json.loads(stdout.decode('utf-8', 'replace'))
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            if 'heap out of memory' in err_text:
                raise SandboxFailure(
                    f"Sandbox memory limit exceeded ({self.limits.max_memory_mb}MB)")
            raise SandboxFailure(f"Sandbox process exited with code {returncode}")

        if payload.get('success'):
            memory_used = payload.get('memoryUsed')
            if not isinstance(memory_used, int):
                memory_used = limiter.peak_rss or None
            return payload.get('result'), memory_used

        if payload.get('timedOut'):
            raise SandboxFailure(
                f"Sandbox execution timed out after {self.limits.timeout_ms}ms", timed_out=True)
        raise SandboxFailure(scrub_error(str(payload.get('error', 'Sandbox execution failed'))))
