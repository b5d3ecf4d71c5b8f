#!/usr/bin/env python3
"""
Proxy Orchestrator — Security Manager and component wiring.

SecurityManager is the single entry point other subsystems call. For each
request it validates the shape, classifies the command, decides between
block, sandbox trial and allow, writes exactly one audit entry, and returns
the verdict. Only an allowed verdict ever reaches the execution target.

Request states:
    Received -> Classified -> {Blocked | SandboxPending -> Sandboxed}
             -> Logged -> {Allowed | Denied}
"""

import os
import json
import time
import uuid
import asyncio
import logging
import argparse
from pathlib import Path
from collections import defaultdict
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from rdguard.core.types import (
    AuditLogEntry, PolicyBlock, RequestValidationError, RiskLevel, SandboxLimits,
    SearchCriteria, SecureCommandRequest, SecureCommandResult, SecurityLevel,
    SecurityLevelError, SecurityMetrics, SecuritySettings, ValidationVerdict,
)
from rdguard.core.constants import EVAL_COMMAND, EVAL_COMMAND_PREFIX, SIMPLE_COMMANDS
from rdguard.core.config import UnifiedConfig, configure_logging, load_config_file
from rdguard.core.access.command_validator import (
    CommandValidator, extract_eval_code, is_evaluation_command,
)
from rdguard.core.audit.logger import AuditLogger, utc_now_iso
from rdguard.proxy.executor import SandboxExecutor

__all__ = ['SecurityManager', 'ExecutionTarget', 'main']

logger = logging.getLogger("rdguard.proxy.orchestrator")

INVALID_REQUEST_MESSAGE = "Invalid request structure"
INTERNAL_ERROR_MESSAGE = "Internal security error"


class ExecutionTarget(Protocol):
    """Live debugging target. Called only after an allowed verdict."""

    async def execute(self, command: str, args: Any) -> str:
        ...


class SecurityManager:
    """Orchestrates classification, sandbox trials and audit logging."""

    def __init__(self, config: UnifiedConfig = None,
                 validator: CommandValidator = None,
                 sandbox: SandboxExecutor = None,
                 audit_logger: AuditLogger = None):
        self.config = config or UnifiedConfig()
        self._level = SecurityLevel.BALANCED
        self.validator = validator or CommandValidator(self._level)
        self.sandbox = sandbox or SandboxExecutor(
            limits=SandboxLimits(
                timeout_ms=self.config.sandbox_timeout_ms,
                max_memory_mb=self.config.sandbox_max_memory_mb,
            ),
            blacklist_extra=self.config.sandbox_blacklist_extra,
            node_executable=self.config.node_executable,
            temp_root=self.config.sandbox_temp_dir,
        )
        self.audit = audit_logger or AuditLogger(
            self.config.log_dir,
            max_search_results=self.config.max_search_results,
            window_days=self.config.audit_window_days,
        )
        # Raw command string -> needs sandbox. Advisory only.
        self._sandbox_cache: Dict[str, bool] = {}
        self._inflight: Set[asyncio.Future] = set()
        self.stats = defaultdict(int)

        self.set_security_level(self.config.security_level)

    # =========================================================================
    # SECURITY LEVEL
    # =========================================================================

    @property
    def security_level(self) -> SecurityLevel:
        return self._level

    def set_security_level(self, level: SecurityLevel) -> None:
        """Select the active level. DEVELOPMENT requires explicit permission.

        Raises SecurityLevelError.
        """
        if not isinstance(level, SecurityLevel):
            raise SecurityLevelError(f"Unknown security level: {level!r}")
        if level is SecurityLevel.DEVELOPMENT and not self.config.allow_development_level:
            raise SecurityLevelError("Development security level is not allowed in this deployment")

        self._level = level
        self.validator.level = level
        self.audit.encrypt_fields = self.settings.enable_screenshot_encryption
        self._sandbox_cache.clear()
        logger.info("Security level changed to: %s", level.value)

    @property
    def settings(self) -> SecuritySettings:
        return self.config.settings_for(self._level)

    # =========================================================================
    # DECISION PIPELINE
    # =========================================================================

    async def execute_securely(self, request: SecureCommandRequest) -> SecureCommandResult:
        """Decide one request. Never raises.

        Caller cancellation does not interrupt a sandbox trial or the audit
        write; the pipeline runs to completion in its own task.
        """
        received = time.monotonic()
        task = asyncio.ensure_future(self._process(request, received))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def execute_on_target(self, request: SecureCommandRequest,
                                target: ExecutionTarget) -> Tuple[SecureCommandResult, Optional[str]]:
        """Run an allowed request on the target. Blocked requests never reach it."""
        result = await self.execute_securely(request)
        if not result.allowed:
            return result, None
        output = await target.execute(result.sanitized_command, request.args)
        return result, output

    def should_sandbox(self, command: str) -> bool:
        """Whether a command needs a sandbox trial. Cached by raw command string."""
        cached = self._sandbox_cache.get(command)
        if cached is not None:
            self.stats['sandbox_cache_hit'] += 1
            return cached

        self.stats['sandbox_cache_miss'] += 1
        if command in SIMPLE_COMMANDS:
            decision = False
        elif is_evaluation_command(command):
            decision = True
        else:
            decision = self.validator.classify(command).risk_level >= RiskLevel.HIGH
        self._sandbox_cache[command] = decision
        return decision

    async def _process(self, request: SecureCommandRequest, received: float) -> SecureCommandResult:
        session_id = str(uuid.uuid4())
        timestamp = utc_now_iso()
        try:
            result = await self._decide(request, session_id, received)
        except Exception:
            logger.exception("Security pipeline failed for session %s", session_id)
            result = self._blocked(session_id, received, RiskLevel.HIGH, INTERNAL_ERROR_MESSAGE)

        self.stats['blocked' if result.blocked else 'allowed'] += 1
        if self.settings.enable_audit_log:
            await self.audit.record(self._audit_entry(request, result, timestamp))
        return result

    async def _decide(self, request: SecureCommandRequest, session_id: str,
                      received: float) -> SecureCommandResult:
        command, args = request.command, request.args

        try:
            self.validator.check_request(command, args)
        except RequestValidationError as e:
            logger.warning("Rejected malformed request [%s]: %s", session_id, e)
            return self._blocked(session_id, received, RiskLevel.HIGH, INVALID_REQUEST_MESSAGE)

        verdict = self.validator.classify(command, args)
        try:
            self._enforce_policy(verdict)
        except PolicyBlock as e:
            logger.warning("Blocked command [%s] risk=%s", session_id, e.risk_level.value)
            return self._blocked(session_id, received, e.risk_level, str(e),
                                 sanitized=verdict.sanitized_command)

        sandbox_result = None
        evaluation = is_evaluation_command(command)
        if (self.settings.enable_sandbox
                and (verdict.risk_level >= RiskLevel.HIGH or evaluation)
                and self.should_sandbox(command)
                and not verdict.safe_shape):
            code = extract_eval_code(command, args)
            sandbox_result = await self.sandbox.run(code if code is not None else command)
            if not sandbox_result.success:
                return SecureCommandResult(
                    blocked=True,
                    success=False,
                    risk_level=verdict.risk_level,
                    session_id=session_id,
                    execution_time_ms=self._elapsed_ms(received),
                    error=sandbox_result.error,
                    sandboxed=True,
                    sandbox_result=sandbox_result,
                    sanitized_command=verdict.sanitized_command,
                )

        return SecureCommandResult(
            blocked=False,
            success=True,
            risk_level=verdict.risk_level,
            session_id=session_id,
            execution_time_ms=self._elapsed_ms(received),
            sandboxed=sandbox_result is not None,
            sandbox_result=sandbox_result,
            sanitized_command=verdict.sanitized_command,
        )

    @staticmethod
    def _enforce_policy(verdict: ValidationVerdict) -> None:
        if verdict.is_valid:
            return
        if verdict.errors:
            raise PolicyBlock(f"Security validation failed: {'; '.join(verdict.errors)}",
                              verdict.risk_level)
        raise PolicyBlock("Command risk level too high", verdict.risk_level)

    def _blocked(self, session_id: str, received: float, risk: RiskLevel, error: str,
                 sanitized: Optional[str] = None) -> SecureCommandResult:
        return SecureCommandResult(
            blocked=True,
            success=False,
            risk_level=risk,
            session_id=session_id,
            execution_time_ms=self._elapsed_ms(received),
            error=error,
            sanitized_command=sanitized,
        )

    @staticmethod
    def _elapsed_ms(received: float) -> float:
        return (time.monotonic() - received) * 1000

    @staticmethod
    def _audit_entry(request: SecureCommandRequest, result: SecureCommandResult,
                     timestamp: str) -> AuditLogEntry:
        command = request.command if isinstance(request.command, str) else None
        if command == EVAL_COMMAND:
            code = extract_eval_code(command, request.args)
            if code:
                command = f"{EVAL_COMMAND_PREFIX}{code}"
        return AuditLogEntry(
            timestamp=timestamp,
            session_id=result.session_id,
            action=request.operation_type,
            command=command,
            risk_level=result.risk_level,
            success=result.allowed,
            error=result.error,
            execution_time_ms=result.execution_time_ms,
            source_ip=request.source_ip,
            user_agent=request.user_agent,
        )

    # =========================================================================
    # REPORTING
    # =========================================================================

    async def get_security_metrics(self, since: Optional[datetime] = None) -> SecurityMetrics:
        return await self.audit.metrics_since(since)

    async def search_logs(self, criteria: Optional[SearchCriteria] = None) -> List[AuditLogEntry]:
        return await self.audit.search(criteria)


# =============================================================================
# COMMAND LINE
# =============================================================================

def _parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value}")


def _parse_level(value: str) -> SecurityLevel:
    try:
        return SecurityLevel.parse(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"choose from {', '.join(l.value for l in SecurityLevel)}")


def _parse_risk(value: str) -> RiskLevel:
    try:
        return RiskLevel(value.strip().lower())
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"choose from {', '.join(r.value for r in RiskLevel)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rdguard',
        description='Security decision pipeline for AI-driven remote debugging')
    parser.add_argument('--base-dir', default=None,
                        help='Data directory (default: $RDGUARD_HOME or ~/.rdguard)')
    parser.add_argument('--config', default=None, help='config.json path')
    parser.add_argument('--level', type=_parse_level, default=None,
                        help='Security level (strict, balanced, permissive)')
    parser.add_argument('--log-level', default=None,
                        choices=['ERROR', 'WARNING', 'INFO', 'DEBUG'])
    sub = parser.add_subparsers(dest='subcommand', required=True)

    check = sub.add_parser('check', help='Run one command through the decision pipeline')
    check.add_argument('command', help="Command name, or 'eval:<code>'")
    check.add_argument('--code', default=None, help="Code for the 'eval' command")
    check.add_argument('--args', default=None, help='Command arguments as a JSON object')
    check.add_argument('--source-ip', default=None)
    check.add_argument('--user-agent', default=None)
    check.add_argument('--operation-type', default='command')

    metrics = sub.add_parser('metrics', help='Aggregate audit metrics')
    metrics.add_argument('--since', type=_parse_date, default=None)

    search = sub.add_parser('search', help='Search audit entries, newest first')
    search.add_argument('--action', default=None)
    search.add_argument('--risk-level', type=_parse_risk, default=None)
    search.add_argument('--since', type=_parse_date, default=None)
    search.add_argument('--until', type=_parse_date, default=None)
    search.add_argument('--limit', type=int, default=None)
    return parser


def build_config(args: argparse.Namespace) -> UnifiedConfig:
    """Environment, then config.json, then CLI overrides (highest priority)."""
    environ = dict(os.environ)
    if args.base_dir:
        environ['RDGUARD_HOME'] = args.base_dir
    config = UnifiedConfig.from_env(environ)

    config_path = Path(args.config) if args.config else config.config_file
    load_config_file(config, config_path)

    if args.level is not None:
        config.security_level = args.level
    if args.log_level:
        config.log_level = args.log_level
    return config


async def _run(args: argparse.Namespace, manager: SecurityManager) -> int:
    if args.subcommand == 'check':
        cmd_args: Any = None
        if args.args:
            cmd_args = json.loads(args.args)
        if args.code is not None:
            cmd_args = dict(cmd_args or {}, code=args.code)
        result = await manager.execute_securely(SecureCommandRequest(
            command=args.command,
            args=cmd_args,
            source_ip=args.source_ip,
            user_agent=args.user_agent,
            operation_type=args.operation_type,
        ))
        print(json.dumps({
            'blocked': result.blocked,
            'success': result.success,
            'risk_level': result.risk_level.value,
            'error': result.error,
            'session_id': result.session_id,
            'execution_time_ms': round(result.execution_time_ms, 2),
            'sandboxed': result.sandboxed,
        }, indent=2))
        return 0 if result.allowed else 2

    if args.subcommand == 'metrics':
        metrics = await manager.get_security_metrics(args.since)
        print(json.dumps(asdict(metrics), indent=2))
        return 0

    entries = await manager.search_logs(SearchCriteria(
        action=args.action,
        risk_level=args.risk_level,
        since=args.since,
        until=args.until,
        limit=args.limit,
    ))
    for entry in entries:
        print(json.dumps(entry.to_dict()))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.subcommand == 'check' and args.args:
        try:
            if not isinstance(json.loads(args.args), dict):
                parser.error('--args must be a JSON object')
        except ValueError:
            parser.error('--args is not valid JSON')

    config = build_config(args)
    configure_logging(config.log_level)

    try:
        manager = SecurityManager(config)
    except SecurityLevelError as e:
        parser.error(str(e))
    return asyncio.run(_run(args, manager))
