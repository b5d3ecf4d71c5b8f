"""
rdguard — Security Manager Pipeline Tests
===========================================

End-to-end decisions through SecurityManager with a mocked sandbox and a
real encrypted audit log:
  1. Decisions           — block, allow, sandbox trial per level
  2. Audit Completeness  — exactly one entry per request, on every path
  3. Sandbox Routing     — should_sandbox and its advisory cache
  4. Security Levels     — level changes and the development gate
  5. Target Dispatch     — only allowed verdicts reach the target

Run with:  pytest tests/test_manager.py -v --tb=short
"""

import json
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rdguard.core.types import (
    RiskLevel, SandboxResult, SearchCriteria, SecureCommandRequest, SecurityLevel,
    SecurityLevelError,
)
from rdguard.core.config import load_config_file
from rdguard.proxy.orchestrator import SecurityManager


# Commands that must always be trial-run before reaching a target
RISKY_COMMANDS = [
    'eval:require("fs").readFileSync("/etc/passwd")',
    'eval:process.exit(1)',
    'eval:require("child_process").exec("rm -rf /")',
    'eval:Function("return process")().exit(1)',
    'eval:window.location = "javascript:alert(1)"',
    'eval:document.write("<script>alert(1)</script>")',
]

SIMPLE_COMMAND_NAMES = [
    'get_window_info', 'take_screenshot', 'list_windows', 'read_logs', 'get_title',
    'get_url', 'get_body_text', 'find_elements', 'get_page_structure',
    'debug_elements', 'verify_form_state',
]


def _raw_lines(manager):
    lines = []
    for path in manager.audit.log_dir.glob("security-*.log"):
        lines.extend(json.loads(l) for l in path.read_text(encoding='utf-8').splitlines() if l)
    return lines


# =============================================================================
# 1. DECISIONS
# =============================================================================

class TestDecisions:

    async def test_runtime_escape_blocked_before_sandbox(self, manager, fake_sandbox):
        command = "eval:require('fs').writeFileSync('/tmp/x', 'y')"
        result = await manager.execute_securely(SecureCommandRequest(command=command))

        assert result.blocked and not result.success
        assert result.risk_level is RiskLevel.CRITICAL
        assert result.error.startswith("Security validation failed: ")
        assert "Dangerous keyword detected: require" in result.error
        fake_sandbox.run.assert_not_awaited()

        raw = _raw_lines(manager)
        assert len(raw) == 1
        assert raw[0]['fields_encrypted'] is True
        assert "require" not in raw[0]['command']
        entries = await manager.search_logs()
        assert entries[0].command == command
        assert entries[0].success is False

    async def test_simple_command_allowed_without_sandbox(self, manager, fake_sandbox):
        result = await manager.execute_securely(
            SecureCommandRequest(command="get_window_info", args={}))

        assert result.allowed
        assert result.risk_level is RiskLevel.LOW
        assert not result.sandboxed
        assert result.sanitized_command == "get_window_info"
        fake_sandbox.run.assert_not_awaited()

        entries = await manager.search_logs()
        assert len(entries) == 1
        assert entries[0].success is True
        assert entries[0].action == "command"

    async def test_dom_query_blocked_when_strict(self, manager, fake_sandbox):
        manager.set_security_level(SecurityLevel.STRICT)
        request = SecureCommandRequest(command="eval",
                                       args={'code': "document.querySelector('#app')"})
        result = await manager.execute_securely(request)

        assert result.blocked
        assert "Function calls in eval are restricted" in result.error
        fake_sandbox.run.assert_not_awaited()

    async def test_dom_query_allowed_when_balanced(self, manager, fake_sandbox):
        request = SecureCommandRequest(command="eval",
                                       args={'code': "document.querySelector('#app')"})
        result = await manager.execute_securely(request)

        assert result.allowed
        assert not result.sandboxed
        fake_sandbox.run.assert_not_awaited()

    async def test_eval_is_trial_run(self, manager, fake_sandbox):
        result = await manager.execute_securely(
            SecureCommandRequest(command="eval", args={'code': "1 + 1"}))

        fake_sandbox.run.assert_awaited_once_with("1 + 1")
        assert result.allowed
        assert result.sandboxed
        assert result.sandbox_result.value == 2

    async def test_sandbox_failure_blocks(self, manager, fake_sandbox):
        fake_sandbox.run.return_value = SandboxResult(
            success=False, error="Sandbox execution timed out after 5000ms",
            execution_time_ms=5000.0, timed_out=True)
        result = await manager.execute_securely(
            SecureCommandRequest(command="eval", args={'code': "1 + 1"}))

        assert result.blocked and not result.success
        assert result.sandboxed
        assert result.error == "Sandbox execution timed out after 5000ms"
        entries = await manager.search_logs()
        assert entries[0].success is False
        assert entries[0].error == result.error

    @pytest.mark.parametrize("command,args", [
        ("", None),
        (None, None),
        (42, None),
        ("eval", None),
        ("eval", {'code': ""}),
        ("get_title", [1, 2]),
    ])
    async def test_malformed_request(self, manager, fake_sandbox, command, args):
        result = await manager.execute_securely(SecureCommandRequest(command=command, args=args))

        assert result.blocked
        assert result.risk_level is RiskLevel.HIGH
        assert result.error == "Invalid request structure"
        fake_sandbox.run.assert_not_awaited()
        assert len(await manager.search_logs()) == 1

    async def test_internal_error_becomes_block(self, manager):
        with patch.object(manager.validator, 'classify', side_effect=RuntimeError("boom")):
            result = await manager.execute_securely(SecureCommandRequest(command="get_title"))

        assert result.blocked
        assert result.risk_level is RiskLevel.HIGH
        assert result.error == "Internal security error"
        assert len(await manager.search_logs()) == 1

    async def test_high_risk_non_eval_blocked(self, manager, fake_sandbox):
        result = await manager.execute_securely(
            SecureCommandRequest(command="<script>alert(1)</script>"))
        assert result.blocked
        assert result.risk_level is RiskLevel.HIGH
        assert result.sanitized_command == ""
        fake_sandbox.run.assert_not_awaited()

    async def test_unique_sessions(self, manager):
        first = await manager.execute_securely(SecureCommandRequest(command="get_title"))
        second = await manager.execute_securely(SecureCommandRequest(command="get_title"))
        assert first.session_id != second.session_id


# =============================================================================
# 2. AUDIT COMPLETENESS
# =============================================================================

class TestAuditCompleteness:

    async def test_one_entry_per_request(self, manager):
        requests = [
            SecureCommandRequest(command="get_title"),
            SecureCommandRequest(command="eval:process.exit(1)"),
            SecureCommandRequest(command="eval", args={'code': "1 + 1"}),
            SecureCommandRequest(command=""),
        ]
        results = await asyncio.gather(*(manager.execute_securely(r) for r in requests))

        entries = await manager.search_logs()
        assert len(entries) == len(requests)
        assert {e.session_id for e in entries} == {r.session_id for r in results}

    async def test_entry_mirrors_result(self, manager):
        request = SecureCommandRequest(command="eval", args={'code': "1 + 1"},
                                       source_ip="10.0.0.7", user_agent="agent/2",
                                       operation_type="command")
        result = await manager.execute_securely(request)

        entry = (await manager.search_logs())[0]
        assert entry.session_id == result.session_id
        assert entry.command == "eval:1 + 1"
        assert entry.source_ip == "10.0.0.7"
        assert entry.user_agent == "agent/2"
        assert entry.risk_level is result.risk_level
        assert entry.execution_time_ms == pytest.approx(result.execution_time_ms)
        assert result.execution_time_ms >= 0

    async def test_operation_type_recorded_as_action(self, manager):
        await manager.execute_securely(
            SecureCommandRequest(command="take_screenshot", operation_type="screenshot"))
        found = await manager.search_logs(SearchCriteria(action="screenshot"))
        assert len(found) == 1

    async def test_persistence_failure_does_not_change_verdict(self, manager, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        manager.audit.log_dir = blocker / "logs"

        result = await manager.execute_securely(SecureCommandRequest(command="get_title"))
        assert result.allowed
        assert manager.audit.stats['write_failed'] == 1

    async def test_lone_surrogate_in_action_is_recorded(self, manager):
        result = await manager.execute_securely(
            SecureCommandRequest(command="get_title", operation_type="cmd\ud800"))

        assert result.allowed
        assert manager.audit.stats['write_failed'] == 0
        entries = await manager.search_logs()
        assert len(entries) == 1
        assert entries[0].action == "cmd\ud800"

    async def test_lone_surrogate_in_plain_command_is_recorded(self, manager):
        manager.audit.encrypt_fields = False
        result = await manager.execute_securely(
            SecureCommandRequest(command="get_title\ud800"))

        assert result.session_id
        assert manager.audit.stats['write_failed'] == 0
        entries = await manager.search_logs()
        assert len(entries) == 1
        assert entries[0].command == "get_title\ud800"

    async def test_unserializable_entry_counts_as_write_failure(self, manager):
        with patch.object(manager.audit, "encode_entry", side_effect=TypeError("not JSON")):
            result = await manager.execute_securely(SecureCommandRequest(command="get_title"))
        assert result.allowed
        assert manager.audit.stats['write_failed'] == 1

    async def test_caller_cancellation_still_audits(self, manager, fake_sandbox):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_run(code):
            started.set()
            await release.wait()
            return SandboxResult(success=True, value=2, execution_time_ms=1.0)

        fake_sandbox.run.side_effect = slow_run
        caller = asyncio.ensure_future(manager.execute_securely(
            SecureCommandRequest(command="eval", args={'code': "1 + 1"})))
        await started.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        await asyncio.gather(*list(manager._inflight))
        entries = await manager.search_logs()
        assert len(entries) == 1
        assert entries[0].success is True

    async def test_metrics(self, manager):
        await manager.execute_securely(SecureCommandRequest(command="get_title"))
        await manager.execute_securely(SecureCommandRequest(command="eval:process.exit(1)"))

        metrics = await manager.get_security_metrics()
        assert metrics.total_requests == 2
        assert metrics.blocked_requests == 1
        assert metrics.critical_risk_requests == 1
        assert metrics.block_rate == pytest.approx(0.5)
        assert len(metrics.top_commands) <= 10


# =============================================================================
# 3. SANDBOX ROUTING
# =============================================================================

class TestShouldSandbox:

    @pytest.mark.parametrize("command", RISKY_COMMANDS)
    def test_risky_commands(self, manager, command):
        assert manager.should_sandbox(command) is True

    @pytest.mark.parametrize("command", SIMPLE_COMMAND_NAMES)
    def test_simple_commands(self, manager, command):
        assert manager.should_sandbox(command) is False

    def test_plain_eval(self, manager):
        assert manager.should_sandbox("eval") is True

    def test_high_risk_plain_command(self, manager):
        assert manager.should_sandbox("<script>alert(1)</script>") is True
        assert manager.should_sandbox("open_devtools") is False

    def test_decision_cached(self, manager):
        with patch.object(manager.validator, 'classify',
                          wraps=manager.validator.classify) as classify:
            assert manager.should_sandbox("test_command") is False
            assert manager.should_sandbox("test_command") is False
        assert classify.call_count == 1
        assert manager.stats['sandbox_cache_miss'] == 1
        assert manager.stats['sandbox_cache_hit'] == 1

    def test_level_change_clears_cache(self, manager):
        manager.should_sandbox("test_command")
        manager.set_security_level(SecurityLevel.PERMISSIVE)
        manager.should_sandbox("test_command")
        assert manager.stats['sandbox_cache_miss'] == 2


# =============================================================================
# 4. SECURITY LEVELS
# =============================================================================

class TestSecurityLevels:

    def test_default_is_balanced(self, manager):
        assert manager.security_level is SecurityLevel.BALANCED
        assert manager.validator.level is SecurityLevel.BALANCED

    @pytest.mark.parametrize("level", [SecurityLevel.STRICT, SecurityLevel.PERMISSIVE])
    def test_change_level(self, manager, level):
        manager.set_security_level(level)
        assert manager.security_level is level
        assert manager.validator.level is level
        assert manager.settings.enable_sandbox

    def test_development_rejected_by_default(self, manager):
        with pytest.raises(SecurityLevelError):
            manager.set_security_level(SecurityLevel.DEVELOPMENT)
        assert manager.security_level is SecurityLevel.BALANCED

    def test_unknown_level_rejected(self, manager):
        with pytest.raises(SecurityLevelError):
            manager.set_security_level("strict")

    def test_development_config_rejected_at_construction(self, config, fake_sandbox, audit_logger):
        config.security_level = SecurityLevel.DEVELOPMENT
        with pytest.raises(SecurityLevelError):
            SecurityManager(config, sandbox=fake_sandbox, audit_logger=audit_logger)

    async def test_development_when_allowed(self, manager, fake_sandbox):
        manager.config.allow_development_level = True
        manager.set_security_level(SecurityLevel.DEVELOPMENT)
        assert not manager.settings.enable_sandbox
        assert manager.audit.encrypt_fields is False

        result = await manager.execute_securely(
            SecureCommandRequest(command="eval", args={'code': "anything(1)"}))
        assert result.allowed
        fake_sandbox.run.assert_not_awaited()
        assert _raw_lines(manager)[0]['fields_encrypted'] is False

    async def test_config_file_cannot_disable_sandbox(self, config, fake_sandbox, audit_logger):
        config.config_file.write_text(json.dumps({"security": {"level": "strict"},
                                                  "sandbox": {"enabled": False}}))
        load_config_file(config, config.config_file)
        manager = SecurityManager(config, sandbox=fake_sandbox, audit_logger=audit_logger)

        assert manager.security_level is SecurityLevel.STRICT
        assert manager.settings.enable_sandbox
        result = await manager.execute_securely(
            SecureCommandRequest(command="eval", args={'code': "1 + 1"}))
        assert result.sandboxed
        fake_sandbox.run.assert_awaited_once()

    async def test_encryption_restored_when_leaving_development(self, manager):
        manager.config.allow_development_level = True
        manager.set_security_level(SecurityLevel.DEVELOPMENT)
        manager.set_security_level(SecurityLevel.BALANCED)
        assert manager.audit.encrypt_fields is True


# =============================================================================
# 5. TARGET DISPATCH
# =============================================================================

class TestExecuteOnTarget:

    @pytest.fixture
    def target(self):
        target = MagicMock()
        target.execute = AsyncMock(return_value="Example Title")
        return target

    async def test_allowed_request_reaches_target(self, manager, target):
        request = SecureCommandRequest(command="get_title", args={'window': 1})
        result, output = await manager.execute_on_target(request, target)

        assert result.allowed
        assert output == "Example Title"
        target.execute.assert_awaited_once_with("get_title", {'window': 1})

    async def test_blocked_request_never_reaches_target(self, manager, target):
        request = SecureCommandRequest(command="eval:process.exit(1)")
        result, output = await manager.execute_on_target(request, target)

        assert result.blocked
        assert output is None
        target.execute.assert_not_awaited()

    async def test_failed_trial_never_reaches_target(self, manager, fake_sandbox, target):
        fake_sandbox.run.return_value = SandboxResult(
            success=False, error="boom", execution_time_ms=3.0)
        request = SecureCommandRequest(command="eval", args={'code': "1 + 1"})
        result, output = await manager.execute_on_target(request, target)

        assert not result.allowed
        assert output is None
        target.execute.assert_not_awaited()
