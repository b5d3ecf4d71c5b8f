"""
Shared pytest fixtures for the rdguard test suite.

Provides a temp-dir UnifiedConfig, a real AuditLogger writing to temp logs,
and a SecurityManager wired to a mocked SandboxExecutor so pipeline tests
run without a Node.js runtime.
"""

import sys
from pathlib import Path
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import after path fix
from rdguard.core.types import AuditLogEntry, RiskLevel, SandboxResult, SecurityLevel
from rdguard.core.config import UnifiedConfig
from rdguard.core.audit.logger import AuditLogger
from rdguard.core.access.command_validator import CommandValidator
from rdguard.proxy.executor import SandboxExecutor
from rdguard.proxy.orchestrator import SecurityManager


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_base(tmp_path):
    """Create a temporary rdguard base directory."""
    (tmp_path / "logs" / "security").mkdir(parents=True)
    (tmp_path / "temp").mkdir()
    (tmp_path / "config").mkdir()
    return tmp_path


@pytest.fixture
def config(tmp_base):
    """A UnifiedConfig pointing at the temp directory."""
    return UnifiedConfig(
        base_dir=tmp_base,
        sandbox_temp_dir=tmp_base / "temp",
        security_level=SecurityLevel.BALANCED,
    )


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def validator():
    return CommandValidator(SecurityLevel.BALANCED)


@pytest.fixture
def audit_logger(config):
    """A real AuditLogger writing to temp logs."""
    return AuditLogger(config.log_dir)


@pytest.fixture
def fake_sandbox():
    """A mocked SandboxExecutor whose trials always succeed."""
    sandbox = MagicMock(spec=SandboxExecutor)
    sandbox.run = AsyncMock(return_value=SandboxResult(
        success=True, value=2, execution_time_ms=1.5, memory_used_bytes=1024))
    return sandbox


@pytest.fixture
def manager(config, fake_sandbox, audit_logger):
    """A SecurityManager with a mocked sandbox and a real audit log."""
    return SecurityManager(config, sandbox=fake_sandbox, audit_logger=audit_logger)


@pytest.fixture
def make_entry():
    """Factory for AuditLogEntry with sensible defaults."""
    def _make(**overrides):
        values = dict(
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id="test-session-0000",
            action="command",
            risk_level=RiskLevel.LOW,
            success=True,
            execution_time_ms=10.0,
            command="get_title",
            error=None,
            source_ip="127.0.0.1",
            user_agent="pytest-agent/1.0",
        )
        values.update(overrides)
        return AuditLogEntry(**values)
    return _make
