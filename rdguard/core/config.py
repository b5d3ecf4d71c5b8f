"""
rdguard Configuration — UnifiedConfig
=======================================
Central configuration dataclass with defaults for the security pipeline.
Populated once at startup from the environment, an optional config.json
and CLI overrides. There is no hot reload.

Import from: rdguard.core.config
"""

import os
import sys
import json
import logging
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass, field

from rdguard.core.types import SecurityLevel, SecuritySettings
from rdguard.core.constants import (
    SANDBOX_TIMEOUT_MS, SANDBOX_MAX_MEMORY_MB, MAX_SEARCH_RESULTS, AUDIT_READ_WINDOW_DAYS,
)
from rdguard.core.access.profiles import security_settings_for

logger = logging.getLogger("rdguard.core.config")

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'
LOG_LEVELS = ('ERROR', 'WARNING', 'INFO', 'DEBUG')

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass
class UnifiedConfig:
    base_dir: Path = field(
        default_factory=lambda: Path(os.environ.get('RDGUARD_HOME', Path.home() / '.rdguard')))
    log_dir: Path = None
    config_file: Path = None
    sandbox_temp_dir: Optional[Path] = None  # None = system temp dir

    security_level: SecurityLevel = SecurityLevel.BALANCED
    allow_development_level: bool = False   # Must be set explicitly, never by default

    # None = derived from the active level. The sandbox has no override and
    # stays on everywhere but DEVELOPMENT
    encrypt_audit_fields: Optional[bool] = None

    sandbox_timeout_ms: int = SANDBOX_TIMEOUT_MS
    sandbox_max_memory_mb: int = SANDBOX_MAX_MEMORY_MB
    sandbox_blacklist_extra: List[str] = field(default_factory=list)
    node_executable: str = "node"

    max_search_results: int = MAX_SEARCH_RESULTS
    audit_window_days: int = AUDIT_READ_WINDOW_DAYS
    log_level: str = "INFO"

    def __post_init__(self):
        self.base_dir = Path(self.base_dir)
        if self.log_dir is None:
            self.log_dir = self.base_dir / "logs" / "security"
        if self.config_file is None:
            self.config_file = self.base_dir / "config" / "config.json"

    def settings_for(self, level: SecurityLevel) -> SecuritySettings:
        """Level-derived switches with explicit overrides applied."""
        settings = security_settings_for(level)
        if self.encrypt_audit_fields is None:
            return settings
        return SecuritySettings(
            default_risk_threshold=settings.default_risk_threshold,
            enable_input_validation=settings.enable_input_validation,
            enable_audit_log=settings.enable_audit_log,
            enable_sandbox=settings.enable_sandbox,
            enable_screenshot_encryption=self.encrypt_audit_fields,
        )

    @property
    def settings(self) -> SecuritySettings:
        return self.settings_for(self.security_level)

    @classmethod
    def from_env(cls, environ=None) -> 'UnifiedConfig':
        """Build a config from RDGUARD_* and SECURITY_LEVEL variables."""
        env = os.environ if environ is None else environ
        kwargs = {}
        if env.get('RDGUARD_HOME'):
            kwargs['base_dir'] = Path(env['RDGUARD_HOME'])

        allow_dev = env.get('RDGUARD_ALLOW_DEVELOPMENT', '').strip().lower() in _TRUE_VALUES
        kwargs['allow_development_level'] = allow_dev
        kwargs['security_level'] = default_security_level(env, allow_development=allow_dev)

        level_name = env.get('RDGUARD_LOG_LEVEL', '').strip().upper()
        if level_name:
            if level_name in LOG_LEVELS:
                kwargs['log_level'] = level_name
            else:
                logger.warning("Invalid RDGUARD_LOG_LEVEL %r, using INFO", level_name)

        timeout = _positive_int(env.get('RDGUARD_SANDBOX_TIMEOUT_MS'), 'RDGUARD_SANDBOX_TIMEOUT_MS')
        if timeout is not None:
            kwargs['sandbox_timeout_ms'] = timeout
        memory = _positive_int(env.get('RDGUARD_SANDBOX_MAX_MEMORY_MB'), 'RDGUARD_SANDBOX_MAX_MEMORY_MB')
        if memory is not None:
            kwargs['sandbox_max_memory_mb'] = memory

        blacklist = env.get('RDGUARD_SANDBOX_BLACKLIST', '')
        kwargs['sandbox_blacklist_extra'] = [n.strip() for n in blacklist.split(',') if n.strip()]
        return cls(**kwargs)


def default_security_level(environ=None, allow_development: bool = False) -> SecurityLevel:
    """Read SECURITY_LEVEL case-insensitively, falling back to BALANCED.

    An unknown value, or 'development' without explicit permission, logs a
    warning and yields BALANCED.
    """
    env = os.environ if environ is None else environ
    raw = env.get('SECURITY_LEVEL')
    if raw:
        try:
            level = SecurityLevel.parse(raw)
        except ValueError:
            valid = ', '.join(l.value for l in SecurityLevel)
            logger.warning("Invalid security level in environment variable: %s. "
                           "Valid values are: %s. Falling back to BALANCED.", raw, valid)
            return SecurityLevel.BALANCED
        if level is SecurityLevel.DEVELOPMENT and not allow_development:
            logger.warning("Development security level is not allowed in this deployment. "
                           "Falling back to BALANCED.")
            return SecurityLevel.BALANCED
        logger.info("Using security level from environment: %s", level.value)
        return level
    logger.info("Using BALANCED security level (default)")
    return SecurityLevel.BALANCED


def load_config_file(config: UnifiedConfig, config_path: Path) -> None:
    """Merge config.json settings into UnifiedConfig. Missing file is a no-op."""
    config_path = Path(config_path)
    if not config_path.exists():
        return

    try:
        with open(config_path, encoding='utf-8') as f:
            file_cfg = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not read %s: %s", config_path, e)
        return

    sec = file_cfg.get('security', {})
    if 'allow_development_level' in sec:
        config.allow_development_level = bool(sec['allow_development_level'])
    if 'level' in sec:
        try:
            level = SecurityLevel.parse(str(sec['level']))
        except ValueError:
            logger.warning("Invalid security level %r in %s, keeping %s",
                           sec['level'], config_path, config.security_level.value)
        else:
            if level is SecurityLevel.DEVELOPMENT and not config.allow_development_level:
                logger.warning("Development security level is not allowed, keeping %s",
                               config.security_level.value)
            else:
                config.security_level = level
    if 'encrypt_audit_fields' in sec:
        config.encrypt_audit_fields = bool(sec['encrypt_audit_fields'])

    sbx = file_cfg.get('sandbox', {})
    if 'enabled' in sbx:
        logger.warning("Ignoring sandbox.enabled in %s: the sandbox is only disabled "
                       "at the development level", config_path)
    if 'timeout_ms' in sbx:
        value = _positive_int(sbx['timeout_ms'], 'sandbox.timeout_ms')
        if value is not None:
            config.sandbox_timeout_ms = value
    if 'max_memory_mb' in sbx:
        value = _positive_int(sbx['max_memory_mb'], 'sandbox.max_memory_mb')
        if value is not None:
            config.sandbox_max_memory_mb = value
    if 'blacklist' in sbx:
        config.sandbox_blacklist_extra = [str(n) for n in sbx['blacklist']]
    if 'node_executable' in sbx:
        config.node_executable = str(sbx['node_executable'])
    if 'temp_dir' in sbx:
        config.sandbox_temp_dir = Path(sbx['temp_dir'])

    aud = file_cfg.get('audit', {})
    if 'log_dir' in aud:
        config.log_dir = Path(aud['log_dir'])
    if 'max_search_results' in aud:
        value = _positive_int(aud['max_search_results'], 'audit.max_search_results')
        if value is not None:
            config.max_search_results = value
    if 'window_days' in aud:
        value = _positive_int(aud['window_days'], 'audit.window_days')
        if value is not None:
            config.audit_window_days = value

    log = file_cfg.get('logging', {})
    if str(log.get('level', '')).upper() in LOG_LEVELS:
        config.log_level = str(log['level']).upper()


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Send rdguard operational logs to stderr. stdout stays free for protocol traffic."""
    root = logging.getLogger("rdguard")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, '_rdguard_handler', False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._rdguard_handler = True
        root.addHandler(handler)
    return root


def _positive_int(raw, name: str) -> Optional[int]:
    if raw is None or raw == '':
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r, using default", name, raw)
        return None
    if value <= 0:
        logger.warning("Invalid %s %r, using default", name, raw)
        return None
    return value


__all__ = [
    'UnifiedConfig',
    'default_security_level',
    'load_config_file',
    'configure_logging',
    'LOG_FORMAT',
]
