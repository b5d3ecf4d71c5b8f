#!/usr/bin/env python3
"""
rdguard Core Audit — Security Audit Logger
============================================
Append-only security event log with:
- One JSON line per decision in a per-UTC-day file (security-YYYY-MM-DD.log)
- Field-level encryption of command/error/source_ip/user_agent
- Single-write appends so concurrent records never interleave
- Metrics aggregation and search over a bounded day window

Persistence failures are logged to the operational log and swallowed.
Corrupt lines and ciphertext are skipped or redacted, never raised.

Import from: rdguard.core.audit.logger
"""

import os
import json
import heapq
import asyncio
import logging
from pathlib import Path
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional

from rdguard.core.types import (
    AuditLogEntry, CommandCount, PersistenceFailure, RiskLevel, SearchCriteria,
    SecurityMetrics,
)
from rdguard.core.constants import (
    AUDIT_FILE_PREFIX, AUDIT_FILE_SUFFIX, AUDIT_READ_WINDOW_DAYS, MAX_SEARCH_RESULTS,
    SENSITIVE_AUDIT_FIELDS, TOP_COMMANDS_LIMIT, TOP_COMMAND_MAX_CHARS,
)
from rdguard.core.crypto.field_cipher import FieldCipher, load_or_create_key

logger = logging.getLogger("rdguard.core.audit.logger")

# Operational log level for each recorded risk level
RISK_LOG_LEVELS = {
    RiskLevel.CRITICAL: logging.ERROR,
    RiskLevel.HIGH: logging.ERROR,
    RiskLevel.MEDIUM: logging.WARNING,
    RiskLevel.LOW: logging.INFO,
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    return _as_utc(parsed)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class AuditLogger:
    """Encrypted, append-only audit trail of security decisions."""

    def __init__(self, log_dir: Path, encrypt_fields: bool = True,
                 max_search_results: int = MAX_SEARCH_RESULTS,
                 window_days: int = AUDIT_READ_WINDOW_DAYS,
                 cipher: Optional[FieldCipher] = None):
        self.log_dir = Path(log_dir)
        self.encrypt_fields = encrypt_fields
        self.max_search_results = max_search_results
        self.window_days = window_days
        self.cipher = cipher or FieldCipher(load_or_create_key(self.log_dir))
        self.stats = defaultdict(int)

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    async def record(self, entry: AuditLogEntry) -> None:
        """Persist one entry. Never raises on I/O failure."""
        try:
            await asyncio.to_thread(self._append, entry)
        except (PersistenceFailure, TypeError, ValueError) as e:
            self.stats['write_failed'] += 1
            logger.error("Failed to write security log: %s", e)
        else:
            self.stats['written'] += 1

        logger.log(
            RISK_LOG_LEVELS.get(entry.risk_level, logging.INFO),
            "Security Event [%s]: %s (session=%s risk=%s time=%.1fms)",
            entry.action, 'SUCCESS' if entry.success else 'BLOCKED',
            entry.session_id, entry.risk_level.value, entry.execution_time_ms,
        )

    def log_file_for(self, day: date) -> Path:
        return self.log_dir / f"{AUDIT_FILE_PREFIX}{day.isoformat()}{AUDIT_FILE_SUFFIX}"

    def encode_entry(self, entry: AuditLogEntry) -> str:
        """Serialize an entry to one newline-terminated JSON line."""
        data = entry.to_dict()
        if self.encrypt_fields:
            for name in SENSITIVE_AUDIT_FIELDS:
                if data.get(name):
                    data[name] = self.cipher.encrypt(str(data[name]))
        data['fields_encrypted'] = self.encrypt_fields
        return json.dumps(data, ensure_ascii=False) + '\n'

    def _append(self, entry: AuditLogEntry) -> None:
        try:
            day = parse_timestamp(entry.timestamp).date()
        except ValueError:
            day = datetime.now(timezone.utc).date()
        try:
            # Lone surrogates survive as \uXXXX escapes, which json reads back
            data = self.encode_entry(entry).encode('utf-8', 'backslashreplace')
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"could not serialize entry: {e}") from e

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.log_file_for(day)), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
            try:
                os.write(fd, data)
            finally:
                os.close(fd)
        except OSError as e:
            raise PersistenceFailure(f"append to {self.log_dir.name} failed: {e.strerror}") from e

    # =========================================================================
    # READ PATH
    # =========================================================================

    async def metrics_since(self, since: Optional[datetime] = None) -> SecurityMetrics:
        return await asyncio.to_thread(self._compute_metrics, since)

    async def search(self, criteria: Optional[SearchCriteria] = None) -> List[AuditLogEntry]:
        """Matching entries, newest first, capped at max_search_results."""
        return await asyncio.to_thread(self._search, criteria or SearchCriteria())

    def _compute_metrics(self, since: Optional[datetime]) -> SecurityMetrics:
        total = blocked = high = critical = 0
        total_time = 0.0
        commands = Counter()

        for entry in self.iter_entries(since):
            total += 1
            total_time += entry.execution_time_ms
            if not entry.success:
                blocked += 1
            if entry.risk_level is RiskLevel.HIGH:
                high += 1
            elif entry.risk_level is RiskLevel.CRITICAL:
                critical += 1
            if entry.command:
                commands[entry.command[:TOP_COMMAND_MAX_CHARS]] += 1

        return SecurityMetrics(
            total_requests=total,
            blocked_requests=blocked,
            high_risk_requests=high,
            critical_risk_requests=critical,
            average_execution_time_ms=total_time / total if total else 0.0,
            top_commands=[CommandCount(c, n) for c, n in commands.most_common(TOP_COMMANDS_LIMIT)],
            block_rate=blocked / total if total else 0.0,
        )

    def _search(self, criteria: SearchCriteria) -> List[AuditLogEntry]:
        cap = self.max_search_results
        # A zero or negative limit means no limit beyond the cap
        if criteria.limit and criteria.limit > 0:
            cap = min(criteria.limit, cap)

        matches = (
            e for e in self.iter_entries(criteria.since, criteria.until)
            if (criteria.action is None or e.action == criteria.action)
            and (criteria.risk_level is None or e.risk_level is criteria.risk_level)
        )
        return heapq.nlargest(cap, matches, key=self._sort_key)

    @staticmethod
    def _sort_key(entry: AuditLogEntry) -> datetime:
        try:
            return parse_timestamp(entry.timestamp)
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)

    def iter_entries(self, since: Optional[datetime] = None,
                     until: Optional[datetime] = None) -> Iterator[AuditLogEntry]:
        """Yield decrypted entries from the day files covering [since, until].

        Defaults to the last window_days days through today (UTC).
        """
        now = datetime.now(timezone.utc)
        start = _as_utc(since) if since else now - timedelta(days=self.window_days)
        end = _as_utc(until) if until else now

        day = start.date()
        while day <= end.date():
            for entry in self._read_day(day):
                if since or until:
                    moment = self._sort_key(entry)
                    if (since and moment < start) or (until and moment > end):
                        continue
                yield entry
            day += timedelta(days=1)

    def _read_day(self, day: date) -> Iterator[AuditLogEntry]:
        path = self.log_file_for(day)
        skipped = 0
        try:
            with open(path, encoding='utf-8', errors='replace') as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        yield self.decode_line(line)
                    except (ValueError, KeyError, TypeError, AttributeError):
                        skipped += 1
        except OSError:
            # Missing or unreadable day file
            return
        if skipped:
            self.stats['malformed_lines'] += skipped
            logger.warning("Skipped %d malformed line(s) in %s", skipped, path.name)

    def decode_line(self, line: str) -> AuditLogEntry:
        """Parse and decrypt one stored line. Raises ValueError/KeyError if malformed."""
        data: Dict = json.loads(line)
        if data.pop('fields_encrypted', True):
            for name in SENSITIVE_AUDIT_FIELDS:
                if data.get(name):
                    data[name] = self.cipher.decrypt_or_placeholder(data[name])
        return AuditLogEntry.from_dict(data)


__all__ = ['AuditLogger', 'RISK_LOG_LEVELS', 'utc_now_iso', 'parse_timestamp']
