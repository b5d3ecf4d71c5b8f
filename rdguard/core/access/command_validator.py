#!/usr/bin/env python3
"""
rdguard Core Access — Command Validator
=========================================
Risk classification of remote-debugging commands with:
- Dangerous keyword detection (runtime, module, reflection identifiers)
- XSS and code-injection pattern families
- Length and obfuscation heuristics
- Evaluation-content mode gated by the active SecurityProfile
- Order-independent risk aggregation and script-stripping sanitization

Import from: rdguard.core.access.command_validator
"""

import re
import logging
from typing import Any, List, Optional, Tuple

from rdguard.core.types import (
    RequestValidationError, RiskLevel, SecurityLevel, SecurityProfile, ValidationVerdict,
)
from rdguard.core.constants import (
    EVAL_COMMAND, EVAL_COMMAND_PREFIX, MAX_COMMAND_LENGTH, MAX_REQUEST_COMMAND_LENGTH,
    OBFUSCATION_THRESHOLD,
)
from rdguard.core.patterns import (
    DANGEROUS_KEYWORDS, FUNCTION_KEYWORD,
    FUNCTION_EXPRESSION_PATTERN, FUNCTION_DECLARATION_PATTERN, FUNCTION_CONSTRUCTOR_PATTERN,
    COMMAND_PATTERN_TABLE, FACTOR_MESSAGES,
    FACTOR_DANGEROUS_KEYWORD, FACTOR_EVAL_KEYWORD, FACTOR_LENGTH, FACTOR_OBFUSCATION,
    FACTOR_EVAL_FUNCTION_CALL, FACTOR_EVAL_ASSIGNMENT,
    CRITICAL_FACTOR_MARKERS, HIGH_FACTOR_MARKERS,
    SAFE_EXPRESSION_PATTERNS, DOM_QUERY_PATTERNS, UI_INTERACTION_PATTERNS,
    FUNCTION_CALL_PATTERN, FUNCTION_NAME_PATTERN, ASSIGNMENT_PATTERN,
    SANITIZE_PATTERNS,
)
from rdguard.core.access.profiles import profile_for
from rdguard.core.analysis.utils import obfuscation_score

logger = logging.getLogger("rdguard.core.access.command_validator")


def is_evaluation_command(command: str) -> bool:
    """True for 'eval' and for 'eval:<code>' command strings."""
    return command == EVAL_COMMAND or command.startswith(EVAL_COMMAND_PREFIX)


def extract_eval_code(command: str, args: Any = None) -> Optional[str]:
    """Return the code carried by an evaluation-type command, if any."""
    if command == EVAL_COMMAND:
        if isinstance(args, dict):
            code = args.get('code')
            return code if isinstance(code, str) else None
        if isinstance(args, str):
            return args
        return None
    if command.startswith(EVAL_COMMAND_PREFIX):
        return command[len(EVAL_COMMAND_PREFIX):]
    return None


class CommandValidator:
    """Classifies commands against the profile of the current security level."""

    def __init__(self, level: SecurityLevel = SecurityLevel.BALANCED):
        self.level = level
        self.keyword_patterns = [
            (kw, re.compile(rf'\b{re.escape(kw)}\b', re.I)) for kw in DANGEROUS_KEYWORDS
        ]
        self.function_expression = re.compile(FUNCTION_EXPRESSION_PATTERN)
        self.function_declaration = re.compile(FUNCTION_DECLARATION_PATTERN)
        self.function_constructor = re.compile(FUNCTION_CONSTRUCTOR_PATTERN)
        self.command_patterns = [
            (re.compile(p), family, factor) for p, family, factor in COMMAND_PATTERN_TABLE
        ]
        self.safe_patterns = [re.compile(p) for p in SAFE_EXPRESSION_PATTERNS]
        self.dom_patterns = [re.compile(p) for p in DOM_QUERY_PATTERNS]
        self.ui_patterns = [re.compile(p) for p in UI_INTERACTION_PATTERNS]
        self.function_call = re.compile(FUNCTION_CALL_PATTERN)
        self.function_name = re.compile(FUNCTION_NAME_PATTERN)
        self.assignment = re.compile(ASSIGNMENT_PATTERN)
        self.sanitize_patterns = [re.compile(p) for p in SANITIZE_PATTERNS]

    @property
    def profile(self) -> SecurityProfile:
        return profile_for(self.level)

    # =========================================================================
    # REQUEST SHAPE
    # =========================================================================

    def check_request(self, command: Any, args: Any = None) -> None:
        """Reject malformed requests before classification.

        Raises RequestValidationError.
        """
        if not isinstance(command, str) or not command:
            raise RequestValidationError("command must be a non-empty string")
        if len(command) > MAX_REQUEST_COMMAND_LENGTH:
            raise RequestValidationError(
                f"command exceeds {MAX_REQUEST_COMMAND_LENGTH} characters")
        if args is not None and not isinstance(args, (dict, str)):
            raise RequestValidationError("args must be an object or a string")
        if command == EVAL_COMMAND and not extract_eval_code(command, args):
            raise RequestValidationError("eval requires a non-empty code argument")

    # =========================================================================
    # CLASSIFICATION
    # =========================================================================

    def classify(self, command: str, args: Any = None) -> ValidationVerdict:
        safe_shape = False
        code = extract_eval_code(command, args) if command == EVAL_COMMAND else None
        if code is not None:
            errors, factors, safe_shape = self._check_eval_content(code)
        else:
            errors, factors = self._check_command_content(command)

        risk = self.risk_level_for(factors)
        verdict = ValidationVerdict(
            is_valid=not errors and risk is not RiskLevel.CRITICAL,
            errors=errors,
            risk_level=risk,
            sanitized_command=self.sanitize(command),
            risk_factors=factors,
            safe_shape=safe_shape,
        )
        if factors:
            logger.debug("Classified %s as %s: %s", command[:40], risk.value, ', '.join(factors))
        return verdict

    @staticmethod
    def risk_level_for(factors: List[str]) -> RiskLevel:
        """Aggregate risk factors. The result does not depend on their order."""
        if any(m in f for f in factors for m in CRITICAL_FACTOR_MARKERS):
            return RiskLevel.CRITICAL
        if any(m in f for f in factors for m in HIGH_FACTOR_MARKERS) or len(factors) > 3:
            return RiskLevel.HIGH
        if len(factors) > 1:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def sanitize(self, command: str) -> str:
        """Strip script blocks/tags and javascript: schemes. Quotes survive."""
        for pattern in self.sanitize_patterns:
            command = pattern.sub('', command)
        return command

    def _check_command_content(self, command: str) -> Tuple[List[str], List[str]]:
        errors: List[str] = []
        factors: List[str] = []

        for keyword in self._keyword_hits(command):
            errors.append(f"Dangerous keyword detected: {keyword}")
            factors.append(f"{FACTOR_DANGEROUS_KEYWORD}_{keyword}")

        for pattern, _family, factor in self.command_patterns:
            if pattern.search(command):
                errors.append(FACTOR_MESSAGES[factor])
                factors.append(factor)

        if len(command) > MAX_COMMAND_LENGTH:
            errors.append(f"Command too long ({len(command)} chars, max {MAX_COMMAND_LENGTH})")
            factors.append(FACTOR_LENGTH)

        score = obfuscation_score(command)
        if score > OBFUSCATION_THRESHOLD:
            errors.append(f"Potential code obfuscation detected (score: {score:.2f})")
            factors.append(FACTOR_OBFUSCATION)

        return errors, factors

    def _check_eval_content(self, code: str) -> Tuple[List[str], List[str], bool]:
        profile = self.profile
        if self._is_safe_shape(code.strip(), profile):
            return [], [], True

        errors: List[str] = []
        factors: List[str] = []

        for keyword in self._keyword_hits(code):
            errors.append(f"Dangerous keyword detected in eval: {keyword}")
            factors.append(f"{FACTOR_EVAL_KEYWORD}_{keyword}")

        if self.function_call.search(code):
            match = self.function_name.search(code)
            name = match.group(1) if match else ''
            allowed = profile.allows_all_functions or any(
                fn in name or f"{fn}(" in code for fn in profile.allowed_function_names
            )
            if not allowed:
                errors.append(f"Function calls in eval are restricted ({name})")
                factors.append(FACTOR_EVAL_FUNCTION_CALL)

        if not profile.allow_assignments and self.assignment.search(code):
            errors.append("Assignment operations in eval are restricted")
            factors.append(FACTOR_EVAL_ASSIGNMENT)

        return errors, factors, False

    def _is_safe_shape(self, code: str, profile: SecurityProfile) -> bool:
        patterns = list(self.safe_patterns)
        if profile.allow_dom_queries:
            patterns.extend(self.dom_patterns)
        if profile.allow_ui_interactions:
            patterns.extend(self.ui_patterns)
        return any(p.search(code) for p in patterns)

    def _keyword_hits(self, text: str) -> List[str]:
        hits = []
        for keyword, pattern in self.keyword_patterns:
            if not pattern.search(text):
                continue
            # 'Function' counts only as a constructor call, and never for a
            # leading function expression or named declaration.
            if keyword == FUNCTION_KEYWORD:
                stripped = text.strip()
                if not self.function_constructor.search(text):
                    continue
                if self.function_expression.search(stripped) or self.function_declaration.search(stripped):
                    continue
            hits.append(keyword)
        return hits


__all__ = [
    'CommandValidator',
    'is_evaluation_command',
    'extract_eval_code',
]
