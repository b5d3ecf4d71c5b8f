"""
rdguard Security Patterns — Single Source of Truth
====================================================
All keyword lists and regex patterns used for command classification and
sandbox pre-checks. Matchers are data: extend a table here rather than
adding literals to control flow.

Import from: rdguard.core.patterns
"""

# =============================================================================
# DANGEROUS KEYWORDS
# =============================================================================

# Runtime, module, reflection and timer identifiers. Matched as whole words,
# case-insensitively, by the classifier.
DANGEROUS_KEYWORDS = [
    # Reflection / prototype access
    'Function', 'constructor', '__proto__', 'prototype',
    # Process and module loading
    'process', 'require', 'import',
    # Node core modules
    'fs', 'child_process', 'exec', 'spawn', 'fork', 'cluster', 'worker_threads',
    'vm', 'repl', 'readline', 'crypto', 'http', 'https', 'net', 'dgram', 'tls',
    'url', 'querystring', 'path', 'os', 'util', 'events', 'stream', 'buffer',
    'timers',
    # Timers
    'setImmediate', 'clearImmediate', 'setTimeout', 'clearTimeout',
    'setInterval', 'clearInterval',
    # Global scope escapes
    'global', 'globalThis',
]

# The 'Function' keyword is only dangerous as a constructor call. A command
# that opens with a function expression or a named declaration is exempt.
# Known soft spot: wrapping or leading tokens change which branch applies.
FUNCTION_KEYWORD = 'Function'
FUNCTION_EXPRESSION_PATTERN = r'^\s*\(\s*function\s*\('
FUNCTION_DECLARATION_PATTERN = r'^\s*function\s+\w+\s*\('
FUNCTION_CONSTRUCTOR_PATTERN = r'(?i)(?:new\s+Function\s*\(|(?:window\.|global\.)?Function\s*\()'

# =============================================================================
# INJECTION & XSS PATTERNS
# =============================================================================

# Risk factor names produced by the classifier
FACTOR_DANGEROUS_KEYWORD = 'dangerous_keyword'
FACTOR_XSS = 'xss_pattern'
FACTOR_INJECTION = 'injection_pattern'
FACTOR_LENGTH = 'excessive_length'
FACTOR_OBFUSCATION = 'obfuscation'
FACTOR_EVAL_KEYWORD = 'eval_dangerous_keyword'
FACTOR_EVAL_FUNCTION_CALL = 'eval_function_call'
FACTOR_EVAL_ASSIGNMENT = 'eval_assignment'

# Factors that force CRITICAL, and factors that force at least HIGH.
# Matched as substrings of the factor name.
CRITICAL_FACTOR_MARKERS = (FACTOR_DANGEROUS_KEYWORD, FACTOR_INJECTION)
HIGH_FACTOR_MARKERS = (FACTOR_XSS, FACTOR_OBFUSCATION)

# (regex, family, risk factor)
# Families: markup (embedded documents and tags), handler (event handler
# attributes and script URL schemes), template (string-built code),
# dynamic (runtime evaluation and statement injection).
COMMAND_PATTERN_TABLE = [
    # markup
    (r'(?i)<script[^>]*>[\s\S]*?</script>', 'markup', FACTOR_XSS),
    (r'(?i)<iframe[^>]*>', 'markup', FACTOR_XSS),
    (r'(?i)<object[^>]*>', 'markup', FACTOR_XSS),
    (r'(?i)<embed[^>]*>', 'markup', FACTOR_XSS),
    (r'(?i)<link[^>]*>', 'markup', FACTOR_XSS),
    (r'(?i)<meta[^>]*>', 'markup', FACTOR_XSS),
    # handler
    (r'(?i)javascript:', 'handler', FACTOR_XSS),
    (r'(?i)on\w+\s*=', 'handler', FACTOR_XSS),
    # template
    (r'\$\{[^}]*\}', 'template', FACTOR_INJECTION),
    (r'`[^`]*`', 'template', FACTOR_INJECTION),
    # dynamic
    (r'(?i)[\'"];\s*(?:drop|delete|insert|update|select|union|exec|execute)\s+', 'dynamic', FACTOR_INJECTION),
    (r'(?i)eval\s*\(', 'dynamic', FACTOR_INJECTION),
    (r'(?i)new\s+Function\s*\(', 'dynamic', FACTOR_INJECTION),
    (r'(?i)window\s*\[\s*[\'"]Function[\'"]\s*\]', 'dynamic', FACTOR_INJECTION),
]

FACTOR_MESSAGES = {
    FACTOR_XSS: 'Potential XSS pattern detected',
    FACTOR_INJECTION: 'Potential code injection detected',
}

# =============================================================================
# EVALUATION CONTENT SHAPES
# =============================================================================

# Read-only expression shapes accepted for 'eval' under every profile
SAFE_EXPRESSION_PATTERNS = [
    r'^document\.(title|location|URL|domain)$',
    r'^window\.(location|navigator|screen)$',
    r'^Math\.\w+$',
    r'^Date\.\w+$',
    r'^JSON\.(parse|stringify)$',
    r'^[\w.\[\]\'"]+$',  # Simple property access
]

# Accepted only when the profile allows DOM queries
DOM_QUERY_PATTERNS = [
    r'^document\.querySelector\([^)]+\)$',
    r'^document\.querySelectorAll\([^)]+\)$',
    r'^document\.getElementById\([^)]+\)$',
    r'^document\.getElementsByClassName\([^)]+\)$',
    r'^document\.getElementsByTagName\([^)]+\)$',
    r'^document\.activeElement$',
]

# Accepted only when the profile allows UI interactions
UI_INTERACTION_PATTERNS = [
    r'^window\.getComputedStyle\([^)]+\)$',
    r'^[\w.]+\.(textContent|innerText|innerHTML|value|checked|selected|disabled|hidden)$',
    r'^[\w.]+\.(clientWidth|clientHeight|offsetWidth|offsetHeight|getBoundingClientRect)$',
    r'^[\w.]+\.(focus|blur|scrollIntoView)\(\)$',
]

FUNCTION_CALL_PATTERN = r'\(\s*\)|\w+\s*\('
FUNCTION_NAME_PATTERN = r'(\w+)\s*\('
# A lone '=' or a compound assignment, shifts included; never ==, ===, !=, <=, >= or =>
ASSIGNMENT_PATTERN = r'(?<![=!<>])=(?![=>])|(?:<<|>>)='

# =============================================================================
# SANITIZATION
# =============================================================================

# Removed from commands before they are handed on. Code syntax (quotes,
# brackets, comparison operators) is never touched.
SANITIZE_PATTERNS = [
    r'(?i)<script[^>]*>[\s\S]*?</script>',
    r'(?i)</?script[^>]*>',
    r'(?i)javascript:',
]

# =============================================================================
# SANDBOX PRE-CHECK
# =============================================================================

# Matched as '\bname\s*\(' (calls)
SANDBOX_BLACKLISTED_FUNCTIONS = [
    'eval', 'Function', 'setTimeout', 'setInterval', 'setImmediate',
    'require', 'import', 'process', 'global', 'globalThis',
    '__dirname', '__filename', 'Buffer',
    'XMLHttpRequest', 'fetch', 'WebSocket',
    'Worker', 'SharedWorker', 'ServiceWorker', 'importScripts', 'postMessage',
    'close', 'open',
]

# Matched as '\bname\b' (any reference)
SANDBOX_BLACKLISTED_OBJECTS = [
    'fs', 'child_process', 'cluster', 'crypto', 'dgram', 'dns', 'http', 'https',
    'net', 'os', 'path', 'stream', 'tls', 'url', 'util', 'v8', 'vm',
    'worker_threads', 'zlib', 'perf_hooks', 'inspector', 'repl', 'readline',
    'domain', 'events', 'querystring', 'punycode', 'constants',
]

SANDBOX_DANGEROUS_PATTERNS = [
    r'require\s*\(',
    r'import\s+.*\s+from',
    r'\.constructor',
    r'\.__proto__',
    r'prototype\.',
    r'process\.',
    r'global\.',
    r'this\.constructor',
    r'\[\s*[\'"`]constructor[\'"`]\s*\]',
    r'\[\s*[\'"`]__proto__[\'"`]\s*\]',
    r'Function\s*\(',
    r'eval\s*\(',
    r'window\.',
    r'document\.',
    r'location\.',
    r'history\.',
    r'navigator\.',
    r'alert\s*\(',
    r'confirm\s*\(',
    r'prompt\s*\(',
]

# Lines of a runtime stack trace, scrubbed from any error shown to callers
STACK_FRAME_PATTERN = r'^\s+at\s.*$'


__all__ = [
    'DANGEROUS_KEYWORDS', 'FUNCTION_KEYWORD',
    'FUNCTION_EXPRESSION_PATTERN', 'FUNCTION_DECLARATION_PATTERN',
    'FUNCTION_CONSTRUCTOR_PATTERN',
    'FACTOR_DANGEROUS_KEYWORD', 'FACTOR_XSS', 'FACTOR_INJECTION', 'FACTOR_LENGTH',
    'FACTOR_OBFUSCATION', 'FACTOR_EVAL_KEYWORD', 'FACTOR_EVAL_FUNCTION_CALL',
    'FACTOR_EVAL_ASSIGNMENT', 'CRITICAL_FACTOR_MARKERS', 'HIGH_FACTOR_MARKERS',
    'COMMAND_PATTERN_TABLE', 'FACTOR_MESSAGES',
    'SAFE_EXPRESSION_PATTERNS', 'DOM_QUERY_PATTERNS', 'UI_INTERACTION_PATTERNS',
    'FUNCTION_CALL_PATTERN', 'FUNCTION_NAME_PATTERN', 'ASSIGNMENT_PATTERN',
    'SANITIZE_PATTERNS',
    'SANDBOX_BLACKLISTED_FUNCTIONS', 'SANDBOX_BLACKLISTED_OBJECTS',
    'SANDBOX_DANGEROUS_PATTERNS', 'STACK_FRAME_PATTERN',
]
