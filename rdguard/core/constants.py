"""
rdguard Constants — Numeric Values, Limits, and Command Vocabulary
===================================================================
Non-pattern constants used across the package. Key sizes, request limits,
sandbox defaults, audit file naming, and the simple command vocabulary.

Import from: rdguard.core.constants
"""

# =============================================================================
# CRYPTO SIZES (bytes)
# =============================================================================

AUDIT_KEY_BYTES = 32            # AES-256
AUDIT_IV_BYTES = 16             # One fresh IV per field per entry
AUDIT_KEY_FILENAME = ".security-key"
AUDIT_KEY_FILE_MODE = 0o600

# Sensitive AuditLogEntry fields, the only ones encrypted at rest
SENSITIVE_AUDIT_FIELDS = ('command', 'error', 'source_ip', 'user_agent')

# Returned in place of any field whose ciphertext cannot be decrypted
ENCRYPTED_PLACEHOLDER = "[ENCRYPTED]"

# =============================================================================
# AUDIT FILES AND AGGREGATION
# =============================================================================

AUDIT_FILE_PREFIX = "security-"
AUDIT_FILE_SUFFIX = ".log"
AUDIT_READ_WINDOW_DAYS = 30     # Default lookback for metrics/search
TOP_COMMANDS_LIMIT = 10
TOP_COMMAND_MAX_CHARS = 50      # Commands truncated before counting
MAX_SEARCH_RESULTS = 1000       # Hard cap on search() output

# =============================================================================
# REQUEST LIMITS
# =============================================================================

MAX_REQUEST_COMMAND_LENGTH = 10000  # Shape check, before classification
MAX_COMMAND_LENGTH = 5000           # Classifier length flag
OBFUSCATION_THRESHOLD = 0.7

# =============================================================================
# SANDBOX DEFAULTS
# =============================================================================

SANDBOX_TIMEOUT_MS = 5000
SANDBOX_MAX_MEMORY_MB = 50
# Resident memory of the bare Node.js runtime, allowed on top of the heap
# ceiling before the memory watcher kills the child.
SANDBOX_RUNTIME_OVERHEAD_MB = 64
SANDBOX_MEMORY_POLL_INTERVAL = 0.05  # seconds
SANDBOX_MAX_OUTPUT_BYTES = 1_000_000
SANDBOX_TEMP_PREFIX = "rdguard-sandbox-"
SANDBOX_SCRIPT_NAME = "script.cjs"

# Minimal environment for the sandbox child process
SANDBOX_ENV = {
    'PATH': '/usr/local/bin:/usr/bin:/bin',
    'LANG': 'C.UTF-8',
    'http_proxy': '',
    'https_proxy': '',
    'no_proxy': '*',
}

# =============================================================================
# COMMAND VOCABULARY
# =============================================================================

EVAL_COMMAND = "eval"
EVAL_COMMAND_PREFIX = "eval:"

# Fixed read-only commands that never need a sandbox trial
SIMPLE_COMMANDS = frozenset({
    'get_window_info',
    'take_screenshot',
    'list_windows',
    'read_logs',
    'get_title',
    'get_url',
    'get_body_text',
    'find_elements',
    'get_page_structure',
    'debug_elements',
    'verify_form_state',
})


__all__ = [
    'AUDIT_KEY_BYTES', 'AUDIT_IV_BYTES', 'AUDIT_KEY_FILENAME', 'AUDIT_KEY_FILE_MODE',
    'SENSITIVE_AUDIT_FIELDS', 'ENCRYPTED_PLACEHOLDER',
    'AUDIT_FILE_PREFIX', 'AUDIT_FILE_SUFFIX', 'AUDIT_READ_WINDOW_DAYS',
    'TOP_COMMANDS_LIMIT', 'TOP_COMMAND_MAX_CHARS', 'MAX_SEARCH_RESULTS',
    'MAX_REQUEST_COMMAND_LENGTH', 'MAX_COMMAND_LENGTH', 'OBFUSCATION_THRESHOLD',
    'SANDBOX_TIMEOUT_MS', 'SANDBOX_MAX_MEMORY_MB', 'SANDBOX_RUNTIME_OVERHEAD_MB',
    'SANDBOX_MEMORY_POLL_INTERVAL', 'SANDBOX_MAX_OUTPUT_BYTES',
    'SANDBOX_TEMP_PREFIX', 'SANDBOX_SCRIPT_NAME', 'SANDBOX_ENV',
    'EVAL_COMMAND', 'EVAL_COMMAND_PREFIX', 'SIMPLE_COMMANDS',
]
