"""
rdguard Entry Point — Run with: python -m rdguard

Usage:
    python -m rdguard [--base-dir DIR] [--level LEVEL] check COMMAND [--code CODE]
    python -m rdguard metrics [--since DATE]
    python -m rdguard search [--action A] [--risk-level R] [--limit N]

Exit status for 'check' is 0 when the command is allowed, 2 when blocked.
"""

import sys


def main():
    """Main entry point for rdguard."""
    from rdguard.proxy.orchestrator import main as cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main() or 0)
