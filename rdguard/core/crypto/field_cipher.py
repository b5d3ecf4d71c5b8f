#!/usr/bin/env python3
"""
rdguard Core Crypto — Audit Field Cipher
==========================================
Field-level encryption for audit log entries:
- AES-256-CBC with PKCS7 padding (cryptography)
- Fresh random 128-bit IV per field per entry, stored as hex(iv):hex(ciphertext)
- SHA-256 digest stored instead if encryption itself fails (never plaintext)
- Key file generated once per log directory, owner-only permissions

Import from: rdguard.core.crypto.field_cipher
"""

import os
import stat
import hashlib
import secrets
import logging
from pathlib import Path

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from rdguard.core.types import DecryptionFailure
from rdguard.core.constants import (
    AUDIT_KEY_BYTES, AUDIT_IV_BYTES, AUDIT_KEY_FILENAME, AUDIT_KEY_FILE_MODE,
    ENCRYPTED_PLACEHOLDER,
)

logger = logging.getLogger("rdguard.core.crypto.field_cipher")


def _restrict_mode(key_path: Path) -> None:
    """Reduce the key file to owner read/write if it is wider."""
    try:
        mode = stat.S_IMODE(key_path.stat().st_mode)
        if mode & 0o077:
            logger.warning("Audit key %s was accessible to other users (mode %o), "
                           "restricting to %o", key_path, mode, AUDIT_KEY_FILE_MODE)
        if mode != AUDIT_KEY_FILE_MODE:
            os.chmod(key_path, AUDIT_KEY_FILE_MODE)
    except OSError as e:
        logger.warning("Could not restrict permissions on %s: %s", key_path, e)


def load_or_create_key(log_dir: Path) -> bytes:
    """Load the audit key from log_dir, generating it on first use.

    An existing key file is tightened to owner-only access. A key file of
    the wrong size is left untouched and an ephemeral key is used for this
    process; entries written with it will not be readable by later
    processes.
    """
    log_dir = Path(log_dir)
    key_path = log_dir / AUDIT_KEY_FILENAME

    if key_path.exists():
        try:
            key = key_path.read_bytes()
        except OSError as e:
            logger.error("Could not read audit key %s: %s, using an ephemeral key", key_path, e)
            return secrets.token_bytes(AUDIT_KEY_BYTES)
        if len(key) == AUDIT_KEY_BYTES:
            _restrict_mode(key_path)
            return key
        logger.error("Audit key %s has invalid length %d, using an ephemeral key",
                     key_path, len(key))
        return secrets.token_bytes(AUDIT_KEY_BYTES)

    key = secrets.token_bytes(AUDIT_KEY_BYTES)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(key_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, AUDIT_KEY_FILE_MODE)
        with os.fdopen(fd, 'wb') as f:
            f.write(key)
    except FileExistsError:
        # Another process created it first
        return load_or_create_key(log_dir)
    except OSError as e:
        logger.warning("Failed to save audit encryption key: %s", e)
        return key

    _restrict_mode(key_path)
    return key


class FieldCipher:
    """Encrypts and decrypts single audit fields with one AES-256 key."""

    def __init__(self, key: bytes):
        if len(key) != AUDIT_KEY_BYTES:
            raise ValueError(f"audit key must be {AUDIT_KEY_BYTES} bytes")
        self._key = key

    def encrypt(self, text: str) -> str:
        try:
            iv = secrets.token_bytes(AUDIT_IV_BYTES)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            data = padder.update(text.encode('utf-8')) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(data) + encryptor.finalize()
        except (ValueError, TypeError) as e:
            logger.error("Field encryption failed, storing digest instead: %s", e)
            return hashlib.sha256(text.encode('utf-8', 'replace')).hexdigest()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Raises DecryptionFailure on any malformed or foreign ciphertext."""
        parts = token.split(':') if isinstance(token, str) else []
        if len(parts) != 2:
            raise DecryptionFailure("ciphertext is not iv:data")
        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            data = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(data) + unpadder.finalize()
            return plain.decode('utf-8')
        except ValueError as e:
            raise DecryptionFailure(str(e)) from e

    def decrypt_or_placeholder(self, token: str) -> str:
        try:
            return self.decrypt(token)
        except DecryptionFailure:
            return ENCRYPTED_PLACEHOLDER


__all__ = ['FieldCipher', 'load_or_create_key']
