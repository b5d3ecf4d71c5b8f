"""
Crypto — Field-level encryption for the audit log.

Classes:
- FieldCipher: AES-256-CBC field encryption with per-field IVs

Functions:
- load_or_create_key: Owner-only key file under the audit log directory
"""

from rdguard.core.crypto.field_cipher import FieldCipher, load_or_create_key

__all__ = ['FieldCipher', 'load_or_create_key']
