"""
Security module for the Backup Assistant.
"""

from backup_assistant.security.encryption import (
    EncryptionManager,
    SUPPORTED_CIPHERS,
    generate_key,
    encode_key,
    decode_key,
    validate_key,
)

__all__ = [
    "EncryptionManager",
    "SUPPORTED_CIPHERS",
    "generate_key",
    "encode_key",
    "decode_key",
    "validate_key",
]
