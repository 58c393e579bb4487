"""
Security utilities - token decryption and untrusted input validation
"""

from .request_validator import (
    validate_base_url,
    validate_project_id,
    validate_project_path,
    validate_statistics_request,
)
from .token_crypto import Secret, decrypt, derive_key, encrypt, secret_scope

__all__ = [
    "Secret",
    "decrypt",
    "encrypt",
    "derive_key",
    "secret_scope",
    "validate_project_id",
    "validate_project_path",
    "validate_base_url",
    "validate_statistics_request",
]
