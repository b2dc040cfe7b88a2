"""
Authentication module for Account Flow.

Provides:
- Single-use link issuance and consumption
- Credential verifiers (local password, Google)
- Registration, email confirmation and password reset flows
- Link delivery by email
"""

from .links import (
    ConsumedLink,
    issue_link,
    consume_link,
    peek_link,
    purge_dead_links,
)

from .service import (
    AuthFlowError,
    register_user,
    confirm_email,
    resend_confirmation,
    change_password,
    request_password_reset,
    reset_password,
)

from .strategies import CredentialVerifier, LocalPasswordVerifier, GoogleVerifier

__all__ = [
    'ConsumedLink',
    'issue_link',
    'consume_link',
    'peek_link',
    'purge_dead_links',
    'AuthFlowError',
    'register_user',
    'confirm_email',
    'resend_confirmation',
    'change_password',
    'request_password_reset',
    'reset_password',
    'CredentialVerifier',
    'LocalPasswordVerifier',
    'GoogleVerifier',
]
