"""
Account Flow

Session-based authentication flows for a web application: registration,
local and Google login, email verification, and link-based password reset.
"""

__version__ = "0.1.0"
