"""
Authentication core for the authentication service.

This package provides:
- Signing key bootstrap and persistence
- Session token issuance and validation
- Credential verification against the user directory
- Login and token introspection orchestration
"""
