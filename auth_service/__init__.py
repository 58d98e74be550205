"""Authentication microservice: credential verification and session tokens."""
