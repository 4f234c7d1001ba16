"""
Authentication module for photoledger.

The identity provider answers "who is the caller" from a bearer token; the
rest of the system only ever sees the resulting account id.
"""

from .provider import IdentityProvider, identity_provider, hash_password, verify_password

__all__ = [
    "IdentityProvider",
    "identity_provider",
    "hash_password",
    "verify_password",
]
