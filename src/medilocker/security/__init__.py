"""Caller identity verification."""

from medilocker.security.identity import Identity, IdentityProvider, JWTIdentityProvider

__all__ = ["Identity", "IdentityProvider", "JWTIdentityProvider"]
