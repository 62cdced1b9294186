"""Medilocker: versioned patient records with consent-gated doctor access."""

__version__ = "0.1.0"
