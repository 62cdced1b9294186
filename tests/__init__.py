"""Medilocker test suite."""
