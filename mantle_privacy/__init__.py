"""Stealth payments and shielded pool tooling for Mantle."""

__version__ = "0.1.0"
