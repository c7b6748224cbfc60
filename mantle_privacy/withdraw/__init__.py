"""Withdrawal pipeline: witness assembly, proving and submission."""
