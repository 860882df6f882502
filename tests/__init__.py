"""Rankboard test suite."""
