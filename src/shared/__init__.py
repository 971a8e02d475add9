"""Shared helpers used by the API and the workers."""
