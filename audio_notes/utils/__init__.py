"""Errors, error classification, and retry helpers."""
