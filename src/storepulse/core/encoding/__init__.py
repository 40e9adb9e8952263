"""Encoders for the exposition formats served by the adapters."""
