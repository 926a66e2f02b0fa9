"""Credential primitives: password hashing, one-time tokens, cookie signing."""
