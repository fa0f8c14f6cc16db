from __future__ import annotations


class MalformedInput(ValueError):
    """Structurally malformed data reached a computation (e.g. a non-numeric price)."""


class InvalidTransaction(Exception):
    """Domain error raised for invalid transaction input or sequences."""
