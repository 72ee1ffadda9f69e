from __future__ import annotations


class ValidationError(Exception):
    """Malformed or out of range input. Surfaces as HTTP 400."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StoreError(Exception):
    """Reading store failure. Surfaces as HTTP 500 and is never retried."""
