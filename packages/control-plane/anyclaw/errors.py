"""Exceptions raised by the AnyClaw control plane."""

from __future__ import annotations


class AnyclawError(Exception):
    """Base class for control-plane errors."""


class NotFoundError(AnyclawError):
    """An unknown tenant, gateway or agent id was referenced."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind.capitalize()} not found: {ident}")
        self.kind = kind
        self.ident = ident


class ConflictError(AnyclawError):
    """The requested operation does not apply to the entity's current state."""


class PortAllocationError(AnyclawError):
    """Recorded port allocations could not be read."""
