"""
Port allocation for per-tenant gateways.

Ports are handed out monotonically from the highest recorded allocation.
Ports freed by teardown are not reused.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from anyclaw.config import DEFAULT_BASE_PORT
from anyclaw.errors import PortAllocationError

logger = logging.getLogger(__name__)


class PortSource(Protocol):
    def max_port(self) -> int | None: ...


class PortAllocator:
    def __init__(self, store: PortSource, base_port: int = DEFAULT_BASE_PORT) -> None:
        self._store = store
        self._base_port = base_port

    @property
    def base_port(self) -> int:
        return self._base_port

    def allocate(self) -> int:
        """Return ``base_port`` for the first gateway, else the recorded max + 1."""
        try:
            current = self._store.max_port()
        except SQLAlchemyError as e:
            raise PortAllocationError(f"Could not read allocated ports: {e}") from e

        port = self._base_port if current is None else current + 1
        logger.info("Allocated gateway port %d", port)
        return port
