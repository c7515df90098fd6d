"""
===============================================================================
CRC CARD — infrastructure/counters/in_memory.py
===============================================================================

Componente:
  InMemoryCounterStore

Responsabilidades:
  - Implementar CounterStorePort en memoria (tests / desarrollo local).
  - Respetar la misma semántica que Redis: expiry seteado solo en el primer
    incremento; ttl() devuelve -2 si no existe y -1 si no tiene expiry.

Notas:
  - Reloj inyectable para simular el paso de la ventana.
  - Un solo event loop: cada método es atómico (no hay await intermedio).
===============================================================================
"""

from __future__ import annotations

import math
import time
from typing import Callable, Optional


class InMemoryCounterStore:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        # key -> (count, expires_at | None)
        self._data: dict[str, tuple[int, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[tuple[int, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return str(entry[0]) if entry else None

    async def increment(self, key: str, window_seconds: int) -> int:
        entry = self._live(key)
        if entry is None:
            self._data[key] = (1, self._clock() + window_seconds)
            return 1
        count, expires_at = entry
        self._data[key] = (count + 1, expires_at)
        return count + 1

    async def consume(
        self, key: str, limit: int, window_seconds: int
    ) -> tuple[bool, int]:
        entry = self._live(key)
        if entry is not None and entry[0] >= limit:
            return False, entry[0]
        return True, await self.increment(key, window_seconds)

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        _, expires_at = entry
        if expires_at is None:
            return -1
        return max(0, math.ceil(expires_at - self._clock()))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self._data.clear()
