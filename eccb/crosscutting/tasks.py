"""
===============================================================================
TARJETA CRC — crosscutting/tasks.py (Tareas no críticas)
===============================================================================

Responsabilidades:
  - Lanzar coroutines "fire-and-forget" como tareas asyncio desacopladas del
    request (el camino crítico nunca las espera).
  - Capturar cualquier falla en un sink de observabilidad (log + métrica).
  - Mantener referencia fuerte a las tareas vivas (asyncio solo guarda weakrefs).
  - Drenar tareas pendientes en el shutdown (con timeout).

Colaboradores:
  - crosscutting.logger
  - crosscutting.metrics.record_noncritical_task_failure
  - audit.AuditLogger (principal cliente)
  - container.AppContainer (drain en close())

Notas:
  - submit() nunca lanza: si no hay event loop corriendo, se descarta la
    coroutine y se loguea.
===============================================================================
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from .logger import logger
from .metrics import record_noncritical_task_failure


class NonCriticalTaskRunner:
    """Runner de tareas best-effort con sink de errores."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self, coro: Coroutine[Any, Any, Any], *, name: str
    ) -> asyncio.Task | None:
        """Programa la coroutine y devuelve la tarea (o None si no hay loop)."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(
                "tarea no crítica descartada: no hay event loop",
                extra={"task": name},
            )
            return None

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("tarea no crítica cancelada", extra={"task": task.get_name()})
            return

        exc = task.exception()
        if exc is None:
            return

        record_noncritical_task_failure(task.get_name())
        logger.error(
            "tarea no crítica falló",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={
                "task": task.get_name(),
                "error_code": getattr(exc, "error_code", None),
                "error_id": getattr(exc, "error_id", None),
                "error": str(exc),
            },
        )

    async def drain(self, timeout: float | None = None) -> int:
        """
        Espera a las tareas pendientes.

        Retorna cuántas quedaron sin terminar (se cancelan si hubo timeout).
        """
        if not self._tasks:
            return 0

        _, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            # Las canceladas terminan de desenrollarse antes de cerrar el pool.
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning(
                "tareas no críticas canceladas en shutdown",
                extra={"count": len(still_pending)},
            )
        return len(still_pending)
