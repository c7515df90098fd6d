# eccb/crosscutting/logger.py
"""
===============================================================================
MÓDULO: Logging estructurado de la capa de acceso
===============================================================================

Objetivo
--------
Cada decisión de acceso (login, rate limit, permiso denegado, auditoría)
queda en una línea JSON correlacionable por request_id / user_id, sin filtrar
credenciales ni emails completos.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componentes:
  - RequestContextFilter: copia el contexto del request al LogRecord
  - JSONFormatter: LogRecord -> JSON (extras saneados)
  - setup_logger(): logger "eccb-access" configurado desde Settings

Responsabilidades:
  - Redactar secretos (password, tokens, cookies, jwt_secret)
  - Enmascarar emails en campos identificadores (identifier / email)
  - Recortar snapshots grandes (old_values / new_values de auditoría)

Colaboradores:
  - eccb/context.py (get_context_dict)
  - crosscutting/config.py (log_level / log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from ..context import get_context_dict

LOGGER_NAME = "eccb-access"

# Atributos estándar del LogRecord: todo lo demás vino por extra={...}.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_REDACTED = "***REDACTADO***"

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "password_hash",
        "jwt_secret",
        "secret",
        "token",
        "access_token",
        "authorization",
        "cookie",
        "set-cookie",
    }
)

_EMAIL_KEYS: frozenset[str] = frozenset({"email", "identifier"})

_MAX_STR = 4_000
_MAX_DEPTH = 4


def mask_email(value: str) -> str:
    """ana.perez@x.com -> a***@x.com (no-emails se devuelven tal cual)."""
    local, sep, domain = value.partition("@")
    if not sep or not local:
        return value
    return f"{local[0]}***@{domain}"


def _clean(value: Any, key: str | None = None, depth: int = 0) -> Any:
    lowered = key.lower() if key else ""
    if lowered in _SECRET_KEYS:
        return _REDACTED
    if lowered in _EMAIL_KEYS and isinstance(value, str):
        return mask_email(value)

    if isinstance(value, str):
        return value if len(value) <= _MAX_STR else value[:_MAX_STR] + "…"
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if depth >= _MAX_DEPTH:
        return "…"
    if isinstance(value, dict):
        return {str(k): _clean(v, str(k), depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_clean(v, key, depth + 1) for v in value]
    return str(value)


class RequestContextFilter(logging.Filter):
    """Adjunta request_id / method / path / user_id del request en curso."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_context_dict().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                payload[key] = _clean(value, key)

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    Configura el logger de la app una sola vez.

    Si Settings no carga (ej: falta DATABASE_URL en un script de migración)
    se usa INFO + JSON.
    """
    log = logging.getLogger(name)
    if log.handlers:
        return log

    level, use_json = "INFO", True
    try:
        from .config import get_settings

        settings = get_settings()
        level, use_json = settings.log_level, settings.log_json
    except Exception:
        pass

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(
        JSONFormatter()
        if use_json
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    log.addHandler(handler)
    log.setLevel(level)
    return log


logger = setup_logger()
