"""Audit trail shared by services: one file per service under ``Settings.log_dir``.

Two kinds of lines end up there: HTTP access lines written by the middleware
and domain events (booking approved, room retired, ...) written through
``log_audit_event``.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from time import perf_counter
from typing import Any, Optional

from fastapi import FastAPI, Request

from .config import get_settings

# Probes and scrapes would drown out real traffic.
_QUIET_PATHS = frozenset({"/health", "/metrics"})


@lru_cache(maxsize=None)
def get_audit_logger(service_name: str) -> logging.Logger:
    log_dir = Path(get_settings().log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    audit = logging.getLogger(f"audit.{service_name}")
    audit.setLevel(logging.INFO)
    handler = logging.FileHandler(log_dir / f"{service_name}.log", encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    audit.addHandler(handler)
    return audit


def log_audit_event(service_name: str, event: str, actor_id: Optional[str], **fields: Any) -> None:
    """Write one ``event | actor=... | key=value`` line; ``None`` values are left out."""

    parts = [event, f"actor={actor_id or 'system'}"]
    parts.extend(f"{key}={value}" for key, value in sorted(fields.items()) if value is not None)
    get_audit_logger(service_name).info(" | ".join(parts))


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    logger = get_audit_logger(service_name)

    @app.middleware("http")
    async def audit_logger(request: Request, call_next):  # type: ignore[override]
        started = perf_counter()
        response = await call_next(request)
        if request.url.path in _QUIET_PATHS:
            return response
        logger.info(
            "http | %s %s | status=%s | client=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            request.client.host if request.client else "unknown",
            (perf_counter() - started) * 1000,
        )
        return response
