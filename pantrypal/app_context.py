"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import HTTPException, Request, status

_get_conn: Optional[Callable[[], Any]] = None
_resolve_user_id: Optional[Callable[[Request], Optional[str]]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    resolve_user_id: Callable[[Request], Optional[str]],
) -> None:
    """Register application-wide dependencies required by modular routers."""

    global _get_conn
    global _resolve_user_id

    _get_conn = get_conn
    _resolve_user_id = resolve_user_id


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_optional_user_id(request: Request) -> Optional[str]:
    """Verified caller identity, or ``None`` for anonymous requests."""

    resolver = _require(_resolve_user_id, "resolve_user_id")
    return resolver(request)


def get_user_id(request: Request) -> str:
    user_id = get_optional_user_id(request)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "Authentication required"},
        )
    return user_id
