from __future__ import annotations

import os

from fastapi import APIRouter, Depends

from app.container import Services
from deps.services import get_services

router = APIRouter(tags=["health"])


def _check_store(services: Services) -> tuple[bool, str | None]:
    try:
        return bool(services.store.ping()), None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _resolve_env() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip()


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/healthz")
def healthz(services: Services = Depends(get_services)):
    db_ok, db_error = _check_store(services)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
    }


@router.get("/health")
def health(services: Services = Depends(get_services)):
    return {
        "ok": True,
        "env": _resolve_env(),
        "mm_mode": services.config.mode,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/readyz")
def readyz(services: Services = Depends(get_services)):
    db_ok, db_error = _check_store(services)
    return {
        "ready": db_ok,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
    }
