"""
trustcota/storage

Storage backend selection. The backend is built once in create_app() and kept in
app.extensions["storage"]; request code reaches it through get_storage().
"""

from __future__ import annotations

from flask import Flask, current_app

from .base import Storage
from .memory import MemoryStorage
from .sql import SqlStorage

BACKENDS = {
    "sql": SqlStorage,
    "memory": MemoryStorage,
}


def build_storage(app: Flask) -> Storage:
    name = (app.config.get("STORAGE_BACKEND") or "sql").strip().lower()
    try:
        backend = BACKENDS[name]
    except KeyError:
        raise RuntimeError(f"Unknown STORAGE_BACKEND {name!r} (expected one of: {', '.join(BACKENDS)})")
    return backend()


def get_storage() -> Storage:
    return current_app.extensions["storage"]


__all__ = ["Storage", "SqlStorage", "MemoryStorage", "build_storage", "get_storage"]
