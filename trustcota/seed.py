"""
trustcota/seed.py

Seed default catalog categories and local user accounts.

Rules:
- Safe to run multiple times (idempotent): categories are matched by name.
- Goes through the Storage interface, so it works with either backend.

NOTE:
- Suppliers and products are not seeded here because they are first-class entities
  maintained through the API or spreadsheet uploads.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .audit import log_action
from .errors import ConflictError, ValidationError
from .models import USER_ROLES, User
from .storage import Storage

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: List[Tuple[str, str]] = [
    ("Material de Escritório", "Papelaria, suprimentos e consumíveis de escritório"),
    ("Informática", "Equipamentos, periféricos e licenças de software"),
    ("Limpeza e Higiene", "Produtos de limpeza e higiene"),
    ("Manutenção", "Ferramentas, peças e materiais de manutenção predial"),
    ("Mobiliário", "Móveis e utensílios"),
    ("Serviços", "Contratação de serviços de terceiros"),
]

MIN_PASSWORD_LENGTH = 6


def seed_default_categories(storage: Storage) -> int:
    """
    Create the default categories that do not exist yet.

    Returns the number of categories created.
    """
    existing = {c.name.strip().lower() for c in storage.list_categories()}
    created = 0
    for name, description in DEFAULT_CATEGORIES:
        if name.lower() in existing:
            continue
        category = storage.create_category({"name": name, "description": description})
        log_action("create", "category", category.id, {"name": name, "seed": True}, storage=storage)
        created += 1

    logger.info("Seeded %d default categories", created)
    return created


def create_local_user(
    storage: Storage,
    username: str,
    password: str,
    role: str,
    email: Optional[str] = None,
) -> User:
    """Create an active account from the command line."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if role not in USER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
    if storage.find_user_by_username(username) is not None:
        raise ConflictError(f"User {username} already exists")

    user = storage.create_user({"username": username, "email": email, "role": role}, password)
    log_action("create", "user", user.id, {"username": username, "role": role}, user_id=user.id, storage=storage)
    return user
