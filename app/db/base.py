"""ORM base."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base mold."""
    pass


def list_models():  # pragma: no cover
    """List model names."""
    return [m.class_.__name__ for m in Base.registry.mappers]


__all__ = ["Base", "list_models"]
