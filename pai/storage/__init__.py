"""Postgres storage: engine, ORM models, and migrations."""

from pai.storage.database import Database
from pai.storage.migrator import run_migrations

__all__ = ["Database", "run_migrations"]
