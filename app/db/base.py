"""Declarative Base for the Cartel schema.

Invariants:
    - Every table (users, identities, API keys, refresh tokens, applications,
      practice sessions, projects, treasuries, Discord settings, webhooks, logs)
      is a subclass of Base and registers itself on Base.metadata when app.models
      is imported
    - Base.metadata is what alembic/env.py compares against and what the test
      suite passes to create_all on SQLite
    - Row-level security policies are not part of the metadata; they live in
      alembic revision 002

Design Decisions:
    - Portable column types (StringArray, IntegerArray) live in app/db/types.py,
      so models stay the same on PostgreSQL and SQLite
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
