"""Database Primitives — SQLAlchemy Base and portable column types.

Invariants:
    - Array columns are native ARRAY on PostgreSQL and JSON elsewhere

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for tests (ADR: portable test DB)
"""
