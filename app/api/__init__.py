"""API Layer — FastAPI routes, dependencies, middleware and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Every error leaves through the structured error envelope

Design Decisions:
    - Thin routes: identity and token rules live in services/, pure rules in core/
"""
